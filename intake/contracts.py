"""
Semantic contracts for the idea intake assistant.

Immutable data structures passed between modules. These define shape and
semantics only; loading and validation live in the modules that own them.

Contents:
- QuestionSpec: one static question from the question set
- ValidationResult: outcome of checking an answer against criteria
- FollowUpPrompt: a generated (or templated) follow-up question
- Recommendations: the four suggested_* record fields
- IdeaAnalysis: summary, gaps and readiness score for an idea

Usage:
    from intake.contracts import QuestionSpec, ValidationResult, FollowUpPrompt
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


# Validation sources
SOURCE_PHRASE_MATCH = "phrase_match"
SOURCE_MODEL = "model"
SOURCE_FAIL_CLOSED = "fail_closed"
SOURCE_SKIPPED = "skipped"


@dataclass(frozen=True)
class QuestionSpec:
    """
    Immutable definition of one question in the static sequence.

    Attributes:
        id: Stable identifier (e.g., 'business-problem')
        position: 1-indexed ordinal in the sequence
        question: Prompt text shown to the user
        criteria: Facts the accumulated answer must cover. Empty tuple means
            the question is never validated (advances on first answer).
        example_answer: A complete answer, shown with suggestions
        max_follow_ups: Follow-up budget before force-advance
        output_fields: Output field names populated by this answer.
            The same accumulated text is written to every one of them.
        help_text: Short guidance shown under the question
        category: Grouping for display ('intro', 'business', 'technical', ...)

    Examples:
        >>> q = QuestionSpec(
        ...     id='risks',
        ...     position=9,
        ...     question='What challenges or risks might come up?',
        ...     criteria=('Identifies at least one potential risk',),
        ...     example_answer='Model accuracy may be low initially.',
        ...     max_follow_ups=1,
        ...     output_fields=('risks_list',),
        ... )
        >>> q.has_criteria
        True
    """
    id: str
    position: int
    question: str
    criteria: Tuple[str, ...] = ()
    example_answer: str = ""
    max_follow_ups: int = 0
    output_fields: Tuple[str, ...] = ()
    help_text: str = ""
    category: str = "business"

    @property
    def has_criteria(self) -> bool:
        return len(self.criteria) > 0

    def to_dict(self, total_questions: Optional[int] = None) -> Dict[str, Any]:
        """
        Client-facing representation of the question.

        Args:
            total_questions: Used to render "Question X of N" step info

        Returns:
            dict: JSON-safe question payload
        """
        payload = {
            'id': self.id,
            'text': self.question,
            'category': self.category,
            'helpText': self.help_text,
            'exampleResponse': self.example_answer,
            'criteria': list(self.criteria),
            'maxFollowUps': self.max_follow_ups,
        }
        if total_questions is not None:
            payload['stepInfo'] = f"Question {self.position} of {total_questions}"
        return payload


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating an accumulated answer against a question's criteria.

    Ephemeral: produced per validation call and consumed by the Sequencer.

    Attributes:
        all_met: True only when every criterion is satisfied
        met_criteria: Criteria judged satisfied
        missing_criteria: Criteria judged missing
        uncertain: User expressed uncertainty ("not sure", "no idea", ...)
        reason: Short explanation (from the model or the local check)
        source: Where the verdict came from (phrase_match, model, fail_closed)
    """
    all_met: bool
    met_criteria: Tuple[str, ...] = ()
    missing_criteria: Tuple[str, ...] = ()
    uncertain: bool = False
    reason: str = ""
    source: str = SOURCE_MODEL

    @classmethod
    def fail_closed(cls, criteria: Tuple[str, ...], reason: str) -> "ValidationResult":
        """Verdict used whenever the model could not confirm the criteria."""
        return cls(
            all_met=False,
            met_criteria=(),
            missing_criteria=tuple(criteria),
            uncertain=False,
            reason=reason,
            source=SOURCE_FAIL_CLOSED,
        )


@dataclass(frozen=True)
class FollowUpPrompt:
    """
    A follow-up question for the same logical question.

    Attributes:
        id: '{question_id}-followup-{attempt}'
        text: Follow-up question text
        attempt: 1-indexed follow-up attempt number
        max_attempts: The question's follow-up budget
        help_text: What is still needed
        example_answer: Example of a complete answer
        templated: True when produced by the deterministic fallback
    """
    id: str
    text: str
    attempt: int
    max_attempts: int
    help_text: str = ""
    example_answer: str = ""
    templated: bool = False

    @property
    def is_final_attempt(self) -> bool:
        return self.attempt >= self.max_attempts

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'text': self.text,
            'helpText': self.help_text,
            'exampleResponse': self.example_answer,
            'stepInfo': f"Follow-up question {self.attempt} of {self.max_attempts}",
        }


@dataclass(frozen=True)
class Recommendations:
    """
    The four LLM-generated "suggested_*" output fields.
    """
    suggested_approach: str
    suggested_kpis_approach: str
    suggested_build_buy_approach: str
    suggested_investment_approach: str
    generated: bool = field(default=True, compare=False)

    def to_dict(self) -> Dict[str, str]:
        return {
            'suggested_approach': self.suggested_approach,
            'suggested_kpis_approach': self.suggested_kpis_approach,
            'suggested_build_buy_approach': self.suggested_build_buy_approach,
            'suggested_investment_approach': self.suggested_investment_approach,
        }


@dataclass(frozen=True)
class IdeaAnalysis:
    """
    Assessment of a (possibly unfinished) idea.

    Attributes:
        summary: 2-3 sentence executive summary
        gaps: Missing critical information
        recommendations: Actionable improvements
        classification: 'Simple GenAI' | 'GenAI with Tools' | 'Agentic AI' | 'Multi-Agent System'
        readiness: Completeness and viability score, 0-100
        generated: False for the fixed analyses used without a model
    """
    summary: str
    gaps: Tuple[str, ...]
    recommendations: Tuple[str, ...]
    classification: str
    readiness: int
    generated: bool = field(default=True, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'summary': self.summary,
            'gaps': list(self.gaps),
            'recommendations': list(self.recommendations),
            'classification': self.classification,
            'readiness': self.readiness,
        }
