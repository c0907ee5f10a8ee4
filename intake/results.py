"""
Result types returned by Sequencer.advance()

A SequencerResult is exactly one of:
    Complete | NeedsAssistance | FollowUp | Advance

Callers dispatch on the class; to_response() renders the client JSON.
Every variant carries the updated ConversationState.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple, Union

from intake.commands import ConversationState
from intake.contracts import FollowUpPrompt, QuestionSpec

COMPLETE_MESSAGE = (
    "Great work! You've provided all the information we need. "
    "Please review and submit your proposal."
)
ASSISTANCE_HELP_TEXT = (
    "I generated a suggestion based on your idea. You can use this as-is, "
    "modify it, or provide your own answer."
)
FORCED_ADVANCE_NOTICE = "Moving forward with your current answer."


def _base_payload(state: ConversationState) -> Dict[str, Any]:
    return {
        'answers': dict(state.answers),
        'state': state.to_json(),
    }


@dataclass(frozen=True)
class Complete:
    """
    Sequence finished. Repeated advance() calls keep returning this.
    """
    state: ConversationState
    message: str = COMPLETE_MESSAGE

    def to_response(self) -> Dict[str, Any]:
        payload = {'complete': True, 'message': self.message}
        payload.update(_base_payload(self.state))
        return payload


@dataclass(frozen=True)
class NeedsAssistance:
    """
    User expressed uncertainty. Same question stays active.

    Attributes:
        question: The active question
        suggestion: AI-generated suggested answer
    """
    state: ConversationState
    question: QuestionSpec
    suggestion: str
    help_text: str = ASSISTANCE_HELP_TEXT

    @property
    def criteria(self) -> Tuple[str, ...]:
        return self.question.criteria

    @property
    def example_answer(self) -> str:
        return self.question.example_answer

    def to_response(self) -> Dict[str, Any]:
        payload = {
            'needsAssistance': True,
            'suggestion': self.suggestion,
            'criteria': list(self.criteria),
            'exampleAnswer': self.example_answer,
            'helpText': self.help_text,
            'currentQuestionNumber': self.state.current_question,
        }
        payload.update(_base_payload(self.state))
        return payload


@dataclass(frozen=True)
class FollowUp:
    """
    Criteria unmet and follow-ups remain. Same question, re-asked.
    """
    state: ConversationState
    question: QuestionSpec
    prompt: FollowUpPrompt
    missing_criteria: Tuple[str, ...] = ()

    @property
    def follow_up_count(self) -> int:
        return self.state.follow_up_count

    def to_response(self) -> Dict[str, Any]:
        payload = {
            'isFollowUp': True,
            'question': self.prompt.to_dict(),
            'followUpCount': self.follow_up_count,
            'missingCriteria': list(self.missing_criteria),
            'currentQuestionNumber': self.state.current_question,
        }
        payload.update(_base_payload(self.state))
        return payload


@dataclass(frozen=True)
class Advance:
    """
    Move to the next static question.

    max_follow_ups_reached is True only on a forced advance (criteria still
    unmet after the follow-up budget was spent).
    """
    state: ConversationState
    question: QuestionSpec
    max_follow_ups_reached: bool = False
    missing_criteria: Tuple[str, ...] = field(default=())

    @property
    def current_question_number(self) -> int:
        return self.state.current_question

    def to_response(self) -> Dict[str, Any]:
        payload = {
            'question': self.question.to_dict(total_questions=self.state.total_questions),
            'maxFollowUpsReached': self.max_follow_ups_reached,
            'currentQuestionNumber': self.current_question_number,
            'followUpCount': 0,
        }
        if self.max_follow_ups_reached:
            payload['notice'] = FORCED_ADVANCE_NOTICE
            payload['missingCriteria'] = list(self.missing_criteria)
        payload.update(_base_payload(self.state))
        return payload


SequencerResult = Union[Complete, NeedsAssistance, FollowUp, Advance]
