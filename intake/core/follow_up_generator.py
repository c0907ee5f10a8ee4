"""
Follow-Up Generator - Re-ask prompts and AI-assisted suggestions

Responsibilities:
- Generate one follow-up question targeting missing criteria
- Generate a suggested answer for users who don't know what to say
- Fall back to deterministic templates when the LLM fails

Design principles:
- No side effects on ConversationState (pure function of inputs + one LLM call)
- The user is never left without a next prompt
- Final attempt is phrased more directly (prompt-level policy)
"""

import logging
from typing import Any, Dict, List, Sequence

from intake.contracts import FollowUpPrompt, QuestionSpec
from intake.utils.llm_client import LLMError
from intake.utils import prompt_builder

logger = logging.getLogger(__name__)

FALLBACK_SUGGESTION = (
    "Based on your idea, I recommend starting with a proof of concept to "
    "validate feasibility before full implementation."
)
GENERIC_MISSING = "your answer"


def templated_follow_up_text(missing_criteria: Sequence[str]) -> str:
    """
    Deterministic follow-up quoting the first missing criterion.

    Examples:
        >>> templated_follow_up_text(['Indicates the scope of the problem'])
        'Could you provide more detail about indicates the scope of the problem?'
    """
    first = missing_criteria[0].strip() if missing_criteria else GENERIC_MISSING
    first = first.rstrip('.?!')
    return f"Could you provide more detail about {first[:1].lower() + first[1:]}?"


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class FollowUpGenerator:
    """Generate follow-up prompts and suggestions via the LLM"""

    def __init__(
        self,
        llm_client,
        temperature: float = 0.7,
        max_tokens: int = 400
    ) -> None:
        """
        Initialize generator

        Args:
            llm_client: Client exposing generate_json(messages, max_tokens, temperature)
            temperature: Sampling temperature for question wording
            max_tokens: Max tokens to generate

        Raises:
            TypeError: If llm_client lacks a callable generate_json()
        """
        if not hasattr(llm_client, 'generate_json') or not callable(llm_client.generate_json):
            raise TypeError("llm_client must have callable generate_json() method")

        self.llm_client = llm_client
        self.temperature = temperature
        self.max_tokens = max_tokens

    def generate_follow_up(
        self,
        question: QuestionSpec,
        missing_criteria: Sequence[str],
        prior_answer: str,
        attempt_number: int
    ) -> FollowUpPrompt:
        """
        Generate the follow-up for attempt_number (1-indexed).

        Args:
            question: Question being re-asked
            missing_criteria: Criteria still unmet
            prior_answer: Accumulated answer so far
            attempt_number: Which follow-up this is (1..max_follow_ups)

        Returns:
            FollowUpPrompt: Generated, or templated if the LLM failed
        """
        prompt_id = f"{question.id}-followup-{attempt_number}"
        missing = list(missing_criteria) or list(question.criteria)
        help_text = f"We still need: {', '.join(missing)}" if missing else question.help_text

        messages = prompt_builder.follow_up_prompt(question, missing, prior_answer, attempt_number)

        try:
            data = self.llm_client.generate_json(
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except LLMError as e:
            logger.warning(f"[{question.id}] Follow-up generation failed, using template: {e}")
            data = {}
        except Exception as e:
            logger.error(f"[{question.id}] Unexpected follow-up error, using template: {type(e).__name__} - {e}")
            data = {}

        text = _clean(data.get('text')) if isinstance(data, dict) else ""

        if not text:
            logger.info(f"[{question.id}] Templated follow-up {attempt_number}/{question.max_follow_ups}")
            return FollowUpPrompt(
                id=prompt_id,
                text=templated_follow_up_text(missing),
                attempt=attempt_number,
                max_attempts=question.max_follow_ups,
                help_text=help_text,
                example_answer=question.example_answer,
                templated=True,
            )

        logger.info(f"[{question.id}] Generated follow-up {attempt_number}/{question.max_follow_ups}")
        return FollowUpPrompt(
            id=prompt_id,
            text=text,
            attempt=attempt_number,
            max_attempts=question.max_follow_ups,
            help_text=_clean(data.get('helpText')) or help_text,
            example_answer=_clean(data.get('exampleResponse')) or question.example_answer,
            templated=False,
        )

    def generate_suggestion(
        self,
        question: QuestionSpec,
        answers: Dict[str, str],
        transcript: List[Dict[str, str]]
    ) -> str:
        """
        Suggest an answer for a user who expressed uncertainty.

        Returns:
            str: Suggestion text (fixed fallback on failure)
        """
        messages = prompt_builder.suggestion_prompt(question, answers, transcript)

        try:
            data = self.llm_client.generate_json(
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except LLMError as e:
            logger.warning(f"[{question.id}] Suggestion generation failed, using fallback: {e}")
            return FALLBACK_SUGGESTION
        except Exception as e:
            logger.error(f"[{question.id}] Unexpected suggestion error, using fallback: {type(e).__name__} - {e}")
            return FALLBACK_SUGGESTION

        suggestion = _clean(data.get('suggestion')) if isinstance(data, dict) else ""
        if not suggestion:
            logger.warning(f"[{question.id}] Empty suggestion from model, using fallback")
            return FALLBACK_SUGGESTION

        return suggestion
