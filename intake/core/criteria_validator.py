"""
Criteria Validator - Judge whether an accumulated answer meets a question's criteria

Responsibilities:
- Detect uncertainty phrases locally (no LLM call)
- Build the validation prompt and call the LLM in JSON mode
- Normalize the model verdict into a ValidationResult
- Fail closed on any LLM error or malformed output

Design principles:
- Early return for uncertainty (deterministic, cheap)
- all_met requires the model's allMet AND an empty missing list
- Never raises for upstream failures: the worst case is "not all met",
  which keeps the Sequencer's follow-up budget in charge of progress
"""

import logging
import re
from typing import Any, Dict, List, Optional

from intake.contracts import (
    QuestionSpec,
    ValidationResult,
    SOURCE_PHRASE_MATCH,
    SOURCE_MODEL,
    SOURCE_SKIPPED,
)
from intake.utils.llm_client import LLMError
from intake.utils import prompt_builder

logger = logging.getLogger(__name__)

# Uncertainty phrases (case-insensitive containment, early return)
UNCERTAINTY_PHRASES = [
    "i don't know",
    "not sure",
    "don't know",
    "do not know",
    "unsure",
    "no idea",
    "not certain",
    "unclear",
]

# Typographic apostrophes users paste from word processors / phones
_APOSTROPHES = re.compile(r"[‘’ʼ`´]")


def normalize_text(text: str) -> str:
    """Lowercase, straighten apostrophes, collapse whitespace"""
    text = _APOSTROPHES.sub("'", text or "")
    return " ".join(text.lower().split())


def detect_uncertainty(text: str) -> Optional[str]:
    """
    Return the first uncertainty phrase contained in text, or None.

    Examples:
        >>> detect_uncertainty("Honestly I Don’t Know")
        "i don't know"
        >>> detect_uncertainty("We process 5M logs a day") is None
        True
    """
    normalized = normalize_text(text)
    for phrase in UNCERTAINTY_PHRASES:
        if phrase in normalized:
            return phrase
    return None


def _as_str_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    if not all(isinstance(item, str) for item in value):
        return None
    return [item.strip() for item in value if item.strip()]


class CriteriaValidator:
    """Validate accumulated answers against question criteria via the LLM"""

    def __init__(
        self,
        llm_client,
        temperature: float = 0.0,
        max_tokens: int = 400
    ) -> None:
        """
        Initialize validator

        Args:
            llm_client: Client exposing generate_json(messages, max_tokens, temperature)
            temperature: LLM sampling temperature (default 0.0)
            max_tokens: Max tokens to generate

        Raises:
            TypeError: If llm_client lacks a callable generate_json()
        """
        if not hasattr(llm_client, 'generate_json') or not callable(llm_client.generate_json):
            raise TypeError("llm_client must have callable generate_json() method")

        self.llm_client = llm_client
        self.temperature = temperature
        self.max_tokens = max_tokens

        logger.info(f"Criteria Validator initialized (temp={temperature}, max_tokens={max_tokens})")

    def validate(self, accumulated_answer: str, question: QuestionSpec) -> ValidationResult:
        """
        Check the full accumulated answer for a question.

        Args:
            accumulated_answer: All answer text for the question so far
            question: The question and its criteria

        Returns:
            ValidationResult: Never raises for LLM problems; returns a
                fail-closed verdict instead

        Examples:
            >>> validator.validate("I'm not sure", question).uncertain
            True
        """
        criteria = tuple(question.criteria)

        if not criteria:
            return ValidationResult(
                all_met=True,
                reason="Question has no criteria",
                source=SOURCE_SKIPPED,
            )

        phrase = detect_uncertainty(accumulated_answer)
        if phrase is not None:
            logger.info(f"[{question.id}] Uncertainty phrase matched: '{phrase}'")
            return ValidationResult(
                all_met=False,
                met_criteria=(),
                missing_criteria=criteria,
                uncertain=True,
                reason=f"User expressed uncertainty ('{phrase}')",
                source=SOURCE_PHRASE_MATCH,
            )

        messages = prompt_builder.criteria_validation_prompt(question, accumulated_answer)
        logger.debug(f"[{question.id}] Validating {len(accumulated_answer)} chars against {len(criteria)} criteria")

        try:
            verdict = self.llm_client.generate_json(
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except LLMError as e:
            logger.warning(f"[{question.id}] Validation call failed, failing closed: {e}")
            return ValidationResult.fail_closed(criteria, f"Validation unavailable: {e}")
        except Exception as e:
            logger.error(f"[{question.id}] Unexpected validation error, failing closed: {type(e).__name__} - {e}")
            return ValidationResult.fail_closed(criteria, f"Validation error: {type(e).__name__}")

        return self._interpret(verdict, question)

    def _interpret(self, verdict: Dict[str, Any], question: QuestionSpec) -> ValidationResult:
        """
        Normalize the model's JSON verdict.

        Malformed shapes (non-bool allMet, non-list criteria) fail closed.
        """
        criteria = tuple(question.criteria)

        if not isinstance(verdict, dict):
            logger.warning(f"[{question.id}] Verdict is not an object, failing closed")
            return ValidationResult.fail_closed(criteria, "Malformed validation response")

        all_met = verdict.get('allMet')
        met = _as_str_list(verdict.get('metCriteria', []))
        missing = _as_str_list(verdict.get('missingCriteria', []))

        if not isinstance(all_met, bool) or met is None or missing is None:
            logger.warning(f"[{question.id}] Verdict has malformed fields, failing closed: {verdict}")
            return ValidationResult.fail_closed(criteria, "Malformed validation response")

        uncertain = verdict.get('uncertain') is True
        reason = verdict.get('reason') if isinstance(verdict.get('reason'), str) else ""

        # Model said "not met" without naming anything: treat all as missing
        if not all_met and not missing:
            missing = [c for c in criteria if c not in met] or list(criteria)

        final_all_met = all_met and not missing and not uncertain

        logger.info(
            f"[{question.id}] Validation: all_met={final_all_met}, "
            f"met={len(met)}, missing={len(missing)}, uncertain={uncertain}"
        )

        return ValidationResult(
            all_met=final_all_met,
            met_criteria=tuple(met),
            missing_criteria=tuple(missing),
            uncertain=uncertain,
            reason=reason,
            source=SOURCE_MODEL,
        )
