"""
Answer Accumulator - Pure merge of answer fragments into the answers mapping

Responsibilities:
- Concatenate a new fragment onto a question's accumulated answer
- Duplicate the accumulated text into every output field of the question
- Append turns to the conversation transcript

Design principles:
- Pure functions: inputs are never mutated, new containers are returned
- Accumulated text is keyed by question id (source of truth) and
  mirrored to each output field
- Never overwrites: prior text is always kept ahead of the new fragment
"""

import logging
from typing import Dict, List

from intake.contracts import QuestionSpec

logger = logging.getLogger(__name__)


def accumulated_for(answers: Dict[str, str], question: QuestionSpec) -> str:
    """
    Accumulated answer text for a question, or '' if none yet.

    Only the question id key is read. Output fields are mirrors and may
    hold text written by another question.
    """
    return answers.get(question.id) or ""


def merge(answers: Dict[str, str], question: QuestionSpec, fragment: str) -> Dict[str, str]:
    """
    Merge one answer fragment for a question.

    Args:
        answers: Current answers mapping (not modified)
        question: The question being answered
        fragment: New user text (initial answer or follow-up answer)

    Returns:
        dict: New answers mapping where the question id and every output
            field hold "prior + ' ' + fragment" (or just fragment)

    Example:
        >>> merge({}, q, "Slow triage")[q.output_fields[0]]
        'Slow triage'
        >>> merge({'business-problem': 'Slow triage'}, q, 'for 10 analysts')['problem_statement']
        'Slow triage for 10 analysts'
    """
    fragment = fragment.strip()
    prior = accumulated_for(answers, question)
    combined = f"{prior} {fragment}" if prior else fragment

    updated = dict(answers)
    updated[question.id] = combined
    for field_name in question.output_fields:
        updated[field_name] = combined

    logger.debug(f"Accumulated {len(combined)} chars for '{question.id}' into {list(question.output_fields)}")
    return updated


def append_turn(transcript: List[Dict[str, str]], role: str, content: str) -> List[Dict[str, str]]:
    """Return a new transcript with one {role, content} message appended"""
    return list(transcript) + [{'role': role, 'content': content}]
