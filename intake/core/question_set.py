"""
Question Set - Static ordered question table

Responsibilities:
- Load the question table from JSON
- Validate it once on load (fail fast)
- Look up questions by 1-indexed position

Design principles:
- Immutable after load; shared read-only by every session
- Deterministic: position N is always the same QuestionSpec
- Question count is data, not code
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from intake.contracts import QuestionSpec

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("id", "position", "question", "output_fields")


class QuestionSet:
    """
    Ordered, validated collection of QuestionSpec.

    Positions run 1..N with no gaps. Does not track any conversation state.
    """

    def __init__(self, questions: List[QuestionSpec]):
        """
        Build from already-constructed specs.

        Args:
            questions: QuestionSpec list (any order; sorted by position)

        Raises:
            ValueError: If the set is empty or inconsistent
        """
        self._questions = tuple(sorted(questions, key=lambda q: q.position))
        self._validate()
        self._by_id = {q.id: q for q in self._questions}

        logger.info(f"Question set loaded with {len(self._questions)} questions")

    @classmethod
    def from_file(cls, path: str) -> "QuestionSet":
        """
        Load question set from JSON.

        Args:
            path: Path to question_set.json

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the JSON is malformed or fails validation
        """
        question_path = Path(path)

        if not question_path.exists():
            raise FileNotFoundError(f"Question set not found: {path}")

        with open(question_path, 'r', encoding='utf-8') as f:
            try:
                raw = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Question set is not valid JSON: {e}") from e

        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "QuestionSet":
        """
        Build from the parsed JSON document ({"questions": [...]}).

        Raises:
            ValueError: If entries are missing required keys
        """
        entries = raw.get("questions") if isinstance(raw, dict) else None
        if not isinstance(entries, list) or not entries:
            raise ValueError("Question set must contain a non-empty 'questions' list")

        errors = []
        questions = []

        for i, entry in enumerate(entries):
            missing = [key for key in REQUIRED_KEYS if key not in entry]
            if missing:
                errors.append(f"Question at index {i} missing {', '.join(missing)}")
                continue

            questions.append(QuestionSpec(
                id=entry["id"],
                position=entry["position"],
                question=entry["question"],
                criteria=tuple(entry.get("criteria", [])),
                example_answer=entry.get("example_answer", ""),
                max_follow_ups=entry.get("max_follow_ups", 0),
                output_fields=tuple(entry["output_fields"]),
                help_text=entry.get("help_text", ""),
                category=entry.get("category", "business"),
            ))

        if errors:
            raise ValueError("Question set validation failed:\n  - " + "\n  - ".join(errors))

        return cls(questions)

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def total(self) -> int:
        return len(self._questions)

    @property
    def first(self) -> QuestionSpec:
        return self._questions[0]

    def get(self, position: int) -> QuestionSpec:
        """
        Get question at a 1-indexed position.

        Raises:
            IndexError: If position is outside 1..total
        """
        if position < 1 or position > self.total:
            raise IndexError(f"No question at position {position} (total {self.total})")
        return self._questions[position - 1]

    def get_by_id(self, question_id: str) -> Optional[QuestionSpec]:
        return self._by_id.get(question_id)

    def next_after(self, position: int) -> Optional[QuestionSpec]:
        """Question following position, or None if position is the last"""
        if position >= self.total:
            return None
        return self.get(position + 1)

    def __len__(self) -> int:
        return self.total

    def __iter__(self):
        return iter(self._questions)

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate(self):
        """
        Validate question table on construction.

        Checks:
        - At least one question
        - Positions are exactly 1..N
        - No duplicate question IDs
        - max_follow_ups is a non-negative integer
        - Every question populates at least one output field
        - Criteria are non-empty strings
        - No output field is shared between questions or named like a question id

        Raises:
            ValueError: If validation fails
        """
        errors = []

        if not self._questions:
            raise ValueError("Question set is empty")

        positions = [q.position for q in self._questions]
        expected = list(range(1, len(self._questions) + 1))
        if positions != expected:
            errors.append(f"Positions must be 1..{len(expected)} without gaps, got {positions}")

        seen_ids = set()
        for q in self._questions:
            if q.id in seen_ids:
                errors.append(f"Duplicate question id '{q.id}'")
            seen_ids.add(q.id)

            if not isinstance(q.max_follow_ups, int) or isinstance(q.max_follow_ups, bool) or q.max_follow_ups < 0:
                errors.append(f"Question '{q.id}' has invalid max_follow_ups {q.max_follow_ups!r}")

            if not q.output_fields:
                errors.append(f"Question '{q.id}' has no output_fields")

            for criterion in q.criteria:
                if not isinstance(criterion, str) or not criterion.strip():
                    errors.append(f"Question '{q.id}' has an empty criterion")

            if not q.question.strip():
                errors.append(f"Question '{q.id}' has empty question text")

        question_ids = {q.id for q in self._questions}
        field_owner = {}
        for q in self._questions:
            for field_name in q.output_fields:
                if field_name in question_ids and field_name != q.id:
                    errors.append(f"Question '{q.id}' output field '{field_name}' collides with a question id")
                if field_name in field_owner and field_owner[field_name] != q.id:
                    errors.append(
                        f"Output field '{field_name}' is shared by '{field_owner[field_name]}' and '{q.id}'"
                    )
                field_owner.setdefault(field_name, q.id)

        if errors:
            error_msg = "Question set validation failed:\n  - " + "\n  - ".join(errors)
            raise ValueError(error_msg)
