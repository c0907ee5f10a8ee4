"""
Idea Submission - Completion-time orchestration

Responsibilities:
- Map the finished conversation onto the 39-column record
- Generate the four recommendation fields
- Validate critical fields
- Append the record to the idea store

Design principles:
- Thin orchestration (logic lives in FieldMapper/RecommendationGenerator)
- LLM-mapped values take precedence over accumulated answers
- Incomplete records are rejected before anything is written
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from intake.contracts import Recommendations
from intake.core.field_mapper import FieldMapper, missing_critical_fields

logger = logging.getLogger(__name__)


class IncompleteSubmissionError(ValueError):
    """Raised when a submission lacks transcript or critical fields"""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_fields = list(missing_fields or [])


@dataclass(frozen=True)
class SubmissionReceipt:
    """
    Outcome of a successful submission.

    Attributes:
        opportunity_id: Generated OPP-<year>-<hex> identifier
        opportunity_name: Name stored in the record
        csv_path: Absolute path of the CSV file written
        recommendations: The four suggested_* values
        row: The full record as written
    """
    opportunity_id: str
    opportunity_name: str
    csv_path: str
    recommendations: Recommendations
    row: Dict[str, str]

    def to_response(self) -> Dict[str, Any]:
        return {
            'success': True,
            'message': 'Idea submitted successfully',
            'opportunityId': self.opportunity_id,
            'opportunityName': self.opportunity_name,
            'csvPath': self.csv_path,
            'recommendations': self.recommendations.to_dict(),
        }


class IdeaSubmission:
    """Turn a finished conversation into a stored idea record"""

    def __init__(self, field_mapper: FieldMapper, recommendation_generator, idea_store):
        """
        Args:
            field_mapper: FieldMapper instance
            recommendation_generator: RecommendationGenerator instance
            idea_store: IdeaStore instance

        Raises:
            TypeError: If a collaborator is missing a required method
        """
        if not callable(getattr(field_mapper, 'build_row', None)):
            raise TypeError("field_mapper must have callable build_row() method")
        if not callable(getattr(recommendation_generator, 'generate', None)):
            raise TypeError("recommendation_generator must have callable generate() method")
        if not callable(getattr(idea_store, 'append', None)):
            raise TypeError("idea_store must have callable append() method")

        self.field_mapper = field_mapper
        self.recommendation_generator = recommendation_generator
        self.idea_store = idea_store

    def submit(self, answers: Dict[str, str], transcript: List[Dict[str, str]]) -> SubmissionReceipt:
        """
        Map, enrich, validate and store one idea.

        Args:
            answers: Accumulated answers from the Sequencer
            transcript: Full conversation

        Returns:
            SubmissionReceipt

        Raises:
            IncompleteSubmissionError: If transcript is empty or critical
                fields are missing (nothing is written)
        """
        if not transcript:
            raise IncompleteSubmissionError("Conversation history is required to map data properly")

        logger.info(f"Submitting idea ({len(answers)} answer fields, {len(transcript)} messages)")

        # Step 1: LLM field mapping (best-effort)
        mapped = self.field_mapper.map_fields(answers, transcript)
        enriched = dict(answers)
        enriched.update(mapped)

        # Step 2: Recommendations
        recommendations = self.recommendation_generator.generate(enriched)

        # Step 3: Record
        row = self.field_mapper.build_row(answers, mapped, recommendations, transcript)

        missing = missing_critical_fields(row)
        if missing:
            logger.warning(f"Submission missing critical fields: {missing}")
            raise IncompleteSubmissionError("Some required fields are missing", missing)

        # Step 4: Store
        csv_path = self.idea_store.append(row)
        logger.info(f"Idea stored: {row['opportunity_id']} ({row['opportunity_name']})")

        return SubmissionReceipt(
            opportunity_id=row['opportunity_id'],
            opportunity_name=row['opportunity_name'],
            csv_path=csv_path,
            recommendations=recommendations,
            row=row,
        )
