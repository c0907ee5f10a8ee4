"""
Shared fixtures
"""

from pathlib import Path

import pytest

from intake.contracts import QuestionSpec
from intake.core.question_set import QuestionSet

REPO_ROOT = Path(__file__).resolve().parent.parent
QUESTION_SET_PATH = REPO_ROOT / "data" / "question_set.json"


@pytest.fixture
def question_set():
    """The shipped 11-question set"""
    return QuestionSet.from_file(str(QUESTION_SET_PATH))


@pytest.fixture
def small_question_set():
    """
    Three questions:
        1 intro (no criteria)
        2 business-problem (3 criteria, 2 follow-ups)
        3 risks (1 criterion, 1 follow-up)
    """
    return QuestionSet([
        QuestionSpec(
            id='idea-description',
            position=1,
            question='Describe your idea',
            output_fields=('idea_description',),
        ),
        QuestionSpec(
            id='business-problem',
            position=2,
            question='What business problem does this solution address?',
            criteria=('Describes the pain point', 'Explains why it is problematic', 'Indicates the scope'),
            example_answer='Manual triage takes 4 hours daily for 10 analysts.',
            max_follow_ups=2,
            output_fields=('problem_statement', 'current_process_issues'),
        ),
        QuestionSpec(
            id='risks',
            position=3,
            question='What risks might come up?',
            criteria=('Identifies at least one risk',),
            example_answer='Model accuracy may be low initially.',
            max_follow_ups=1,
            output_fields=('risks_list',),
        ),
    ])
