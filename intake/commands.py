"""
Conversation state and command types for the Sequencer.

ConversationState is the only session record. The Sequencer receives it,
returns an updated copy, and keeps nothing between calls. The caller (browser
client, console loop, test) owns it between turns.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
import copy

# Conversation phases
PHASE_AWAITING_ANSWER = "awaiting_answer"
PHASE_AWAITING_ASSISTANCE_CHOICE = "awaiting_assistance_choice"
PHASE_COMPLETE = "complete"

VALID_ROLES = {"user", "assistant", "system"}


class SequencerInputError(ValueError):
    """Raised when a caller passes a state or answer that violates the contract"""
    pass


def validate_answers(answers: Any) -> Dict[str, str]:
    """
    Check a client answers mapping (field -> text).

    Returns:
        dict: Shallow copy ({} for None)

    Raises:
        SequencerInputError: If it is not an object of strings
    """
    answers = answers or {}
    if not isinstance(answers, dict):
        raise SequencerInputError("answers must be an object")
    for key, value in answers.items():
        if not isinstance(value, str):
            raise SequencerInputError(f"answer for '{key}' must be a string")
    return dict(answers)


def validate_transcript(transcript: Any) -> List[Dict[str, str]]:
    """
    Check a client transcript (list of {role, content}).

    Returns:
        list: Copy holding only role and content ([] for None)

    Raises:
        SequencerInputError: If any message is malformed
    """
    transcript = transcript or []
    if not isinstance(transcript, list):
        raise SequencerInputError("transcript must be a list")
    for index, message in enumerate(transcript):
        if not isinstance(message, dict):
            raise SequencerInputError(f"transcript[{index}] must be an object")
        if message.get('role') not in VALID_ROLES:
            raise SequencerInputError(
                f"transcript[{index}] has invalid role {message.get('role')!r}"
            )
        if not isinstance(message.get('content'), str):
            raise SequencerInputError(f"transcript[{index}] content must be a string")
    return [{'role': m['role'], 'content': m['content']} for m in transcript]


@dataclass(frozen=True)
class ConversationState:
    """
    Mutable-by-replacement session record.

    Rules:
    - Never mutated in place; the Sequencer returns a new instance
    - answers/transcript are deep copied on the way in and out
    - Serializable to/from JSON

    Attributes:
        current_question: 1-indexed ordinal of the active question.
            Greater than the question count once the sequence is complete.
        follow_up_count: Follow-ups already issued for the active question
        answers: Output field name -> accumulated answer text
        transcript: Ordered role/content messages used as LLM context
        total_questions: Question count when the state was created
        awaiting_assistance: Last response was an AI-assisted suggestion
        session_id: Opaque identifier for logging
        last_request_id: Request id of the last processed answer
        last_response: Serialized response for last_request_id (replay)
    """
    current_question: int = 1
    follow_up_count: int = 0
    answers: Dict[str, str] = field(default_factory=dict)
    transcript: List[Dict[str, str]] = field(default_factory=list)
    total_questions: int = 0
    awaiting_assistance: bool = False
    session_id: Optional[str] = None
    last_request_id: Optional[str] = None
    last_response: Optional[Dict[str, Any]] = None

    @property
    def is_complete(self) -> bool:
        return self.total_questions > 0 and self.current_question > self.total_questions

    @property
    def phase(self) -> str:
        """
        Explicit state-machine phase.

        AwaitingAnswer(q, n) | AwaitingAssistanceChoice(q) | Complete
        """
        if self.is_complete:
            return PHASE_COMPLETE
        if self.awaiting_assistance:
            return PHASE_AWAITING_ASSISTANCE_CHOICE
        return PHASE_AWAITING_ANSWER

    def evolve(self, **changes) -> "ConversationState":
        """Return a copy with the given fields replaced (deep copies containers)"""
        if 'answers' in changes:
            changes['answers'] = dict(changes['answers'])
        if 'transcript' in changes:
            changes['transcript'] = copy.deepcopy(changes['transcript'])
        return replace(self, **changes)

    def to_json(self) -> Dict[str, Any]:
        """
        Serialize to JSON-safe dict (deep copy).

        Returns:
            dict: Client-facing state payload
        """
        return {
            'currentQuestionNumber': self.current_question,
            'followUpCount': self.follow_up_count,
            'answers': dict(self.answers),
            'transcript': copy.deepcopy(self.transcript),
            'totalQuestions': self.total_questions,
            'awaitingAssistance': self.awaiting_assistance,
            'sessionId': self.session_id,
            'lastRequestId': self.last_request_id,
            'lastResponse': copy.deepcopy(self.last_response),
        }

    @staticmethod
    def from_json(data: Dict[str, Any]) -> "ConversationState":
        """
        Deserialize and validate a client payload.

        Accepts both the to_json() layout and the bare request layout
        (answers, transcript, currentQuestionNumber, followUpCount).

        Args:
            data: Raw state dict from JSON

        Returns:
            ConversationState: Validated state

        Raises:
            SequencerInputError: If any field is missing or malformed
        """
        if not isinstance(data, dict):
            raise SequencerInputError(f"state must be an object, got {type(data).__name__}")

        if 'currentQuestionNumber' not in data:
            raise SequencerInputError("state missing currentQuestionNumber")

        current_question = data.get('currentQuestionNumber')
        follow_up_count = data.get('followUpCount', 0)

        # bool is an int subclass; reject it explicitly
        if not isinstance(current_question, int) or isinstance(current_question, bool):
            raise SequencerInputError(
                f"currentQuestionNumber must be an integer, got {current_question!r}"
            )
        if not isinstance(follow_up_count, int) or isinstance(follow_up_count, bool):
            raise SequencerInputError(
                f"followUpCount must be an integer, got {follow_up_count!r}"
            )

        total_questions = data.get('totalQuestions') or 0
        if not isinstance(total_questions, int) or isinstance(total_questions, bool) or total_questions < 0:
            raise SequencerInputError(
                f"totalQuestions must be a non-negative integer, got {total_questions!r}"
            )

        answers = validate_answers(data.get('answers'))
        transcript = validate_transcript(data.get('transcript'))

        last_response = data.get('lastResponse')
        if last_response is not None and not isinstance(last_response, dict):
            raise SequencerInputError("lastResponse must be an object")

        return ConversationState(
            current_question=current_question,
            follow_up_count=follow_up_count,
            answers=answers,
            transcript=transcript,
            total_questions=total_questions,
            awaiting_assistance=bool(data.get('awaitingAssistance', False)),
            session_id=data.get('sessionId'),
            last_request_id=data.get('lastRequestId'),
            last_response=copy.deepcopy(last_response),
        )


# Command types

@dataclass(frozen=True)
class StartConversation:
    """
    Begin a new conversation.

    Returns: Advance result carrying question 1 and the initial state.
    """
    session_id: Optional[str] = None


@dataclass(frozen=True)
class SubmitAnswer:
    """
    Process one user answer for the active question.

    request_id: optional monotonic id; a repeat of the last id is a replay.
    """
    state: ConversationState
    answer: str
    request_id: Optional[str] = None
