"""
Sequencer - Static question/follow-up state machine (Functional Core)

Responsibilities:
- Start a conversation at question 1
- Merge each answer into the accumulated answers
- Validate accumulated answers against the active question's criteria
- Decide the next step: assistance, follow-up, advance or complete
- Detect replayed requests and return the cached outcome

Design principles:
- State in, state out: no conversation state held between calls
- Collaborators (question set, validator, follow-up generator) are
  stateless and safe to share across sessions
- Bounded retries: follow-ups never exceed the question's budget, and an
  LLM failure is "not all met", so every question eventually advances
- Invalid input is rejected, never clamped

Phases:
    AwaitingAnswer(q, n) -> AwaitingAnswer(q, n+1)      follow-up
    AwaitingAnswer(q, n) -> AwaitingAnswer(q+1, 0)      advance / forced advance
    AwaitingAnswer(q, n) -> AwaitingAssistanceChoice(q)  uncertainty
    AwaitingAnswer(N, n) -> Complete                     last question advances
"""

import logging
from typing import Any, Dict, Optional, Sequence

from intake.commands import (
    ConversationState,
    SequencerInputError,
    StartConversation,
    SubmitAnswer,
)
from intake.contracts import FollowUpPrompt, QuestionSpec
from intake.results import (
    Advance,
    Complete,
    COMPLETE_MESSAGE,
    FollowUp,
    NeedsAssistance,
    SequencerResult,
)
from intake.core.answer_accumulator import accumulated_for, append_turn, merge
from intake.utils.helpers import generate_session_id

logger = logging.getLogger(__name__)

# Replay cache kinds (ConversationState.last_response['kind'])
KIND_COMPLETE = "complete"
KIND_NEEDS_ASSISTANCE = "needs_assistance"
KIND_FOLLOW_UP = "follow_up"
KIND_ADVANCE = "advance"


class Sequencer:
    """
    Drives one conversation through the static question set.

    Functional core design:
    - advance() transforms state deterministically given collaborator output
    - The caller owns ConversationState between turns
    """

    def __init__(self, question_set, validator, follow_up_generator):
        """
        Initialize Sequencer with shared, stateless collaborators

        Args:
            question_set: QuestionSet (read-only)
            validator: CriteriaValidator (or anything with validate())
            follow_up_generator: FollowUpGenerator (or anything with
                generate_follow_up() and generate_suggestion())

        Raises:
            TypeError: If any collaborator is missing a required method
        """
        self._validate_modules(question_set, validator, follow_up_generator)

        self.question_set = question_set
        self.validator = validator
        self.follow_up_generator = follow_up_generator

        logger.info(f"Sequencer initialized ({question_set.total} questions)")

    def _validate_modules(self, question_set, validator, follow_up_generator):
        """Validate collaborator interfaces"""
        if not (hasattr(question_set, 'get') and callable(getattr(question_set, 'get', None))):
            raise TypeError("question_set must have callable get() method")

        if not (hasattr(validator, 'validate') and callable(getattr(validator, 'validate', None))):
            raise TypeError("validator must have callable validate() method")

        for method in ('generate_follow_up', 'generate_suggestion'):
            if not callable(getattr(follow_up_generator, method, None)):
                raise TypeError(f"follow_up_generator must have callable {method}() method")

    # =========================================================================
    # Public API
    # =========================================================================

    def handle(self, command) -> SequencerResult:
        """Dispatch a StartConversation or SubmitAnswer command"""
        if isinstance(command, StartConversation):
            return self.start(session_id=command.session_id)
        if isinstance(command, SubmitAnswer):
            return self.advance(command.state, command.answer, request_id=command.request_id)
        raise TypeError(f"Unknown command type: {type(command).__name__}")

    def start(self, session_id: Optional[str] = None) -> Advance:
        """
        Begin a new conversation.

        Returns:
            Advance carrying question 1 and the initial state
            (AwaitingAnswer(1, 0), transcript holding the first prompt)
        """
        first = self.question_set.first
        state = ConversationState(
            current_question=first.position,
            follow_up_count=0,
            answers={},
            transcript=[{'role': 'assistant', 'content': first.question}],
            total_questions=self.question_set.total,
            session_id=session_id or generate_session_id(),
        )
        logger.info(f"[{state.session_id}] Conversation started at '{first.id}'")
        return Advance(state=state, question=first)

    def advance(
        self,
        state: ConversationState,
        user_answer: str,
        request_id: Optional[str] = None
    ) -> SequencerResult:
        """
        Process one user answer for the active question.

        Args:
            state: Current conversation state (not modified)
            user_answer: Non-blank answer text
            request_id: Optional monotonic id; equal to state.last_request_id
                means the request is a replay

        Returns:
            SequencerResult: Complete | NeedsAssistance | FollowUp | Advance,
                each carrying the updated state

        Raises:
            SequencerInputError: If state or answer violate the contract
        """
        self._validate_input(state, user_answer)
        total = self.question_set.total

        if state.total_questions != total:
            state = state.evolve(total_questions=total)

        # Completion leaves the counter at total + 1, never beyond
        if state.current_question > total + 1:
            raise SequencerInputError(
                f"currentQuestionNumber {state.current_question} is past the end (total {total})"
            )

        if request_id is not None and request_id == state.last_request_id and state.last_response:
            logger.info(f"[{state.session_id}] Replayed request {request_id}, returning cached outcome")
            return self._replay(state)

        if state.current_question > total:
            logger.info(f"[{state.session_id}] Advance on complete conversation (no-op)")
            return Complete(state=state)

        question = self.question_set.get(state.current_question)

        if state.follow_up_count > question.max_follow_ups:
            raise SequencerInputError(
                f"followUpCount {state.follow_up_count} exceeds max {question.max_follow_ups} "
                f"for question '{question.id}'"
            )

        answers = merge(state.answers, question, user_answer)
        transcript = append_turn(state.transcript, 'user', user_answer.strip())

        if not question.has_criteria:
            logger.info(f"[{state.session_id}] '{question.id}' has no criteria, advancing")
            return self._advance(state, question, answers, transcript, request_id)

        validation = self.validator.validate(accumulated_for(answers, question), question)

        logger.info(
            f"[{state.session_id}] '{question.id}' validated: all_met={validation.all_met}, "
            f"uncertain={validation.uncertain}, source={validation.source}, "
            f"follow_ups={state.follow_up_count}/{question.max_follow_ups}"
        )

        if validation.uncertain:
            return self._needs_assistance(state, question, transcript, request_id)

        if validation.all_met:
            return self._advance(state, question, answers, transcript, request_id)

        if state.follow_up_count < question.max_follow_ups:
            return self._follow_up(state, question, answers, transcript, validation.missing_criteria, request_id)

        logger.info(f"[{state.session_id}] Follow-up budget spent on '{question.id}', forcing advance")
        return self._advance(
            state, question, answers, transcript, request_id,
            forced=True,
            missing_criteria=validation.missing_criteria
        )

    # =========================================================================
    # Branches
    # =========================================================================

    def _needs_assistance(
        self,
        state: ConversationState,
        question: QuestionSpec,
        transcript: list,
        request_id: Optional[str]
    ) -> NeedsAssistance:
        """
        Same question stays active; the uncertain fragment is not kept in
        the accumulated answer.
        """
        suggestion = self.follow_up_generator.generate_suggestion(question, state.answers, transcript)

        new_state = state.evolve(
            transcript=append_turn(transcript, 'assistant', suggestion),
            awaiting_assistance=True,
            last_request_id=request_id,
            last_response={'kind': KIND_NEEDS_ASSISTANCE, 'suggestion': suggestion},
        )
        return NeedsAssistance(state=new_state, question=question, suggestion=suggestion)

    def _follow_up(
        self,
        state: ConversationState,
        question: QuestionSpec,
        answers: Dict[str, str],
        transcript: list,
        missing_criteria: Sequence[str],
        request_id: Optional[str]
    ) -> FollowUp:
        attempt = state.follow_up_count + 1
        missing = tuple(missing_criteria) or tuple(question.criteria)

        prompt = self.follow_up_generator.generate_follow_up(
            question,
            missing,
            accumulated_for(answers, question),
            attempt
        )

        new_state = state.evolve(
            follow_up_count=attempt,
            answers=answers,
            transcript=append_turn(transcript, 'assistant', prompt.text),
            awaiting_assistance=False,
            last_request_id=request_id,
            last_response={
                'kind': KIND_FOLLOW_UP,
                'prompt': _prompt_to_cache(prompt),
                'missingCriteria': list(missing),
            },
        )

        logger.info(f"[{state.session_id}] Follow-up {attempt}/{question.max_follow_ups} on '{question.id}'")
        return FollowUp(state=new_state, question=question, prompt=prompt, missing_criteria=missing)

    def _advance(
        self,
        state: ConversationState,
        question: QuestionSpec,
        answers: Dict[str, str],
        transcript: list,
        request_id: Optional[str],
        forced: bool = False,
        missing_criteria: Sequence[str] = ()
    ) -> SequencerResult:
        next_question = self.question_set.next_after(question.position)
        missing = tuple(missing_criteria) if forced else ()

        if next_question is None:
            new_state = state.evolve(
                current_question=question.position + 1,
                follow_up_count=0,
                answers=answers,
                transcript=append_turn(transcript, 'assistant', COMPLETE_MESSAGE),
                awaiting_assistance=False,
                last_request_id=request_id,
                last_response={'kind': KIND_COMPLETE},
            )
            logger.info(f"[{state.session_id}] Conversation complete (forced={forced})")
            return Complete(state=new_state)

        new_state = state.evolve(
            current_question=next_question.position,
            follow_up_count=0,
            answers=answers,
            transcript=append_turn(transcript, 'assistant', next_question.question),
            awaiting_assistance=False,
            last_request_id=request_id,
            last_response={
                'kind': KIND_ADVANCE,
                'maxFollowUpsReached': forced,
                'missingCriteria': list(missing),
            },
        )

        logger.info(f"[{state.session_id}] Advanced '{question.id}' -> '{next_question.id}' (forced={forced})")
        return Advance(
            state=new_state,
            question=next_question,
            max_follow_ups_reached=forced,
            missing_criteria=missing,
        )

    # =========================================================================
    # Replay and validation
    # =========================================================================

    def _replay(self, state: ConversationState) -> SequencerResult:
        """Rebuild the cached result for state.last_request_id without side effects"""
        cached = state.last_response or {}
        kind = cached.get('kind')

        if kind == KIND_COMPLETE or state.current_question > self.question_set.total:
            return Complete(state=state)

        question = self.question_set.get(state.current_question)

        if kind == KIND_NEEDS_ASSISTANCE:
            return NeedsAssistance(state=state, question=question, suggestion=cached.get('suggestion', ''))

        if kind == KIND_FOLLOW_UP:
            return FollowUp(
                state=state,
                question=question,
                prompt=_prompt_from_cache(cached.get('prompt') or {}, question, state.follow_up_count),
                missing_criteria=tuple(cached.get('missingCriteria', ())),
            )

        if kind == KIND_ADVANCE:
            return Advance(
                state=state,
                question=question,
                max_follow_ups_reached=bool(cached.get('maxFollowUpsReached', False)),
                missing_criteria=tuple(cached.get('missingCriteria', ())),
            )

        raise SequencerInputError(f"lastResponse has unknown kind {kind!r}")

    def _validate_input(self, state: ConversationState, user_answer: str) -> None:
        """
        Reject malformed input (no clamping).

        Raises:
            SequencerInputError: On any violation
        """
        if not isinstance(state, ConversationState):
            raise SequencerInputError(f"state must be ConversationState, got {type(state).__name__}")

        if not isinstance(user_answer, str):
            raise SequencerInputError(f"answer must be a string, got {type(user_answer).__name__}")

        if not user_answer.strip():
            raise SequencerInputError("answer must not be empty")

        if state.current_question < 1:
            raise SequencerInputError(f"currentQuestionNumber must be >= 1, got {state.current_question}")

        if state.follow_up_count < 0:
            raise SequencerInputError(f"followUpCount must be >= 0, got {state.follow_up_count}")


def _prompt_to_cache(prompt: FollowUpPrompt) -> Dict[str, Any]:
    return {
        'id': prompt.id,
        'text': prompt.text,
        'attempt': prompt.attempt,
        'maxAttempts': prompt.max_attempts,
        'helpText': prompt.help_text,
        'exampleResponse': prompt.example_answer,
        'templated': prompt.templated,
    }


def _prompt_from_cache(cached: Dict[str, Any], question: QuestionSpec, attempt: int) -> FollowUpPrompt:
    return FollowUpPrompt(
        id=cached.get('id', f"{question.id}-followup-{attempt}"),
        text=cached.get('text', ''),
        attempt=cached.get('attempt', attempt),
        max_attempts=cached.get('maxAttempts', question.max_follow_ups),
        help_text=cached.get('helpText', ''),
        example_answer=cached.get('exampleResponse', question.example_answer),
        templated=bool(cached.get('templated', False)),
    )
