"""
Test Sequencer state machine

Covers advance/follow-up/assistance/complete branches, bounded follow-ups,
accumulation, fail-closed behaviour, input rejection and replay.
"""

import pytest

from intake.commands import (
    ConversationState,
    SequencerInputError,
    StartConversation,
    SubmitAnswer,
    PHASE_AWAITING_ANSWER,
    PHASE_AWAITING_ASSISTANCE_CHOICE,
    PHASE_COMPLETE,
)
from intake.core.criteria_validator import CriteriaValidator
from intake.core.follow_up_generator import FollowUpGenerator
from intake.core.sequencer import Sequencer
from intake.results import Advance, Complete, FollowUp, NeedsAssistance
from intake.utils.llm_client import LLMError

from mock_llm import ScriptedLLMClient, verdict

MISSING_ALL = ['Describes the pain point', 'Explains why it is problematic', 'Indicates the scope']


def build_sequencer(question_set, client):
    return Sequencer(question_set, CriteriaValidator(client), FollowUpGenerator(client))


def at_question_two(sequencer):
    """State positioned on business-problem (after the intro answer)"""
    start = sequencer.start(session_id='test')
    result = sequencer.advance(start.state, 'An assistant that triages security logs')
    assert isinstance(result, Advance)
    return result.state


# ========== Start ==========

def test_start_returns_first_question(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())

    result = sequencer.start(session_id='abc')

    assert isinstance(result, Advance)
    assert result.question.id == 'idea-description'
    assert result.state.current_question == 1
    assert result.state.follow_up_count == 0
    assert result.state.total_questions == 3
    assert result.state.session_id == 'abc'
    assert result.state.phase == PHASE_AWAITING_ANSWER
    assert result.state.transcript == [{'role': 'assistant', 'content': 'Describe your idea'}]
    assert result.max_follow_ups_reached is False


def test_start_generates_session_id(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    assert sequencer.start().state.session_id


# ========== Criteria-less question ==========

def test_question_without_criteria_advances_without_llm(small_question_set):
    client = ScriptedLLMClient()
    sequencer = build_sequencer(small_question_set, client)
    start = sequencer.start()

    result = sequencer.advance(start.state, 'An assistant that triages security logs')

    assert isinstance(result, Advance)
    assert result.question.id == 'business-problem'
    assert result.state.current_question == 2
    assert result.state.follow_up_count == 0
    assert result.state.answers['idea_description'] == 'An assistant that triages security logs'
    assert result.max_follow_ups_reached is False
    assert client.call_count == 0


# ========== All criteria met ==========

def test_all_met_advances_and_resets_count(small_question_set):
    client = ScriptedLLMClient(validation=[verdict(missing=['Indicates the scope']), verdict(met=MISSING_ALL)])
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    first = sequencer.advance(state, 'Manual triage is slow')
    assert isinstance(first, FollowUp)
    assert first.state.follow_up_count == 1

    second = sequencer.advance(first.state, 'It affects 10 analysts daily')
    assert isinstance(second, Advance)
    assert second.question.id == 'risks'
    assert second.state.current_question == 3
    assert second.state.follow_up_count == 0
    assert second.max_follow_ups_reached is False

    response = second.to_response()
    assert response['followUpCount'] == 0
    assert response['maxFollowUpsReached'] is False
    assert response['currentQuestionNumber'] == 3


# ========== Follow-ups and forced advance ==========

def test_three_criteria_two_follow_ups_then_forced_advance(small_question_set):
    client = ScriptedLLMClient(validation=[
        verdict(missing=MISSING_ALL),
        verdict(missing=MISSING_ALL[1:]),
        verdict(missing=MISSING_ALL[2:]),
    ])
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    r1 = sequencer.advance(state, 'Triage is slow.')
    assert isinstance(r1, FollowUp)
    assert r1.state.follow_up_count == 1
    assert r1.state.current_question == 2
    assert r1.missing_criteria == tuple(MISSING_ALL)
    assert r1.prompt.attempt == 1
    assert not r1.prompt.is_final_attempt

    r2 = sequencer.advance(r1.state, 'It costs overtime.')
    assert isinstance(r2, FollowUp)
    assert r2.state.follow_up_count == 2
    assert r2.prompt.is_final_attempt

    r3 = sequencer.advance(r2.state, 'Affects 10 analysts.')
    assert isinstance(r3, Advance)
    assert r3.max_follow_ups_reached is True
    assert r3.missing_criteria == ('Indicates the scope',)
    assert r3.question.id == 'risks'
    assert r3.state.follow_up_count == 0

    accumulated = 'Triage is slow. It costs overtime. Affects 10 analysts.'
    assert r3.state.answers['problem_statement'] == accumulated
    assert r3.state.answers['current_process_issues'] == accumulated

    response = r3.to_response()
    assert response['maxFollowUpsReached'] is True
    assert response['notice'] == 'Moving forward with your current answer.'


def test_validator_receives_full_accumulated_answer(small_question_set):
    client = ScriptedLLMClient(validation=[verdict(missing=MISSING_ALL), verdict(met=MISSING_ALL)])
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    r1 = sequencer.advance(state, 'First part.')
    sequencer.advance(r1.state, 'Second part.')

    validation_prompts = [
        call[1]['content'] for call in client.calls
        if 'REQUIRED CRITERIA' in call[1]['content']
    ]
    assert 'USER RESPONSE: "First part."' in validation_prompts[0]
    assert 'USER RESPONSE: "First part. Second part."' in validation_prompts[1]


def test_follow_up_response_shape(small_question_set):
    client = ScriptedLLMClient(
        validation=[verdict(missing=MISSING_ALL)],
        follow_up=[{'text': 'You mentioned triage. Who is affected?', 'helpText': 'Scope', 'exampleResponse': 'Ten analysts'}],
    )
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    response = sequencer.advance(state, 'Triage is slow').to_response()

    assert response['isFollowUp'] is True
    assert response['followUpCount'] == 1
    assert response['currentQuestionNumber'] == 2
    assert response['missingCriteria'] == MISSING_ALL
    assert response['question']['text'] == 'You mentioned triage. Who is affected?'
    assert response['question']['stepInfo'] == 'Follow-up question 1 of 2'
    assert response['state']['followUpCount'] == 1


def test_question_with_zero_follow_ups_force_advances_immediately():
    from intake.contracts import QuestionSpec
    from intake.core.question_set import QuestionSet

    qs = QuestionSet([
        QuestionSpec(id='a', position=1, question='A?', criteria=('x',), max_follow_ups=0, output_fields=('a',)),
        QuestionSpec(id='b', position=2, question='B?', output_fields=('b',)),
    ])
    client = ScriptedLLMClient(validation=[verdict(missing=['x'])])
    sequencer = build_sequencer(qs, client)

    result = sequencer.advance(sequencer.start().state, 'something')

    assert isinstance(result, Advance)
    assert result.max_follow_ups_reached is True
    assert client.calls_by_kind['follow_up'] == 0


# ========== Fail-closed ==========

def test_llm_failure_fails_closed_and_stays_bounded(small_question_set):
    client = ScriptedLLMClient(
        validation=[LLMError("timeout")] * 3,
        follow_up=[LLMError("timeout")] * 2,
    )
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    r1 = sequencer.advance(state, 'A complete and detailed answer')
    assert isinstance(r1, FollowUp)
    assert r1.prompt.templated is True
    assert r1.prompt.text == 'Could you provide more detail about describes the pain point?'

    r2 = sequencer.advance(r1.state, 'more')
    assert isinstance(r2, FollowUp)

    r3 = sequencer.advance(r2.state, 'more again')
    assert isinstance(r3, Advance)
    assert r3.max_follow_ups_reached is True


def test_malformed_verdict_fails_closed(small_question_set):
    client = ScriptedLLMClient(validation=[{'allMet': 'yes'}])
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    result = sequencer.advance(state, 'Triage is slow')

    assert isinstance(result, FollowUp)
    assert result.missing_criteria == tuple(MISSING_ALL)


# ========== Uncertainty ==========

def test_i_dont_know_returns_assistance_without_validation_call(small_question_set):
    client = ScriptedLLMClient(suggestion=[{'suggestion': 'You could describe how long triage takes.'}])
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    result = sequencer.advance(state, "I don't know")

    assert isinstance(result, NeedsAssistance)
    assert result.suggestion == 'You could describe how long triage takes.'
    assert result.criteria == tuple(MISSING_ALL)
    assert result.example_answer == 'Manual triage takes 4 hours daily for 10 analysts.'
    assert client.calls_by_kind['validation'] == 0

    assert result.state.current_question == 2
    assert result.state.follow_up_count == 0
    assert result.state.awaiting_assistance is True
    assert result.state.phase == PHASE_AWAITING_ASSISTANCE_CHOICE
    assert 'problem_statement' not in result.state.answers

    response = result.to_response()
    assert response['needsAssistance'] is True
    assert response['criteria'] == MISSING_ALL
    assert response['exampleAnswer']
    assert response['helpText']


def test_typographic_apostrophe_uncertainty(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    state = at_question_two(sequencer)

    result = sequencer.advance(state, "Honestly I Don’t Know")

    assert isinstance(result, NeedsAssistance)


def test_uncertainty_keeps_follow_up_count(small_question_set):
    client = ScriptedLLMClient(validation=[verdict(missing=MISSING_ALL)])
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    r1 = sequencer.advance(state, 'Triage is slow')
    r2 = sequencer.advance(r1.state, 'not sure about the rest')

    assert isinstance(r2, NeedsAssistance)
    assert r2.state.follow_up_count == 1
    assert r2.state.answers['problem_statement'] == 'Triage is slow'


def test_model_reported_uncertainty_returns_assistance(small_question_set):
    client = ScriptedLLMClient(validation=[verdict(missing=MISSING_ALL, uncertain=True)])
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    result = sequencer.advance(state, 'Perhaps something about logs')

    assert isinstance(result, NeedsAssistance)
    assert result.state.current_question == 2


def test_answer_after_assistance_proceeds_normally(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    state = at_question_two(sequencer)

    assisted = sequencer.advance(state, 'no idea')
    result = sequencer.advance(assisted.state, 'Manual triage takes 4 hours daily for 10 analysts.')

    assert isinstance(result, Advance)
    assert result.state.awaiting_assistance is False
    assert result.state.answers['problem_statement'] == 'Manual triage takes 4 hours daily for 10 analysts.'


# ========== Completion ==========

def test_last_question_completes(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    state = at_question_two(sequencer)

    r2 = sequencer.advance(state, 'Triage takes 4 hours for 10 analysts')
    result = sequencer.advance(r2.state, 'Model accuracy may be low')

    assert isinstance(result, Complete)
    assert result.state.is_complete
    assert result.state.phase == PHASE_COMPLETE
    assert result.state.current_question == 4
    assert result.to_response()['complete'] is True


def test_complete_is_idempotent(small_question_set):
    client = ScriptedLLMClient()
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)
    r2 = sequencer.advance(state, 'Triage takes 4 hours for 10 analysts')
    done = sequencer.advance(r2.state, 'Model accuracy may be low')
    calls_before = client.call_count

    again = sequencer.advance(done.state, 'anything else')

    assert isinstance(again, Complete)
    assert again.state == done.state
    assert client.call_count == calls_before


def test_forced_advance_on_last_question_completes(small_question_set):
    client = ScriptedLLMClient(validation=[verdict(met=MISSING_ALL), verdict(missing=['x']), verdict(missing=['x'])])
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    r2 = sequencer.advance(state, 'Triage takes 4 hours for 10 analysts')
    r3 = sequencer.advance(r2.state, 'hmm')
    r4 = sequencer.advance(r3.state, 'still hmm')

    assert isinstance(r3, FollowUp)
    assert isinstance(r4, Complete)


# ========== Invariants over a full conversation ==========

def test_full_question_set_always_terminates(question_set):
    """Validation never passes: every question uses its budget, then advances"""
    client = ScriptedLLMClient(validation=[verdict(missing=['x'])] * 100)
    sequencer = build_sequencer(question_set, client)

    result = sequencer.start()
    previous_question = result.state.current_question
    steps = 0
    max_steps = sum(q.max_follow_ups + 1 for q in question_set)

    while not isinstance(result, Complete):
        result = sequencer.advance(result.state, f'answer {steps}')
        steps += 1
        state = result.state

        assert state.current_question >= previous_question
        if not state.is_complete:
            assert state.follow_up_count <= question_set.get(state.current_question).max_follow_ups
        previous_question = state.current_question
        assert steps <= max_steps

    assert steps == max_steps


def test_accumulation_never_overwrites(small_question_set):
    client = ScriptedLLMClient(validation=[verdict(missing=MISSING_ALL)] * 2)
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    r1 = sequencer.advance(state, 'one')
    r2 = sequencer.advance(r1.state, 'two')

    assert r1.state.answers['problem_statement'] == 'one'
    assert r2.state.answers['problem_statement'] == 'one two'
    assert r2.state.answers['problem_statement'].startswith(r1.state.answers['problem_statement'])


def test_input_state_is_not_mutated(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    state = at_question_two(sequencer)
    snapshot = state.to_json()

    sequencer.advance(state, 'Triage takes 4 hours for 10 analysts')

    assert state.to_json() == snapshot


def test_transcript_records_both_sides(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    start = sequencer.start()

    result = sequencer.advance(start.state, 'My idea')

    assert result.state.transcript[-2:] == [
        {'role': 'user', 'content': 'My idea'},
        {'role': 'assistant', 'content': 'What business problem does this solution address?'},
    ]


def test_state_survives_json_round_trip_between_turns(small_question_set):
    client = ScriptedLLMClient(validation=[verdict(missing=MISSING_ALL)])
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    r1 = sequencer.advance(state, 'Triage is slow')
    restored = ConversationState.from_json(r1.state.to_json())
    r2 = sequencer.advance(restored, 'for 10 analysts')

    assert isinstance(r2, Advance)
    assert r2.state.answers['problem_statement'] == 'Triage is slow for 10 analysts'


# ========== Input validation ==========

@pytest.mark.parametrize('answer', ['', '   ', '\n\t'])
def test_blank_answer_rejected(small_question_set, answer):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    with pytest.raises(SequencerInputError):
        sequencer.advance(sequencer.start().state, answer)


def test_non_string_answer_rejected(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    with pytest.raises(SequencerInputError):
        sequencer.advance(sequencer.start().state, None)


def test_question_number_below_one_rejected(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    with pytest.raises(SequencerInputError):
        sequencer.advance(ConversationState(current_question=0), 'answer')


def test_negative_follow_up_count_rejected(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    with pytest.raises(SequencerInputError):
        sequencer.advance(ConversationState(current_question=2, follow_up_count=-1), 'answer')


def test_follow_up_count_above_max_rejected(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    with pytest.raises(SequencerInputError):
        sequencer.advance(ConversationState(current_question=2, follow_up_count=3), 'answer')


def test_question_number_past_completion_rejected(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())

    assert isinstance(sequencer.advance(ConversationState(current_question=4), 'answer'), Complete)
    with pytest.raises(SequencerInputError, match='past the end'):
        sequencer.advance(ConversationState(current_question=999), 'answer')


def test_invalid_input_makes_no_llm_call(small_question_set):
    client = ScriptedLLMClient()
    sequencer = build_sequencer(small_question_set, client)
    with pytest.raises(SequencerInputError):
        sequencer.advance(ConversationState(current_question=2, follow_up_count=5), 'answer')
    assert client.call_count == 0


# ========== Replay ==========

def test_replayed_request_returns_cached_follow_up(small_question_set):
    client = ScriptedLLMClient(
        validation=[verdict(missing=MISSING_ALL)],
        follow_up=[{'text': 'Who is affected?', 'helpText': 'Scope', 'exampleResponse': 'Ten analysts'}],
    )
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    first = sequencer.advance(state, 'Triage is slow', request_id='r1')
    calls_after_first = client.call_count

    replay = sequencer.advance(first.state, 'Triage is slow', request_id='r1')

    assert isinstance(replay, FollowUp)
    assert replay.prompt.text == 'Who is affected?'
    assert replay.missing_criteria == first.missing_criteria
    assert replay.state == first.state
    assert len(replay.state.transcript) == len(first.state.transcript)
    assert client.call_count == calls_after_first


def test_replayed_request_returns_cached_assistance(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient(
        suggestion=[{'suggestion': 'Consider a pilot.'}]
    ))
    state = at_question_two(sequencer)

    first = sequencer.advance(state, 'unsure', request_id='7')
    replay = sequencer.advance(first.state, 'unsure', request_id='7')

    assert isinstance(replay, NeedsAssistance)
    assert replay.suggestion == 'Consider a pilot.'


def test_replayed_request_returns_cached_forced_advance(small_question_set):
    client = ScriptedLLMClient(validation=[verdict(missing=['x'])] * 3)
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    r1 = sequencer.advance(state, 'a', request_id='1')
    r2 = sequencer.advance(r1.state, 'b', request_id='2')
    r3 = sequencer.advance(r2.state, 'c', request_id='3')
    replay = sequencer.advance(r3.state, 'c', request_id='3')

    assert isinstance(replay, Advance)
    assert replay.max_follow_ups_reached is True
    assert replay.question.id == 'risks'
    assert replay.state.answers['problem_statement'] == 'a b c'


def test_new_request_id_is_processed(small_question_set):
    client = ScriptedLLMClient(validation=[verdict(missing=MISSING_ALL), verdict(met=MISSING_ALL)])
    sequencer = build_sequencer(small_question_set, client)
    state = at_question_two(sequencer)

    r1 = sequencer.advance(state, 'Triage is slow', request_id='1')
    r2 = sequencer.advance(r1.state, 'for 10 analysts', request_id='2')

    assert isinstance(r2, Advance)
    assert r2.state.last_request_id == '2'


# ========== Commands ==========

def test_handle_dispatches_commands(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())

    started = sequencer.handle(StartConversation(session_id='s1'))
    advanced = sequencer.handle(SubmitAnswer(state=started.state, answer='My idea'))

    assert isinstance(started, Advance)
    assert isinstance(advanced, Advance)
    assert advanced.state.current_question == 2


def test_handle_rejects_unknown_command(small_question_set):
    sequencer = build_sequencer(small_question_set, ScriptedLLMClient())
    with pytest.raises(TypeError):
        sequencer.handle('start')


def test_constructor_rejects_bad_collaborators(small_question_set):
    with pytest.raises(TypeError):
        Sequencer(small_question_set, object(), FollowUpGenerator(ScriptedLLMClient()))
