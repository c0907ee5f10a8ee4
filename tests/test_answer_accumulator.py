"""
Test Answer Accumulator merge semantics
"""

from intake.contracts import QuestionSpec
from intake.core.answer_accumulator import accumulated_for, append_turn, merge

QUESTION = QuestionSpec(
    id='timeline-investment',
    position=8,
    question='What is your expected timeline and resource commitment?',
    criteria=('Provides a timeline',),
    max_follow_ups=2,
    output_fields=('investment_timeline', 'investment_people', 'investment_cost'),
)


def test_first_fragment_populates_every_output_field():
    answers = merge({}, QUESTION, '3-4 months for an MVP')

    assert answers['investment_timeline'] == '3-4 months for an MVP'
    assert answers['investment_people'] == '3-4 months for an MVP'
    assert answers['investment_cost'] == '3-4 months for an MVP'
    assert answers['timeline-investment'] == '3-4 months for an MVP'


def test_follow_up_fragments_are_appended_with_a_space():
    answers = merge({}, QUESTION, '3-4 months.')
    answers = merge(answers, QUESTION, '2-3 FTEs.')
    answers = merge(answers, QUESTION, 'Budget $150K.')

    expected = '3-4 months. 2-3 FTEs. Budget $150K.'
    for field_name in QUESTION.output_fields:
        assert answers[field_name] == expected
    assert accumulated_for(answers, QUESTION) == expected


def test_merge_does_not_mutate_input():
    original = {'idea_description': 'Log triage'}

    merged = merge(original, QUESTION, '3 months')

    assert original == {'idea_description': 'Log triage'}
    assert merged['idea_description'] == 'Log triage'


def test_fragment_is_trimmed():
    answers = merge({}, QUESTION, '  3 months \n')
    assert answers['investment_timeline'] == '3 months'


def test_accumulated_for_reads_only_question_key():
    answers = {'investment_people': '2 FTEs'}

    assert accumulated_for(answers, QUESTION) == ''
    assert merge(answers, QUESTION, '$100K')['investment_cost'] == '$100K'


def test_fragments_never_leak_between_questions_sharing_a_field():
    first = QuestionSpec(id='q1', position=1, question='Idea?', output_fields=('notes',))
    second = QuestionSpec(id='q2', position=2, question='More?', output_fields=('notes',))

    answers = merge({}, first, 'first idea')
    answers = merge(answers, second, 'second answer')

    assert answers['q1'] == 'first idea'
    assert answers['q2'] == 'second answer'
    assert accumulated_for(answers, second) == 'second answer'


def test_accumulated_for_empty():
    assert accumulated_for({}, QUESTION) == ''


def test_append_turn_returns_new_list():
    transcript = [{'role': 'assistant', 'content': 'Hi'}]

    updated = append_turn(transcript, 'user', 'Hello')

    assert transcript == [{'role': 'assistant', 'content': 'Hi'}]
    assert updated[-1] == {'role': 'user', 'content': 'Hello'}
