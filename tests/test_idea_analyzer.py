"""
Test IdeaAnalyzer

Model assessment parsing, the static answer without a model and the
fail-closed fallback for errors and malformed output.
"""

import pytest

from intake.core.idea_analyzer import FALLBACK_ANALYSIS, STATIC_ANALYSIS, IdeaAnalyzer
from intake.utils.llm_client import LLMError

from mock_llm import MockLLMClient

ANSWERS = {
    'opportunity_name': 'AlertTriage AI',
    'problem_statement': 'Manual triage takes 4 hours a day',
}

TRANSCRIPT = [
    {'role': 'assistant', 'content': 'What problem are you solving?'},
    {'role': 'user', 'content': 'Manual triage takes 4 hours a day'},
]

ASSESSMENT = {
    'summary': '  An LLM assistant that triages security alerts.  ',
    'gaps': ['Budget', '  ', 'Data retention policy'],
    'recommendations': ['Run a two-month POC'],
    'classification': 'Agentic AI',
    'readiness': 71.6,
}


def test_generated_analysis():
    client = MockLLMClient(responses=[ASSESSMENT])

    result = IdeaAnalyzer(client).analyze(ANSWERS, TRANSCRIPT)

    assert result.generated is True
    assert result.summary == 'An LLM assistant that triages security alerts.'
    assert result.gaps == ('Budget', 'Data retention policy')
    assert result.classification == 'Agentic AI'
    assert result.readiness == 72


def test_to_dict_uses_lists():
    result = IdeaAnalyzer(MockLLMClient(responses=[ASSESSMENT])).analyze(ANSWERS, TRANSCRIPT)

    assert result.to_dict() == {
        'summary': 'An LLM assistant that triages security alerts.',
        'gaps': ['Budget', 'Data retention policy'],
        'recommendations': ['Run a two-month POC'],
        'classification': 'Agentic AI',
        'readiness': 72,
    }


def test_prompt_contains_answers_and_history():
    client = MockLLMClient(responses=[ASSESSMENT])

    IdeaAnalyzer(client).analyze(ANSWERS, TRANSCRIPT)

    prompt = client.calls[0][1]['content']
    assert '"opportunity_name": "AlertTriage AI"' in prompt
    assert 'USER: Manual triage takes 4 hours a day' in prompt
    assert 'Multi-Agent System' in prompt


def test_empty_conversation_is_analyzed():
    client = MockLLMClient(responses=[ASSESSMENT])

    result = IdeaAnalyzer(client).analyze({}, [])

    assert result.generated is True
    assert 'CONVERSATION HISTORY:\nN/A' in client.calls[0][1]['content']


def test_no_client_returns_static_analysis():
    result = IdeaAnalyzer().analyze(ANSWERS, TRANSCRIPT)

    assert result is STATIC_ANALYSIS
    assert result.generated is False
    assert result.readiness == 65


@pytest.mark.parametrize('error', [LLMError('timeout'), RuntimeError('device-side assert'), TimeoutError('slow')])
def test_model_failure_returns_fallback(error):
    result = IdeaAnalyzer(MockLLMClient(responses=[error])).analyze(ANSWERS, TRANSCRIPT)

    assert result is FALLBACK_ANALYSIS
    assert result.summary == 'GenAI idea analysis pending'
    assert result.readiness == 50


@pytest.mark.parametrize('override', [
    {'classification': 'Quantum AI'},
    {'readiness': 150},
    {'readiness': -1},
    {'readiness': True},
    {'readiness': '80'},
    {'gaps': 'Budget'},
    {'recommendations': ['POC', 3]},
    {'summary': '   '},
    {'summary': None},
])
def test_malformed_field_returns_fallback(override):
    client = MockLLMClient(responses=[dict(ASSESSMENT, **override)])
    assert IdeaAnalyzer(client).analyze(ANSWERS, TRANSCRIPT) is FALLBACK_ANALYSIS


def test_non_object_answer_returns_fallback():
    client = MockLLMClient(responses=[['not', 'an', 'object']])
    assert IdeaAnalyzer(client).analyze(ANSWERS, TRANSCRIPT) is FALLBACK_ANALYSIS


def test_rejects_client_without_generate_json():
    with pytest.raises(TypeError, match='generate_json'):
        IdeaAnalyzer(object())
