"""
Field Mapper - Map a finished conversation onto the 39-column idea record

Responsibilities:
- Ask the LLM to extract schema fields from the whole transcript
- Merge LLM-mapped fields over the accumulated answers
- Fill remaining gaps with TBD or deterministic keyword heuristics
- Add system fields (opportunity id, timestamps, form version, transcript)
- Report critical fields that are still empty

Design principles:
- Column order is fixed (CSV_COLUMNS); every row has all 39 columns
- LLM mapping is best-effort: failure returns {} and the accumulated
  answers are used as-is
- Heuristics are pure functions of text
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from intake.contracts import Recommendations
from intake.utils.helpers import generate_opportunity_id, utc_timestamp
from intake.utils import prompt_builder

logger = logging.getLogger(__name__)

FORM_VERSION = "2.0"
DEFAULT_STATUS = "Submitted"
TBD = "TBD"
NOT_APPLICABLE = "N/A"
ANALYSIS_PENDING = "Analysis pending"

CSV_COLUMNS = [
    # Identity
    'opportunity_id',
    'opportunity_name',
    'opportunity_type',
    'owner_sponsor',
    # Problem & solution
    'problem_statement',
    'current_process_issues',
    'ai_solution_approach',
    'improvement_description',
    'ai_task',
    'ai_method',
    'ai_output',
    'other_details',
    'suggested_approach',
    # Business impact
    'core_kpis',
    'efficiency_metrics',
    'suggested_kpis_approach',
    # Feasibility
    'can_we_execute',
    'can_we_execute_rationale',
    'data_availability',
    'data_availability_rationale',
    'integration_capability',
    'integration_capability_rationale',
    # Build/buy
    'overall_approach',
    'approach_rationale',
    'hybrid_approach',
    'suggested_build_buy_approach',
    # Investment
    'investment_people',
    'investment_cost',
    'investment_timeline',
    'suggested_investment_approach',
    # Risk
    'risks_list',
    'mitigation_strategies',
    # Metadata
    'submission_date',
    'submission_status',
    'similarity_scores',
    'conversation_history',
    'decision_log_ids',
    'form_version',
    'last_modified',
]

# Fields that must never be empty or TBD on submission
CRITICAL_FIELDS = [
    'opportunity_id',
    'opportunity_name',
    'opportunity_type',
    'submission_date',
    'submission_status',
    'form_version',
]

# What the LLM is asked to extract (name -> description)
MAPPABLE_FIELDS = {
    'opportunity_name': "The solution/idea name",
    'problem_statement': "The main business problem",
    'current_process_issues': "Why the current process is problematic",
    'ai_solution_approach': "How AI will solve it",
    'improvement_description': "Expected improvements",
    'ai_task': "The AI task type (Classification/Detection/etc)",
    'ai_method': "The AI method (LLM/ML/NLP/etc)",
    'ai_output': "Expected AI outputs",
    'core_kpis': "KPIs mentioned by the user",
    'efficiency_metrics': "Quantifiable metrics (time saved, cost reduction, etc)",
    'target_users': "Who will use this solution",
    'data_availability': "Yes/No/Partial for data availability",
    'data_availability_rationale': "Data source details",
    'can_we_execute': "Yes/No/Partial for technical capability",
    'can_we_execute_rationale': "Technical feasibility explanation",
    'integration_capability': "Yes/No/Partial for integration",
    'integration_capability_rationale': "Integration details",
    'investment_timeline': "Timeline estimates",
    'investment_people': "Team size/FTE requirements",
    'investment_cost': "Budget/cost estimates",
    'overall_approach': "Build/Buy/Partner decision",
    'approach_rationale': "Reasoning for the approach",
    'risks_list': "Identified risks and challenges",
    'mitigation_strategies': "Mitigation approaches",
}


# =============================================================================
# Heuristics
# =============================================================================

def _lower(answers: Dict[str, Any], *keys: str) -> str:
    return " ".join(str(answers.get(key) or '') for key in keys).lower()


def classify_opportunity_type(answers: Dict[str, Any]) -> str:
    """Transformative Idea | Growth Opportunity | Efficiency Play"""
    solution = _lower(answers, 'ai_solution_approach')
    problem = _lower(answers, 'problem_statement')

    if ('real-time' in solution or 'ensemble' in solution
            or 'million' in problem or 'company-wide' in problem):
        return 'Transformative Idea'

    if ('scale' in solution or 'expand' in solution
            or 'growth' in problem or 'customer' in problem):
        return 'Growth Opportunity'

    return 'Efficiency Play'


AI_TASK_KEYWORDS = [
    (('classif',), 'Classification'),
    (('detect',), 'Detection'),
    (('predict',), 'Prediction'),
    (('generat',), 'Generation'),
    (('convers', 'chat'), 'Conversational AI'),
    (('summar',), 'Summarization'),
    (('extract',), 'Information Extraction'),
    (('translat',), 'Translation'),
    (('search', 'retriev'), 'Search/Retrieval'),
]

AI_METHOD_KEYWORDS = [
    (('gpt', 'llm', 'language model'), 'Large Language Model (LLM)'),
    (('neural', 'deep learning'), 'Deep Learning'),
    (('machine learning', 'ml model'), 'Machine Learning'),
    (('nlp', 'natural language'), 'Natural Language Processing'),
    (('computer vision', 'image'), 'Computer Vision'),
]

AI_OUTPUT_KEYWORDS = [
    (('classif',), 'Category labels with confidence scores'),
    (('detect',), 'Detection alerts with risk scores'),
    (('predict',), 'Predictions with probability scores'),
    (('generat', 'chat'), 'Generated text responses'),
    (('summar',), 'Summary text'),
    (('extract',), 'Extracted structured data'),
]


def _first_keyword_match(text: str, table) -> str:
    for keywords, label in table:
        if any(keyword in text for keyword in keywords):
            return label
    return TBD


def extract_ai_task(answers: Dict[str, Any]) -> str:
    return _first_keyword_match(_lower(answers, 'ai_solution_approach'), AI_TASK_KEYWORDS)


def extract_ai_method(answers: Dict[str, Any]) -> str:
    return _first_keyword_match(_lower(answers, 'ai_solution_approach', 'technical_feasibility'), AI_METHOD_KEYWORDS)


def extract_ai_output(answers: Dict[str, Any]) -> str:
    return _first_keyword_match(_lower(answers, 'ai_solution_approach'), AI_OUTPUT_KEYWORDS)


def extract_other_details(answers: Dict[str, Any]) -> str:
    details = []
    if answers.get('integration_capability_rationale'):
        details.append(f"Integration: {answers['integration_capability_rationale']}")
    if answers.get('data_availability_rationale'):
        details.append(f"Data: {answers['data_availability_rationale']}")
    if answers.get('target_users'):
        details.append(f"Users: {answers['target_users']}")
    return "; ".join(details) or NOT_APPLICABLE


def extract_efficiency_metrics(answers: Dict[str, Any]) -> str:
    """Keep benefit text only if it carries a percentage or time saving"""
    benefits = answers.get('core_kpis') or ''
    if re.search(r'\d+\s*%', benefits):
        return benefits
    if 'hour' in benefits.lower() or 'minute' in benefits.lower():
        return benefits
    return TBD


def _has_word(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}\b", text) is not None


def extract_can_we_execute(feasibility: str) -> str:
    """
    Yes / No / Partial from free-text feasibility.

    Examples:
        >>> extract_can_we_execute("Yes - we have an ML platform")
        'Yes'
        >>> extract_can_we_execute("Yes, but we lack GPUs")
        'Partial'
    """
    lower = (feasibility or '').lower()
    hedged = _has_word(lower, 'but') or _has_word(lower, 'however')

    if _has_word(lower, 'yes') and not hedged:
        return 'Yes'
    if 'partial' in lower or _has_word(lower, 'some') or hedged:
        return 'Partial'
    if _has_word(lower, 'no') or 'cannot' in lower or "can't" in lower:
        return 'No'
    return TBD


def extract_data_availability(data_sources: str) -> str:
    lower = (data_sources or '').lower()

    if 'no data' in lower or 'unavailable' in lower or 'need to collect' in lower:
        return 'No'
    if 'available' in lower or _has_word(lower, 'have') or 'exist' in lower or 'stored' in lower:
        if 'partial' in lower or _has_word(lower, 'some') or 'limited' in lower:
            return 'Partial'
        return 'Yes'
    return TBD


def extract_integration_capability(integration: str) -> str:
    lower = (integration or '').lower()

    if 'no integration' in lower or 'cannot integrate' in lower:
        return 'No'
    if 'api' in lower or 'integrate' in lower or 'connect' in lower:
        if 'partial' in lower or _has_word(lower, 'some') or 'limited' in lower:
            return 'Partial'
        return 'Yes'
    return TBD


# =============================================================================
# Mapper
# =============================================================================

class FieldMapper:
    """Build the 39-column record for a finished conversation"""

    def __init__(self, llm_client=None, temperature: float = 0.2, max_tokens: int = 1500):
        """
        Args:
            llm_client: Client with generate_json(); None disables LLM mapping
            temperature: Low for consistent extraction
            max_tokens: Max tokens to generate
        """
        self.llm_client = llm_client
        self.temperature = temperature
        self.max_tokens = max_tokens

    def map_fields(self, answers: Dict[str, str], transcript: List[Dict[str, str]]) -> Dict[str, str]:
        """
        Extract schema fields from the conversation via the LLM.

        Returns:
            dict: Subset of MAPPABLE_FIELDS with non-empty string values,
                or {} when the LLM is unavailable or fails
        """
        if self.llm_client is None or not transcript:
            return {}

        messages = prompt_builder.field_mapping_prompt(answers, transcript, MAPPABLE_FIELDS)

        try:
            raw = self.llm_client.generate_json(
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except Exception as e:
            logger.warning(f"Field mapping failed, using accumulated answers only: {type(e).__name__} - {e}")
            return {}

        if not isinstance(raw, dict):
            logger.warning(f"Field mapping returned {type(raw).__name__}, expected object")
            return {}

        mapped = {}
        for key, value in raw.items():
            if key not in MAPPABLE_FIELDS:
                logger.debug(f"Ignoring unexpected mapped field '{key}'")
                continue
            if isinstance(value, list):
                value = "; ".join(str(item) for item in value)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            if isinstance(value, str) and value.strip():
                mapped[key] = value.strip()

        logger.info(f"LLM field mapping extracted {len(mapped)} fields")
        return mapped

    def build_row(
        self,
        answers: Dict[str, str],
        mapped: Optional[Dict[str, str]] = None,
        recommendations: Optional[Recommendations] = None,
        transcript: Optional[List[Dict[str, str]]] = None,
        opportunity_id: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Build the complete record (LLM-mapped values win over answers).

        Args:
            answers: Accumulated answers (output field -> text)
            mapped: Result of map_fields()
            recommendations: The four suggested_* values
            transcript: Conversation, JSON-encoded into conversation_history
            opportunity_id: Override for the generated id

        Returns:
            dict: Every CSV_COLUMNS key mapped to a string
        """
        data: Dict[str, Any] = dict(answers)
        data.update(mapped or {})
        suggested = recommendations.to_dict() if recommendations else {}
        now = utc_timestamp()

        def value(key: str, default: str = TBD) -> str:
            found = data.get(key)
            return found if isinstance(found, str) and found.strip() else default

        approach = value('overall_approach')

        row = {
            'opportunity_id': opportunity_id or generate_opportunity_id(),
            'opportunity_name': value('opportunity_name', value('solution_name', 'Untitled GenAI Idea')),
            'opportunity_type': value('opportunity_type', classify_opportunity_type(data)),
            'owner_sponsor': value('owner_sponsor'),

            'problem_statement': value('problem_statement'),
            'current_process_issues': value('current_process_issues'),
            'ai_solution_approach': value('ai_solution_approach'),
            'improvement_description': value('improvement_description'),
            'ai_task': value('ai_task', extract_ai_task(data)),
            'ai_method': value('ai_method', extract_ai_method(data)),
            'ai_output': value('ai_output', extract_ai_output(data)),
            'other_details': value('other_details', extract_other_details(data)),
            'suggested_approach': suggested.get('suggested_approach', ANALYSIS_PENDING),

            'core_kpis': value('core_kpis'),
            'efficiency_metrics': value('efficiency_metrics', extract_efficiency_metrics(data)),
            'suggested_kpis_approach': suggested.get('suggested_kpis_approach', ANALYSIS_PENDING),

            'can_we_execute': value('can_we_execute', extract_can_we_execute(data.get('can_we_execute_rationale'))),
            'can_we_execute_rationale': value('can_we_execute_rationale'),
            'data_availability': value('data_availability', extract_data_availability(data.get('data_availability_rationale'))),
            'data_availability_rationale': value('data_availability_rationale'),
            'integration_capability': value(
                'integration_capability',
                extract_integration_capability(data.get('integration_capability_rationale'))
            ),
            'integration_capability_rationale': value('integration_capability_rationale'),

            'overall_approach': approach,
            'approach_rationale': value('approach_rationale'),
            'hybrid_approach': value('hybrid_approach', approach if 'hybrid' in approach.lower() else NOT_APPLICABLE),
            'suggested_build_buy_approach': suggested.get('suggested_build_buy_approach', ANALYSIS_PENDING),

            'investment_people': value('investment_people'),
            'investment_cost': value('investment_cost'),
            'investment_timeline': value('investment_timeline'),
            'suggested_investment_approach': suggested.get('suggested_investment_approach', ANALYSIS_PENDING),

            'risks_list': value('risks_list'),
            'mitigation_strategies': value('mitigation_strategies'),

            'submission_date': value('submission_date', now),
            'submission_status': value('submission_status', DEFAULT_STATUS),
            'similarity_scores': json.dumps({}),
            'conversation_history': json.dumps(transcript or []),
            'decision_log_ids': json.dumps([]),
            'form_version': FORM_VERSION,
            'last_modified': now,
        }

        return {column: row[column] for column in CSV_COLUMNS}


def missing_critical_fields(row: Dict[str, str]) -> List[str]:
    """Critical fields that are empty or TBD ([] if the row is valid)"""
    missing = []
    for field_name in CRITICAL_FIELDS:
        found = row.get(field_name)
        if not found or found == TBD:
            missing.append(field_name)
    return missing
