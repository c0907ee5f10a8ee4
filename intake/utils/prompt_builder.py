"""
Prompt Builder - Named prompt templates for every language model call

Responsibilities:
- Build chat messages for criteria validation, follow-ups, suggestions,
  field mapping, recommendations and idea analysis
- Keep prompt wording out of the modules that make decisions

NOT responsible for:
- LLM calls
- Parsing model output
- Sequencing logic

Design principles:
- One function per prompt, explicit typed parameters
- Deterministic output for the same inputs (testable without a model)
- Returns role-tagged messages, never a bare string
"""

import json
import logging
from typing import Dict, List, Sequence

from intake.contracts import QuestionSpec

logger = logging.getLogger(__name__)

Messages = List[Dict[str, str]]

VALIDATOR_SYSTEM = (
    "You are an expert at evaluating if responses meet specific criteria. "
    "Be thorough but fair in your evaluation."
)
FOLLOW_UP_SYSTEM = (
    "You are a helpful assistant that asks clarifying follow-up questions "
    "in a friendly, conversational way."
)
SUGGESTION_SYSTEM = (
    "You are a helpful AI assistant that provides specific, actionable "
    "suggestions based on conversation context."
)
FIELD_MAPPING_SYSTEM = (
    "You are an expert at extracting and mapping information from "
    "conversations to structured data fields. Be thorough and accurate."
)
RECOMMENDATION_SYSTEM = (
    "You are an expert AI strategy consultant. Provide specific, actionable "
    "recommendations based on the opportunity details. Return only valid JSON."
)
ANALYSIS_SYSTEM = (
    "You are a senior AI architect and risk assessor for enterprise GenAI "
    "initiatives. Evaluate proposals for technical feasibility, business value, "
    "compliance readiness and implementation risk. Return only valid JSON."
)

ANALYSIS_CLASSIFICATIONS = (
    "Simple GenAI",
    "GenAI with Tools",
    "Agentic AI",
    "Multi-Agent System",
)


def _numbered(items: Sequence[str]) -> str:
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, 1))


def _messages(system: str, user: str) -> Messages:
    return [
        {'role': 'system', 'content': system},
        {'role': 'user', 'content': user},
    ]


def criteria_validation_prompt(question: QuestionSpec, answer: str) -> Messages:
    """
    Ask whether an accumulated answer satisfies each criterion.

    Expected model output:
        {"allMet": bool, "metCriteria": [...], "missingCriteria": [...],
         "uncertain": bool, "reason": str}
    """
    user = f"""Evaluate if the user's response meets all the specified criteria for this question.

QUESTION: {question.question}

USER RESPONSE: "{answer}"

REQUIRED CRITERIA:
{_numbered(question.criteria)}

EXAMPLE OF GOOD RESPONSE:
"{question.example_answer}"

EVALUATION TASK:
Check if the user's response addresses EACH criterion. Be strict but fair:
- Met: the response clearly addresses this criterion with sufficient detail
- Missing: the response does not address this criterion or is too vague
Set "uncertain" to true only if the user says they do not know or cannot answer.

Return JSON format:
{{
  "allMet": true or false,
  "metCriteria": ["criterion text if met"],
  "missingCriteria": ["criterion text if missing"],
  "uncertain": true or false,
  "reason": "Brief explanation (1-2 sentences)"
}}
Copy criterion text exactly as listed above."""
    return _messages(VALIDATOR_SYSTEM, user)


def follow_up_prompt(
    question: QuestionSpec,
    missing_criteria: Sequence[str],
    prior_answer: str,
    attempt_number: int
) -> Messages:
    """
    Ask for one follow-up question targeting the missing criteria.

    On the final allowed attempt the model is told to be direct.

    Expected model output:
        {"text": str, "helpText": str, "exampleResponse": str}
    """
    is_final = attempt_number >= question.max_follow_ups
    if is_final:
        tone = "THIS IS THE FINAL FOLLOW-UP: be more direct and explicit about what is needed."
    else:
        tone = f"This is follow-up {attempt_number}. Ask for the missing information in a friendly, conversational way."

    user = f"""Generate a follow-up question to get more complete information.

ORIGINAL QUESTION: {question.question}

USER'S RESPONSE: "{prior_answer}"

MISSING CRITERIA (need to address):
{_numbered(missing_criteria)}

FOLLOW-UP COUNT: {attempt_number} of {question.max_follow_ups} max

{tone}

TASK:
Generate ONE focused follow-up question that:
1. References what they already said ("You mentioned...")
2. Asks specifically for the missing criteria
3. Provides helpful examples
4. Is friendly and encouraging

Return JSON format:
{{
  "text": "Your follow-up question with examples",
  "helpText": "Brief guidance about what we still need",
  "exampleResponse": "Example of a complete answer"
}}"""
    return _messages(FOLLOW_UP_SYSTEM, user)


def suggestion_prompt(
    question: QuestionSpec,
    answers: Dict[str, str],
    transcript: Sequence[Dict[str, str]],
    max_context_messages: int = 12
) -> Messages:
    """
    Ask for a suggested answer when the user does not know.

    Expected model output:
        {"suggestion": str}
    """
    idea = answers.get('idea_description') or answers.get('solution_name') or 'N/A'
    known = "\n".join(f"{k}: {v}" for k, v in sorted(answers.items())) or "N/A"
    recent = transcript[-max_context_messages:] if max_context_messages else transcript
    history = "\n".join(f"{m['role'].upper()}: {m['content']}" for m in recent) or "N/A"

    user = f"""The user said they don't know how to answer this question. Based on the conversation context, generate a suggested answer for them.

QUESTION: {question.question}

CRITERIA TO ADDRESS:
{_numbered(question.criteria)}

EXAMPLE RESPONSE:
"{question.example_answer}"

CONTEXT FROM CONVERSATION:
Idea: {idea}
{known}

RECENT MESSAGES:
{history}

TASK:
Generate a suggested answer that:
1. Addresses all criteria based on the conversation context
2. Is specific and actionable (not generic)
3. Uses "you could" or "consider" language
4. Provides 2-3 concrete suggestions

Return JSON format:
{{
  "suggestion": "Your suggested answer text here"
}}"""
    return _messages(SUGGESTION_SYSTEM, user)


def field_mapping_prompt(
    answers: Dict[str, str],
    transcript: Sequence[Dict[str, str]],
    field_descriptions: Dict[str, str]
) -> Messages:
    """
    Ask the model to extract output-schema fields from the whole conversation.

    Expected model output: flat JSON object with a subset of
    field_descriptions' keys.
    """
    conversation = "\n\n".join(
        f"{i}. {m['role'].upper()}: {m['content']}" for i, m in enumerate(transcript, 1)
    )
    schema = json.dumps(field_descriptions, indent=2)
    existing = json.dumps(answers, indent=2, sort_keys=True)

    user = f"""You are a data mapping expert. Analyze a conversation about a GenAI idea and extract specific information to populate output fields.

CONVERSATION HISTORY:
{conversation}

EXISTING USER DATA (may have some fields already):
{existing}

TARGET FIELDS (name: what to extract):
{schema}

IMPORTANT:
- Extract information EXACTLY as the user provided it
- Don't make up information that wasn't discussed
- If a field wasn't discussed, omit it from the response
- Combine related information from multiple responses when needed

Return a flat JSON object containing only the fields you can extract."""
    return _messages(FIELD_MAPPING_SYSTEM, user)


def recommendation_prompt(answers: Dict[str, str]) -> Messages:
    """
    Ask for the four suggested_* recommendation fields.

    Expected model output:
        {"suggested_approach", "suggested_kpis_approach",
         "suggested_build_buy_approach", "suggested_investment_approach"}
    """
    def pick(*keys: str) -> str:
        for key in keys:
            if answers.get(key):
                return answers[key]
        return 'N/A'

    user = f"""Based on the GenAI opportunity details below, provide specific recommendations for the four key decision areas.

OPPORTUNITY DETAILS:
- Name: {pick('solution_name', 'opportunity_name', 'idea_description')}
- Problem: {pick('problem_statement')}
- Solution: {pick('ai_solution_approach')}
- Users: {pick('target_users')}
- Impact: {pick('core_kpis')}
- Data: {pick('data_availability_rationale')}
- Feasibility: {pick('can_we_execute_rationale')}
- Timeline: {pick('investment_timeline')}
- Approach: {pick('overall_approach')}
- Risks: {pick('risks_list')}

PROVIDE 4 RECOMMENDATIONS (1-2 sentences each):
1. Suggested technical approach: specific AI technologies, frameworks or methods
2. Suggested KPIs approach: measurable, business-aligned efficiency and effectiveness metrics
3. Suggested build/buy/partner approach: a decisive choice with rationale
4. Suggested investment approach: phasing (POC, pilot, scale), team and timeline

RETURN JSON FORMAT:
{{
  "suggested_approach": "...",
  "suggested_kpis_approach": "...",
  "suggested_build_buy_approach": "...",
  "suggested_investment_approach": "..."
}}"""
    return _messages(RECOMMENDATION_SYSTEM, user)


def analysis_prompt(answers: Dict[str, str], transcript: Sequence[Dict[str, str]]) -> Messages:
    """
    Ask for an overall assessment of the idea so far.

    Expected model output:
        {"summary": str, "gaps": [str], "recommendations": [str],
         "classification": str, "readiness": int}
    """
    responses = json.dumps(answers, indent=2, sort_keys=True)
    history = "\n".join(f"{m['role'].upper()}: {m['content']}" for m in transcript) or "N/A"

    user = f"""Perform a comprehensive assessment of this GenAI proposal.

USER RESPONSES:
{responses}

CONVERSATION HISTORY:
{history}

EVALUATION CRITERIA:
- Business value and ROI potential
- Technical feasibility and architecture fit
- Compliance and regulatory alignment
- Security and privacy considerations
- Resource requirements and timeline
- Risk factors and mitigation strategies

RETURN JSON with exactly these fields:
{{
  "summary": "Executive summary of the proposal (2-3 sentences)",
  "gaps": ["Specific missing critical information"],
  "recommendations": ["Actionable improvement suggestion"],
  "classification": "One of: {', '.join(ANALYSIS_CLASSIFICATIONS)}",
  "readiness": 0
}}

readiness is an integer 0-100 for proposal completeness and viability."""
    return _messages(ANALYSIS_SYSTEM, user)
