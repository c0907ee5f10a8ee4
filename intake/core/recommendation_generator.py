"""
Recommendation Generator - The four "suggested_*" fields of a submitted idea

Responsibilities:
- Generate technical, KPI, build/buy and investment recommendations
  with one JSON-mode LLM call
- Fill keys the model left out with a pending marker
- Return fixed default recommendations when the LLM fails

Design principles:
- Never raises for upstream failures (submission must still succeed)
- Generated flag records whether the model produced the values
"""

import logging
from typing import Dict

from intake.contracts import Recommendations
from intake.utils import prompt_builder

logger = logging.getLogger(__name__)

ANALYSIS_PENDING = "Analysis pending"

RECOMMENDATION_KEYS = (
    'suggested_approach',
    'suggested_kpis_approach',
    'suggested_build_buy_approach',
    'suggested_investment_approach',
)

DEFAULT_RECOMMENDATIONS = Recommendations(
    suggested_approach=(
        "Conduct technical discovery to identify optimal AI approach based on "
        "data characteristics and infrastructure"
    ),
    suggested_kpis_approach=(
        "Define baseline metrics before implementation, track operational "
        "efficiency and business impact KPIs"
    ),
    suggested_build_buy_approach=(
        "Evaluate build vs buy based on competitive differentiation, internal "
        "capabilities, and time to market"
    ),
    suggested_investment_approach=(
        "Start with 2-month POC to validate feasibility, then 3-month pilot, "
        "followed by phased production rollout"
    ),
    generated=False,
)


class RecommendationGenerator:
    """Generate expert recommendations from accumulated answers"""

    def __init__(self, llm_client=None, temperature: float = 0.4, max_tokens: int = 800):
        """
        Args:
            llm_client: Client with generate_json(); None always returns defaults
            temperature: Sampling temperature
            max_tokens: Max tokens to generate
        """
        self.llm_client = llm_client
        self.temperature = temperature
        self.max_tokens = max_tokens

    def generate(self, answers: Dict[str, str]) -> Recommendations:
        """
        Generate recommendations for an idea.

        Args:
            answers: Accumulated answers, optionally merged with LLM-mapped fields

        Returns:
            Recommendations: Generated values, or DEFAULT_RECOMMENDATIONS
        """
        if self.llm_client is None:
            logger.info("No language model configured, using default recommendations")
            return DEFAULT_RECOMMENDATIONS

        messages = prompt_builder.recommendation_prompt(answers)

        try:
            raw = self.llm_client.generate_json(
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except Exception as e:
            logger.warning(f"Recommendation generation failed, using defaults: {type(e).__name__} - {e}")
            return DEFAULT_RECOMMENDATIONS

        values = {}
        for key in RECOMMENDATION_KEYS:
            found = raw.get(key) if isinstance(raw, dict) else None
            values[key] = found.strip() if isinstance(found, str) and found.strip() else ANALYSIS_PENDING

        pending = [key for key, text in values.items() if text == ANALYSIS_PENDING]
        if pending:
            logger.warning(f"Model omitted recommendation fields: {pending}")

        logger.info("Recommendations generated")
        return Recommendations(generated=True, **values)
