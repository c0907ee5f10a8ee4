"""
Idea Analyzer - Overall assessment of an idea for the review screen

Responsibilities:
- Ask the LLM for a summary, information gaps, recommendations, a
  complexity classification and a 0-100 readiness score
- Validate the model's JSON shape
- Return a fixed analysis when no model is configured or the call fails

Design principles:
- Never raises for upstream failures (the review screen must render)
- Fail closed: any malformed field discards the whole model answer
- Works on partial conversations (no completeness requirement)
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from intake.contracts import IdeaAnalysis
from intake.utils import prompt_builder
from intake.utils.prompt_builder import ANALYSIS_CLASSIFICATIONS

logger = logging.getLogger(__name__)

# Shown when no language model is configured
STATIC_ANALYSIS = IdeaAnalysis(
    summary="GenAI idea for improving operational efficiency",
    gaps=("Technical architecture details", "Security considerations"),
    recommendations=(
        "Define specific use cases",
        "Identify data sources",
        "Consider compliance requirements",
    ),
    classification="GenAI with Tools",
    readiness=65,
    generated=False,
)

# Shown when the model call fails or returns an unusable answer
FALLBACK_ANALYSIS = IdeaAnalysis(
    summary="GenAI idea analysis pending",
    gaps=("Unable to analyze at this time",),
    recommendations=("Please try again later",),
    classification="Simple GenAI",
    readiness=50,
    generated=False,
)


def _str_tuple(value: Any) -> Optional[Tuple[str, ...]]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        return None
    return tuple(item.strip() for item in value if item.strip())


def _readiness(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not 0 <= value <= 100:
        return None
    return int(round(value))


class IdeaAnalyzer:
    """Assess an idea's completeness and viability"""

    def __init__(self, llm_client=None, temperature: float = 0.3, max_tokens: int = 800):
        """
        Args:
            llm_client: Client with generate_json(); None returns STATIC_ANALYSIS
            temperature: Sampling temperature
            max_tokens: Max tokens to generate

        Raises:
            TypeError: If llm_client lacks generate_json()
        """
        if llm_client is not None and not callable(getattr(llm_client, 'generate_json', None)):
            raise TypeError("llm_client must have callable generate_json() method")

        self.llm_client = llm_client
        self.temperature = temperature
        self.max_tokens = max_tokens

    def analyze(self, answers: Dict[str, str], transcript: List[Dict[str, str]]) -> IdeaAnalysis:
        """
        Analyze an idea.

        Args:
            answers: Accumulated answers so far
            transcript: Conversation so far

        Returns:
            IdeaAnalysis: Model assessment, STATIC_ANALYSIS without a model,
                or FALLBACK_ANALYSIS on any failure
        """
        if self.llm_client is None:
            logger.info("No language model configured, using static analysis")
            return STATIC_ANALYSIS

        messages = prompt_builder.analysis_prompt(answers, transcript)

        try:
            raw = self.llm_client.generate_json(
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except Exception as e:
            logger.warning(f"Idea analysis failed, using fallback: {type(e).__name__} - {e}")
            return FALLBACK_ANALYSIS

        analysis = self._interpret(raw)
        if analysis is None:
            logger.warning(f"Idea analysis malformed, using fallback: {raw}")
            return FALLBACK_ANALYSIS

        logger.info(f"Idea analyzed: {analysis.classification}, readiness {analysis.readiness}")
        return analysis

    def _interpret(self, raw: Any) -> Optional[IdeaAnalysis]:
        if not isinstance(raw, dict):
            return None

        summary = raw.get('summary')
        gaps = _str_tuple(raw.get('gaps'))
        recommendations = _str_tuple(raw.get('recommendations'))
        classification = raw.get('classification')
        readiness = _readiness(raw.get('readiness'))

        if not isinstance(summary, str) or not summary.strip():
            return None
        if gaps is None or recommendations is None or readiness is None:
            return None
        if classification not in ANALYSIS_CLASSIFICATIONS:
            return None

        return IdeaAnalysis(
            summary=summary.strip(),
            gaps=gaps,
            recommendations=recommendations,
            classification=classification,
            readiness=readiness,
        )
