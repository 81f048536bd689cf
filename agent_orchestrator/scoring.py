"""
Multi-factor confidence scoring and threshold-gated specialist selection.

score = 0.6 * keyword + 0.2 * domain + 0.2 * context + 0.1 * exact matches,
capped at 1.2. The winner must meet its own confidence threshold, otherwise
the decision goes to the fallback specialist.
"""

import re
from functools import lru_cache
from typing import Dict, List, Tuple

from loguru import logger

from .models import (
    DecisionSource,
    QueryAnalysis,
    RoutingDecision,
    ScoreBreakdown,
    SessionContext,
    SpecialistProfile,
)
from .registry import SpecialistRegistry


KEYWORD_WEIGHT = 0.6
DOMAIN_WEIGHT = 0.2
CONTEXT_WEIGHT = 0.2
EXACT_MATCH_WEIGHT = 0.1

KEYWORD_SATURATION = 3
DOMAIN_HIT_VALUE = 0.1
DOMAIN_CAP_PER_TAG = 0.3
CONTEXT_RELEVANCE = 0.3
MAX_SCORE = 1.2

REASONING_TOP_N = 3


@lru_cache(maxsize=1024)
def _word_boundary(keyword: str):
    return re.compile(rf'\b{re.escape(keyword)}\b')


class ConfidenceScorer:
    """Scores specialists against a query analysis and picks one."""

    def __init__(self, registry: SpecialistRegistry):
        self.registry = registry

    def score_breakdown(
        self,
        analysis: QueryAnalysis,
        specialist: SpecialistProfile,
        context: SessionContext
    ) -> ScoreBreakdown:
        normalized = analysis.original_query.lower()
        matched = set(analysis.matched_keywords)

        keyword_hits = sum(1 for keyword in specialist.keywords if keyword in matched)
        keyword_score = min(keyword_hits / KEYWORD_SATURATION, 1.0)

        domain_score = 0.0
        for domain in specialist.domains:
            hits = analysis.domain_matches.get(domain, 0)
            if hits:
                domain_score += min(hits * DOMAIN_HIT_VALUE, DOMAIN_CAP_PER_TAG)
        domain_score = min(domain_score, 1.0)

        context_score = CONTEXT_RELEVANCE if context.current_agent == specialist.id else 0.0

        exact_match_count = sum(
            1 for keyword in specialist.keywords if _word_boundary(keyword).search(normalized)
        )

        raw_total = (
            KEYWORD_WEIGHT * keyword_score
            + DOMAIN_WEIGHT * domain_score
            + CONTEXT_WEIGHT * context_score
            + EXACT_MATCH_WEIGHT * exact_match_count
        )

        return ScoreBreakdown(
            specialist_id=specialist.id,
            keyword_score=keyword_score,
            domain_score=domain_score,
            context_score=context_score,
            exact_match_count=exact_match_count,
            raw_total=raw_total,
            total=max(0.0, min(raw_total, MAX_SCORE))
        )

    def score(
        self,
        analysis: QueryAnalysis,
        specialist: SpecialistProfile,
        context: SessionContext
    ) -> float:
        """Bounded confidence of one specialist, in [0, 1.2]."""
        return self.score_breakdown(analysis, specialist, context).total

    def score_all(self, analysis: QueryAnalysis, context: SessionContext) -> Dict[str, float]:
        """Scores for every registered specialist, in registry order."""
        return {
            profile.id: self.score(analysis, profile, context)
            for profile in self.registry
        }

    def rank(self, analysis: QueryAnalysis, context: SessionContext) -> List[Tuple[str, float]]:
        """(id, score) pairs, best first; ties keep registry order."""
        scores = self.score_all(analysis, context)
        return sorted(scores.items(), key=lambda item: -item[1])

    def _format_candidates(self, ranked: List[Tuple[str, float]]) -> str:
        return ", ".join(
            f"{self.registry.name_of(specialist_id)} ({score:.2f})"
            for specialist_id, score in ranked[:REASONING_TOP_N]
        )

    def generate_reasoning(
        self,
        winner: SpecialistProfile,
        winner_score: float,
        ranked: List[Tuple[str, float]],
        meets_threshold: bool
    ) -> str:
        reasoning_parts = []

        if meets_threshold:
            reasoning_parts.append(
                f"Selected {winner.name} with confidence score {winner_score:.2f} "
                f"(threshold: {winner.confidence_threshold})"
            )
        else:
            reasoning_parts.append(
                f"No specialist met its confidence threshold (best: {winner.name} "
                f"{winner_score:.2f} < {winner.confidence_threshold})"
            )
            reasoning_parts.append(
                f"Routing to fallback specialist {self.registry.fallback_agent_id}"
            )

        reasoning_parts.append(f"Top candidates: {self._format_candidates(ranked)}")
        return ". ".join(reasoning_parts) + "."

    def decide(self, analysis: QueryAnalysis, context: SessionContext) -> RoutingDecision:
        """Rank all specialists and apply the winner's threshold gate."""
        scores = self.score_all(analysis, context)
        ranked = sorted(scores.items(), key=lambda item: -item[1])

        winner_id, winner_score = ranked[0]
        winner = self.registry.get(winner_id)
        meets_threshold = winner_score >= winner.confidence_threshold

        selected_agent = winner_id if meets_threshold else self.registry.fallback_agent_id

        decision = RoutingDecision(
            original_query=analysis.original_query,
            analyzed_intent=analysis.analyzed_intent,
            matched_keywords=list(analysis.matched_keywords),
            selected_agent=selected_agent,
            confidence_scores=scores,
            reasoning=self.generate_reasoning(winner, winner_score, ranked, meets_threshold),
            meets_threshold=meets_threshold,
            source=DecisionSource.LOCAL
        )

        logger.info(
            "Local routing decision",
            selected_agent=selected_agent,
            best_candidate=winner_id,
            best_score=round(winner_score, 3),
            meets_threshold=meets_threshold
        )
        return decision
