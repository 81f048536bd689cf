"""
Query analysis for specialist routing.

This module extracts the signals the scorer ranks specialists on:
- Matched specialist keywords (case-insensitive substring matches)
- Domain indicators from the shared domain pattern table
- A coarse intent label from weighted intent patterns and question form
"""

import re
from typing import Dict, List, Optional, Sequence

from loguru import logger

from .models import QueryAnalysis
from .registry import ROUTING_PATTERNS, RoutingPatterns, SpecialistRegistry
from .utils import sanitize_for_logging


_WHITESPACE = re.compile(r'\s+')
_CONTENT_WORD = re.compile(r'[a-z0-9]+')

# Shared content words needed to call a query semantically close to a description
SEMANTIC_OVERLAP_MIN_WORDS = 2
SEMANTIC_OVERLAP_MIN_LENGTH = 4


def normalize_query(query: str) -> str:
    """Lower-case, collapse whitespace and trim."""
    return _WHITESPACE.sub(' ', query or '').strip().lower()


def content_words(text: str) -> set:
    """Words longer than three characters."""
    return {
        word for word in _CONTENT_WORD.findall(text.lower())
        if len(word) >= SEMANTIC_OVERLAP_MIN_LENGTH
    }


class QueryAnalyzer:
    """Extracts keywords, domain indicators and intent from raw query text."""

    def __init__(self, registry: SpecialistRegistry, patterns: Optional[RoutingPatterns] = None):
        self.registry = registry
        self.patterns = patterns or ROUTING_PATTERNS
        # Description vocabulary is fixed for the registry lifetime
        self._description_words = {
            profile.id: content_words(profile.description) for profile in registry
        }

    def extract_keywords(self, normalized: str) -> List[str]:
        """Union of every specialist keyword found in the query, first-seen order."""
        matched: List[str] = []
        seen = set()
        for profile in self.registry:
            for keyword in profile.keywords:
                if keyword not in seen and keyword in normalized:
                    seen.add(keyword)
                    matched.append(keyword)
        return matched

    def count_domain_matches(self, normalized: str) -> Dict[str, int]:
        """Indicator term hits per domain tag, omitting tags with no hits."""
        counts: Dict[str, int] = {}
        for domain, terms in self.patterns.DOMAIN_PATTERNS.items():
            hits = sum(1 for term in terms if term in normalized)
            if hits:
                counts[domain] = hits
        return counts

    def extract_domains(self, normalized: str, domain_matches: Dict[str, int]) -> List[str]:
        """Domains hit by indicator terms plus domains of semantically close specialists."""
        indicators = list(domain_matches.keys())

        query_words = content_words(normalized)
        for profile in self.registry:
            shared = query_words & self._description_words[profile.id]
            if len(shared) >= SEMANTIC_OVERLAP_MIN_WORDS:
                for domain in profile.domains:
                    if domain not in indicators:
                        indicators.append(domain)

        return indicators

    def question_type_bonuses(self, normalized: str) -> Dict[str, float]:
        """Bonuses from question words, a question mark and polite phrasing."""
        bonuses: Dict[str, float] = {}

        for word, related_intents in self.patterns.QUESTION_WORDS.items():
            if normalized.startswith(word) or f" {word} " in normalized:
                for intent in related_intents:
                    bonuses[intent] = bonuses.get(intent, 0.0) + 1.0

        if '?' in normalized:
            bonuses["learning_request"] = bonuses.get("learning_request", 0.0) + self.patterns.QUESTION_MARK_BONUS

        if any(phrase in normalized for phrase in self.patterns.POLITE_PHRASES):
            bonuses["help_request"] = bonuses.get("help_request", 0.0) + 1.0

        return bonuses

    def score_intents(self, normalized: str, history: Sequence[str]) -> Dict[str, float]:
        """Score every intent in declaration order."""
        previous_intent = history[-1] if history else None
        scores: Dict[str, float] = {}

        for intent, pattern in self.patterns.INTENT_PATTERNS.items():
            score = 3 * sum(1 for term in pattern.primary if term in normalized)
            score += 2 * sum(1 for term in pattern.secondary if term in normalized)
            score += 4 * sum(1 for term in pattern.questions if term in normalized)
            score *= pattern.weight

            if previous_intent == intent:
                score += self.patterns.CONTINUITY_BONUS

            scores[intent] = score

        # Question form only strengthens intents that already have evidence
        for intent, bonus in self.question_type_bonuses(normalized).items():
            if scores.get(intent):
                scores[intent] += bonus

        return scores

    def classify_intent(self, normalized: str, history: Sequence[str]) -> str:
        scores = self.score_intents(normalized, history)

        best_intent = self.patterns.GENERAL_INTENT
        best_score = 0.0
        for intent, score in scores.items():
            # Strict comparison keeps the first declared intent on ties
            if score > best_score:
                best_intent, best_score = intent, score

        if best_score < self.patterns.MIN_INTENT_SCORE:
            return self.patterns.GENERAL_INTENT
        return best_intent

    def analyze(self, query: str, history: Optional[Sequence[str]] = None) -> QueryAnalysis:
        """
        Analyze a query.

        Args:
            query: Raw query text
            history: Intents of the previous turns, oldest first

        Returns:
            QueryAnalysis: Never raises; empty input yields an empty general_inquiry analysis
        """
        history = list(history or [])
        normalized = normalize_query(query)

        if not normalized:
            return QueryAnalysis(
                original_query=query or "",
                analyzed_intent=self.patterns.GENERAL_INTENT
            )

        domain_matches = self.count_domain_matches(normalized)
        analysis = QueryAnalysis(
            original_query=query,
            analyzed_intent=self.classify_intent(normalized, history),
            matched_keywords=self.extract_keywords(normalized),
            domain_indicators=self.extract_domains(normalized, domain_matches),
            domain_matches=domain_matches
        )

        logger.debug(
            "Query analyzed",
            query_preview=sanitize_for_logging(query, 80),
            intent=analysis.analyzed_intent,
            keywords=analysis.matched_keywords,
            domains=analysis.domain_indicators
        )
        return analysis
