"""
Remote semantic classification of queries.

This module provides:
- ClassifierClient, the contract the router consults before local analysis
- LLMClassifierClient, a chat-completion backed implementation
- Payload parsing with a keyword-heuristic text extractor for non-JSON replies
- Mapping of a classification onto a routing decision
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from loguru import logger

from .llm import LLMError, OpenRouterClient
from .models import ClassificationResult, DecisionSource, RoutingDecision
from .registry import SpecialistRegistry
from .utils import Timer, sanitize_for_logging


class ClassificationError(Exception):
    """Raised when the remote classifier is unreachable or its answer is unusable."""
    pass


# Classifier short names -> specialist ids
SPECIALIST_ALIASES: Dict[str, str] = {
    "technical": "technical-specialist",
    "business": "business-analyst",
    "creative": "creative-specialist",
    "data": "data-scientist",
    "data_science": "data-scientist",
    "finance": "financial-analyst",
    "financial": "financial-analyst",
    "general": "general-assistant",
}

# Used only when the classifier answers in prose instead of JSON
TEXT_DOMAIN_KEYWORDS: Dict[str, List[str]] = {
    "technical": [
        "code", "docker", "dockerfile", "kubernetes", "aws", "cloud", "devops",
        "programming", "development", "api", "backend", "frontend", "database",
        "architecture", "infrastructure", "deployment", "git", "ci/cd"
    ],
    "business": [
        "mvp", "plan", "milestone", "risk", "strategy", "stakeholder",
        "roi", "cost", "benefit", "project management", "roadmap", "timeline",
        "requirement", "user story", "product", "market", "customer"
    ],
    "creative": [
        "design", "copy", "content", "brand", "marketing", "social media",
        "cta", "hook", "post", "campaign", "visual", "logo", "color palette",
        "voice", "messaging", "audience"
    ],
    "data": [
        "data", "model", "algorithm", "machine learning", "analytics",
        "statistic", "random forest", "gradient boosting", "prediction",
        "classification", "regression", "clustering", "feature", "dataset"
    ],
    "finance": [
        "finance", "investment", "cash flow", "dcf", "roi", "wacc",
        "bond", "stock", "etf", "portfolio", "tax", "margin", "revenue",
        "profit", "asset", "liability", "balance sheet"
    ],
}

QUERY_HIT_WEIGHT = 2
RESPONSE_HIT_WEIGHT = 1
TEXT_CONFIDENCE_FLOOR = 0.6
TEXT_CONFIDENCE_CEILING = 0.9
OTHER_AGENT_CONFIDENCE_FACTOR = 0.3
OTHER_AGENT_CONFIDENCE_FLOOR = 0.1

_JSON_OBJECT = re.compile(r'\{.*\}', re.DOTALL)


def extract_classification_from_text(query: str, response: str) -> Dict[str, Any]:
    """
    Derive a classification payload from a prose reply.

    Each domain scores +2 per keyword found in the query and +1 per keyword
    found in the reply. The best domain wins, general when nothing matched.
    """
    query_lower = query.lower()
    response_lower = response.lower()

    domain_scores: Dict[str, int] = {}
    for domain, keywords in TEXT_DOMAIN_KEYWORDS.items():
        query_score = sum(QUERY_HIT_WEIGHT for keyword in keywords if keyword in query_lower)
        response_score = sum(RESPONSE_HIT_WEIGHT for keyword in keywords if keyword in response_lower)
        domain_scores[domain] = query_score + response_score

    best_domain = "general"
    highest_score = -1
    for domain, score in domain_scores.items():
        if score > highest_score:
            best_domain, highest_score = domain, score

    if highest_score == 0:
        best_domain = "general"

    average = sum(domain_scores.values()) / len(domain_scores)
    confidence = min(
        TEXT_CONFIDENCE_CEILING,
        max(TEXT_CONFIDENCE_FLOOR, TEXT_CONFIDENCE_FLOOR + (highest_score / (average + 1)) * 0.3)
    )

    logger.info(
        "Classification extracted from text",
        domain_scores=domain_scores,
        best_domain=best_domain,
        confidence=round(confidence, 3)
    )

    return {
        "needs_clarification": False,
        "target_specialist": best_domain,
        "routing_confidence": confidence,
        "rationale": "Determined from content analysis of the response",
    }


def resolve_specialist_id(name: str, registry: SpecialistRegistry) -> str:
    """Map a classifier name (short alias or full id) onto a registered id."""
    key = (name or "").strip().lower()
    specialist_id = key if key in registry else SPECIALIST_ALIASES.get(key)
    if specialist_id is None or specialist_id not in registry:
        raise ClassificationError(f"Unknown target specialist: {name!r}")
    return specialist_id


def parse_classification_payload(
    text: str,
    query: str,
    registry: SpecialistRegistry
) -> ClassificationResult:
    """
    Turn a raw classifier reply into a ClassificationResult.

    Raises:
        ClassificationError: If required fields are missing or invalid
    """
    payload: Optional[Dict[str, Any]] = None

    match = _JSON_OBJECT.search(text or "")
    if match:
        try:
            parsed = json.loads(match.group(0))
            if isinstance(parsed, dict):
                payload = parsed
        except json.JSONDecodeError as e:
            logger.warning("Classifier reply is not valid JSON", error=str(e))

    if payload is None:
        logger.warning("Falling back to text extraction", reply_preview=sanitize_for_logging(text or "", 120))
        payload = extract_classification_from_text(query, text or "")

    target = payload.get("target_specialist")
    confidence = payload.get("routing_confidence", payload.get("confidence"))
    if not target or confidence is None:
        raise ClassificationError("Invalid classification data format: target_specialist and confidence are required")

    try:
        confidence = float(confidence)
    except (TypeError, ValueError):
        raise ClassificationError(f"Invalid classification confidence: {confidence!r}")

    return ClassificationResult(
        target_specialist=resolve_specialist_id(str(target), registry),
        confidence=max(0.0, min(confidence, 1.0)),
        rationale=payload.get("rationale") or "No reasoning provided",
        needs_clarification=bool(payload.get("needs_clarification", False)),
        clarification_question=payload.get("clarification_question") or payload.get("question"),
        intent=payload.get("intent")
    )


def classification_to_decision(
    query: str,
    result: ClassificationResult,
    registry: SpecialistRegistry,
    default_intent: str = "general_inquiry"
) -> RoutingDecision:
    """
    Map a classifier answer onto a routing decision.

    The chosen specialist keeps the classifier confidence; every other
    registered specialist gets max(0.1, 0.3 * confidence).
    """
    other_score = max(OTHER_AGENT_CONFIDENCE_FLOOR, result.confidence * OTHER_AGENT_CONFIDENCE_FACTOR)
    scores = {
        specialist_id: (result.confidence if specialist_id == result.target_specialist else other_score)
        for specialist_id in registry.ids()
    }

    profile = registry.get(result.target_specialist)
    return RoutingDecision(
        original_query=query,
        analyzed_intent=result.intent or default_intent,
        matched_keywords=[],
        selected_agent=result.target_specialist,
        confidence_scores=scores,
        reasoning=result.rationale,
        meets_threshold=result.confidence >= profile.confidence_threshold,
        source=DecisionSource.CLASSIFIER
    )


class ClassifierClient(ABC):
    """Remote semantic classifier consulted before local analysis."""

    @abstractmethod
    async def classify(self, query: str) -> ClassificationResult:
        """
        Classify a query.

        Raises:
            ClassificationError: On any failure
        """


class LLMClassifierClient(ClassifierClient):
    """Classifier backed by a chat-completion model answering in JSON."""

    def __init__(self, registry: SpecialistRegistry, llm_client: OpenRouterClient, model: Optional[str] = None):
        self.registry = registry
        self.llm_client = llm_client
        self.model = model or llm_client.routing_model

        logger.info("LLM classifier initialized", model=self.model)

    def _build_classification_prompt(self, query: str) -> str:
        specialist_lines = "\n".join(
            f"- {profile.id}: {profile.name}. Domains: {', '.join(profile.domains)}"
            for profile in self.registry
        )

        return f"""# Your role as Query Classifier

You decide which specialist should answer a user query.

## Specialists
{specialist_lines}

## Query
"{query}"

## Output
Reply with a single JSON object and nothing else:
{{"target_specialist": "<specialist id>", "routing_confidence": <0.0-1.0>, "rationale": "<one sentence>", "needs_clarification": <true|false>, "clarification_question": "<question or empty>", "intent": "<short intent label>"}}"""

    async def classify(self, query: str) -> ClassificationResult:
        try:
            with Timer("remote_classification"):
                reply = await self.llm_client.generate_response(
                    messages=[{"role": "user", "content": self._build_classification_prompt(query)}],
                    model=self.model,
                    temperature=0.1,  # Low temperature for consistent routing
                    max_tokens=300
                )
        except LLMError as e:
            raise ClassificationError(f"Classifier unreachable: {str(e)}")

        result = parse_classification_payload(reply, query, self.registry)
        logger.info(
            "Remote classification completed",
            target=result.target_specialist,
            confidence=result.confidence,
            needs_clarification=result.needs_clarification
        )
        return result
