"""
Routing of user queries to specialist backends.

This module provides:
- SpecialistRouter: remote classification first, local analysis and scoring
  as fallback, threshold gate, specialist invocation, session update
- The public session API (start, query, status, stats, clear, prompt preview)
- A canned fallback response for every failure below request validation
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

from loguru import logger

from .analyzer import QueryAnalyzer
from .classifier import ClassificationError, ClassifierClient, LLMClassifierClient, classification_to_decision
from .invoker import InvocationError, LLMSpecialistInvoker, SpecialistInvoker
from .llm import OpenRouterClient
from .models import (
    ConversationStep,
    DecisionSource,
    OrchestratorStatus,
    RoutingAnalysis,
    RoutingDecision,
    RoutingResult,
    RoutingState,
    SessionContext,
    SessionStats,
    SpecialistProfile,
)
from .prompts import build_specialist_prompt
from .registry import ROUTING_PATTERNS, SpecialistRegistry, load_registry
from .scoring import ConfidenceScorer
from .store import SessionContextStore
from .utils import Timer, generate_session_id, get_config, sanitize_for_logging


class RouterError(Exception):
    """Base class for routing failures."""
    pass


class ValidationError(RouterError):
    """Raised for malformed requests, before any routing work."""
    pass


class RoutingError(RouterError):
    """Raised when a decision names a specialist that is not registered."""
    pass


DEFAULT_MAX_QUERY_LENGTH = 4000
DEFAULT_CLASSIFIER_TIMEOUT_SECONDS = 10.0
DEFAULT_INVOCATION_TIMEOUT_SECONDS = 30.0
FALLBACK_INTENT = "fallback"
FALLBACK_AGENT_NAME = "General Assistant"


class SpecialistRouter:
    """Composes the routing decision for a query and dispatches it."""

    def __init__(
        self,
        registry: SpecialistRegistry,
        analyzer: QueryAnalyzer,
        scorer: ConfidenceScorer,
        store: SessionContextStore,
        invoker: SpecialistInvoker,
        classifier: Optional[ClassifierClient] = None,
        classifier_timeout: float = DEFAULT_CLASSIFIER_TIMEOUT_SECONDS,
        invocation_timeout: float = DEFAULT_INVOCATION_TIMEOUT_SECONDS,
        max_query_length: int = DEFAULT_MAX_QUERY_LENGTH
    ):
        self.registry = registry
        self.analyzer = analyzer
        self.scorer = scorer
        self.store = store
        self.invoker = invoker
        self.classifier = classifier
        self.classifier_timeout = classifier_timeout
        self.invocation_timeout = invocation_timeout
        self.max_query_length = max_query_length

        logger.info(
            "Specialist router initialized",
            specialists=registry.ids(),
            fallback_agent_id=registry.fallback_agent_id,
            classifier_enabled=classifier is not None
        )

    def _validate_query(self, message: Optional[str]) -> str:
        if message is None or not str(message).strip():
            raise ValidationError("message required")

        query = str(message).strip()
        if len(query) > self.max_query_length:
            raise ValidationError(f"message too long (max {self.max_query_length} characters)")
        return query

    @staticmethod
    def _validate_session_id(session_id: Optional[str]) -> str:
        if session_id is None or not str(session_id).strip():
            raise ValidationError("session id required")
        return str(session_id).strip()

    async def _classify_remotely(self, query: str, path: List[RoutingState]) -> Optional[RoutingDecision]:
        """Classifier decision, or None when the local pipeline must take over."""
        path.append(RoutingState.CLASSIFYING)
        try:
            result = await asyncio.wait_for(self.classifier.classify(query), timeout=self.classifier_timeout)
            return classification_to_decision(query, result, self.registry)
        except asyncio.TimeoutError:
            logger.warning("Remote classification timed out", timeout_seconds=self.classifier_timeout)
        except ClassificationError as e:
            logger.warning("Remote classification failed", error=str(e))
        except Exception as e:
            logger.warning("Remote classification raised unexpectedly", error=str(e), error_type=type(e).__name__)

        path.append(RoutingState.CLASSIFICATION_ERROR)
        return None

    async def _decide(self, query: str, context: SessionContext, path: List[RoutingState]) -> RoutingDecision:
        decision = None
        if self.classifier is not None:
            decision = await self._classify_remotely(query, path)

        if decision is None:
            path.append(RoutingState.LOCAL_FALLBACK)
            analysis = self.analyzer.analyze(query, context.intent_history)
            decision = self.scorer.decide(analysis, context)

        path.append(RoutingState.THRESHOLD_MET if decision.meets_threshold else RoutingState.THRESHOLD_FAILED)
        return decision

    async def _invoke(self, specialist: SpecialistProfile, prompt: str, session_id: str) -> str:
        try:
            result = await asyncio.wait_for(
                self.invoker.invoke(specialist, prompt, session_id),
                timeout=self.invocation_timeout
            )
        except asyncio.TimeoutError:
            raise InvocationError(f"{specialist.name} did not answer within {self.invocation_timeout} seconds")

        if not result.response_text or not result.response_text.strip():
            raise InvocationError(f"{specialist.name} returned an empty response")
        return result.response_text

    @staticmethod
    def _analysis_from(decision: RoutingDecision) -> RoutingAnalysis:
        return RoutingAnalysis(
            original_query=decision.original_query,
            analyzed_intent=decision.analyzed_intent,
            confidence_scores=dict(decision.confidence_scores),
            selected_agent=decision.selected_agent,
            reasoning=decision.reasoning,
            matched_keywords=list(decision.matched_keywords),
            meets_threshold=decision.meets_threshold,
            source=decision.source
        )

    def _fallback_result(
        self,
        query: str,
        session_id: str,
        error: Exception,
        decision: Optional[RoutingDecision],
        path: List[RoutingState],
        started: float
    ) -> RoutingResult:
        """Apologetic answer used whenever routing or invocation fails."""
        fallback_id = self.registry.fallback_agent_id
        profile = self.registry.get(fallback_id)
        agent_name = f"{profile.name if profile else FALLBACK_AGENT_NAME} (Fallback)"

        if decision is not None:
            scores = dict(decision.confidence_scores)
            keywords = list(decision.matched_keywords)
        else:
            scores = {specialist_id: 0.0 for specialist_id in self.registry.ids()}
            keywords = []

        path.append(RoutingState.FALLBACK_RESPONSE)

        return RoutingResult(
            session_id=session_id,
            handling_agent_id=fallback_id,
            handling_agent_name=agent_name,
            response_text=(
                f"I encountered an issue with my routing system ({error}), but I'll do my best "
                f"to help with your request: \"{query}\". Please let me know if you need me to try "
                f"a different approach."
            ),
            routing_analysis=RoutingAnalysis(
                original_query=query,
                analyzed_intent=FALLBACK_INTENT,
                confidence_scores=scores,
                selected_agent=fallback_id,
                reasoning=f"Fallback due to routing error: {error}",
                matched_keywords=keywords,
                meets_threshold=False,
                source=DecisionSource.FALLBACK
            ),
            context_maintained=False,
            processing_time_ms=(time.perf_counter() - started) * 1000,
            routing_path=list(path)
        )

    async def query(self, message: str, session_id: str) -> RoutingResult:
        """
        Route one query within a session and return the specialist's answer.

        Raises:
            ValidationError: For an empty message or missing session id
        """
        query = self._validate_query(message)
        session_id = self._validate_session_id(session_id)

        started = time.perf_counter()
        path: List[RoutingState] = [RoutingState.NEW]

        logger.info(
            "Routing query",
            session_id=session_id,
            query_preview=sanitize_for_logging(query, 100)
        )

        with Timer("query_routing"):
            async with self.store.session_lock(session_id):
                context = await self.store.get_or_create(session_id, query)
                decision: Optional[RoutingDecision] = None

                try:
                    decision = await self._decide(query, context, path)

                    specialist = self.registry.get(decision.selected_agent)
                    if specialist is None:
                        raise RoutingError(f"Selected agent {decision.selected_agent} not found in configuration")

                    prompt = build_specialist_prompt(query, specialist, decision, context, self.registry)
                    path.append(RoutingState.DISPATCHED)
                    response_text = await self._invoke(specialist, prompt, session_id)

                    await self.store.append_exchange(
                        session_id,
                        ConversationStep(
                            user_message=query,
                            agent_id=specialist.id,
                            agent_response=response_text,
                            routing_reason=decision.reasoning
                        ),
                        decision
                    )
                    path.append(RoutingState.CONTEXT_UPDATED)

                except Exception as e:
                    logger.error(
                        "Routing failed, using fallback response",
                        session_id=session_id,
                        error=str(e),
                        error_type=type(e).__name__,
                        routing_path=[state.value for state in path]
                    )
                    return self._fallback_result(query, session_id, e, decision, path, started)

        result = RoutingResult(
            session_id=session_id,
            handling_agent_id=specialist.id,
            handling_agent_name=specialist.name,
            response_text=response_text,
            routing_analysis=self._analysis_from(decision),
            context_maintained=True,
            processing_time_ms=(time.perf_counter() - started) * 1000,
            routing_path=list(path)
        )

        logger.info(
            "Query routed",
            session_id=session_id,
            handling_agent=specialist.id,
            source=decision.source.value,
            processing_time_ms=round(result.processing_time_ms, 2)
        )
        return result

    async def start_session(self, message: str) -> RoutingResult:
        """Open a new session with its first query."""
        self._validate_query(message)
        session_id = generate_session_id()
        logger.info("Starting session", session_id=session_id)
        return await self.query(message, session_id)

    def get_status(self) -> OrchestratorStatus:
        from . import __version__

        return OrchestratorStatus(
            specialists=self.registry.summaries(),
            active_session_count=self.store.session_count(),
            fallback_agent_id=self.registry.fallback_agent_id,
            classifier_enabled=self.classifier is not None,
            version=__version__
        )

    async def get_session_stats(self, session_id: str) -> Optional[SessionStats]:
        """Statistics for a session, or None when it does not exist."""
        return await self.store.get_session_stats(session_id)

    async def clear_session(self, session_id: str) -> bool:
        return await self.store.clear(session_id)

    def preview_specialization_prompt(self, agent_id: str, query: str) -> str:
        """The prompt a specialist would receive for a query in a fresh session."""
        specialist = self.registry.get(agent_id)
        if specialist is None:
            return f"Agent '{agent_id}' not found. Available agents: {', '.join(self.registry.ids())}"

        analysis = self.analyzer.analyze(query, [])
        context = SessionContext(session_id="preview", current_query=query)
        decision = self.scorer.decide(analysis, context)
        return build_specialist_prompt(query, specialist, decision, context, self.registry)


def build_router(config: Optional[Dict[str, Any]] = None) -> SpecialistRouter:
    """
    Wire a router from configuration.

    The specialist invoker always needs the LLM client, so OPENROUTER_API_KEY
    is required whether or not the remote classifier is enabled.

    Raises:
        ConfigurationError: If the registry or LLM settings are invalid
    """
    config = config if config is not None else get_config()

    registry = load_registry(config)
    store = SessionContextStore(
        history_limit=config.get("SESSION_HISTORY_LIMIT", 10),
        idle_timeout_minutes=config.get("SESSION_IDLE_TIMEOUT_MINUTES", 60),
        sweep_interval_minutes=config.get("SESSION_SWEEP_INTERVAL_MINUTES", 60)
    )

    llm_client = OpenRouterClient(config)
    classifier = None
    if config.get("CLASSIFIER_ENABLED", True):
        classifier = LLMClassifierClient(registry, llm_client)

    return SpecialistRouter(
        registry=registry,
        analyzer=QueryAnalyzer(registry, ROUTING_PATTERNS),
        scorer=ConfidenceScorer(registry),
        store=store,
        invoker=LLMSpecialistInvoker(llm_client),
        classifier=classifier,
        classifier_timeout=config.get("CLASSIFIER_TIMEOUT_SECONDS", DEFAULT_CLASSIFIER_TIMEOUT_SECONDS),
        invocation_timeout=config.get("INVOCATION_TIMEOUT_SECONDS", DEFAULT_INVOCATION_TIMEOUT_SECONDS),
        max_query_length=config.get("MAX_QUERY_LENGTH", DEFAULT_MAX_QUERY_LENGTH)
    )


# Global instance for application use
_router_instance: Optional[SpecialistRouter] = None


def get_router() -> SpecialistRouter:
    """Get global router instance."""
    global _router_instance
    if _router_instance is None:
        _router_instance = build_router()
    return _router_instance
