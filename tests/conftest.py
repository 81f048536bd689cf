"""
Shared pytest fixtures: the built-in registry, pipeline components, and
in-memory stand-ins for the remote classifier and specialist backends.
"""

import asyncio
from typing import List, Optional, Tuple

import pytest

from agent_orchestrator.analyzer import QueryAnalyzer
from agent_orchestrator.classifier import ClassificationError, ClassifierClient
from agent_orchestrator.invoker import InvocationError, SpecialistInvoker
from agent_orchestrator.models import ClassificationResult, InvocationResult, SessionContext, SpecialistProfile
from agent_orchestrator.registry import build_default_registry
from agent_orchestrator.router import SpecialistRouter
from agent_orchestrator.scoring import ConfidenceScorer
from agent_orchestrator.store import SessionContextStore


class RecordingInvoker(SpecialistInvoker):
    """Answers every prompt with a canned reply and records the calls."""

    def __init__(self, reply: str = "Specialist answer", error: Optional[Exception] = None, delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: List[Tuple[str, str, str]] = []
        self.active = 0
        self.max_active = 0

    async def invoke(self, specialist: SpecialistProfile, prepared_prompt: str, session_id: str) -> InvocationResult:
        self.calls.append((specialist.id, prepared_prompt, session_id))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        if self.error is not None:
            raise self.error
        return InvocationResult(response_text=f"{self.reply} from {specialist.id}")


class StaticClassifier(ClassifierClient):
    """Returns a fixed classification, or raises a fixed error."""

    def __init__(self, result: Optional[ClassificationResult] = None, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.queries: List[str] = []

    async def classify(self, query: str) -> ClassificationResult:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def analyzer(registry):
    return QueryAnalyzer(registry)


@pytest.fixture
def scorer(registry):
    return ConfidenceScorer(registry)


@pytest.fixture
def store():
    return SessionContextStore(history_limit=10, idle_timeout_minutes=60, auto_sweep=False)


@pytest.fixture
def empty_context():
    return SessionContext(session_id="test-session-0001")


@pytest.fixture
def invoker():
    return RecordingInvoker()


@pytest.fixture
def make_router(registry, analyzer, scorer, store, invoker):
    """Factory so tests can swap the classifier or invoker."""

    def _make(classifier=None, invoker_override=None, **kwargs):
        return SpecialistRouter(
            registry=registry,
            analyzer=analyzer,
            scorer=scorer,
            store=store,
            invoker=invoker_override or invoker,
            classifier=classifier,
            **kwargs
        )

    return _make


@pytest.fixture
def failing_classifier():
    return StaticClassifier(error=ClassificationError("service unreachable"))


@pytest.fixture
def failing_invoker():
    return RecordingInvoker(error=InvocationError("backend down"))
