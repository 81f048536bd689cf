"""
Agent Orchestrator
Routes free-text queries to specialist backends with multi-turn context
"""

__version__ = "1.0.0"

from .analyzer import QueryAnalyzer
from .classifier import ClassificationError, ClassifierClient, LLMClassifierClient
from .invoker import InvocationError, LLMSpecialistInvoker, SpecialistInvoker
from .models import (
    ConversationStep, QueryAnalysis, RoutingAnalysis, RoutingDecision, RoutingResult,
    RoutingState, SessionContext, SessionStats, SpecialistProfile
)
from .registry import SpecialistRegistry, build_default_registry
from .router import (
    RouterError,
    RoutingError,
    SpecialistRouter,
    ValidationError,
    build_router,
    get_router
)
from .scoring import ConfidenceScorer
from .store import SessionContextStore
from .utils import ConfigurationError, initialize_app

__all__ = [
    # Routing pipeline
    "QueryAnalyzer",
    "ConfidenceScorer",
    "SpecialistRouter",
    "build_router",
    "get_router",

    # Registry and session state
    "SpecialistRegistry",
    "build_default_registry",
    "SessionContextStore",

    # Collaborator contracts
    "ClassifierClient",
    "LLMClassifierClient",
    "SpecialistInvoker",
    "LLMSpecialistInvoker",

    # Errors
    "RouterError",
    "ValidationError",
    "RoutingError",
    "ClassificationError",
    "InvocationError",
    "ConfigurationError",

    # Models and utils
    "SpecialistProfile",
    "QueryAnalysis",
    "RoutingDecision",
    "RoutingAnalysis",
    "RoutingResult",
    "RoutingState",
    "ConversationStep",
    "SessionContext",
    "SessionStats",
    "initialize_app"
]
