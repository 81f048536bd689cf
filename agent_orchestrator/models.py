"""
Pydantic data models for the specialist routing engine.

This module defines the specialist profiles, per-request analysis and
decision records, session context records, and the request/response models
of the HTTP surface.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from pydantic import BaseModel, Field, validator
from enum import Enum
import re


# UTC datetime factory function
def utc_now():
    """Factory function to get current UTC datetime."""
    return datetime.now(timezone.utc)


# Enums for controlled vocabulary
class RoutingState(str, Enum):
    """States a single routed query moves through."""
    NEW = "new"
    CLASSIFYING = "classifying"
    CLASSIFICATION_ERROR = "classification_error"
    LOCAL_FALLBACK = "local_fallback"
    THRESHOLD_MET = "threshold_met"
    THRESHOLD_FAILED = "threshold_failed"
    DISPATCHED = "dispatched"
    CONTEXT_UPDATED = "context_updated"        # terminal, success
    FALLBACK_RESPONSE = "fallback_response"    # terminal, any failure


class DecisionSource(str, Enum):
    """Which pipeline produced a routing decision."""
    CLASSIFIER = "classifier"
    LOCAL = "local"
    FALLBACK = "fallback"


# Specialist registry models
class SpecialistProfile(BaseModel):
    """A registered backend persona with its keyword/domain profile."""
    id: str = Field(..., min_length=1, description="Unique specialist identifier")
    name: str = Field(..., description="Display name")
    description: str = Field(..., description="Free-text description of the specialist")
    capabilities: List[str] = Field(default_factory=list, description="Capability statements")
    keywords: List[str] = Field(default_factory=list, description="Routing keywords, matched case-insensitively")
    domains: List[str] = Field(default_factory=list, description="Domain tags")
    confidence_threshold: float = Field(..., ge=0.0, le=1.2, description="Minimum score to accept this specialist")

    @validator('keywords')
    def normalize_keywords(cls, v):
        return [keyword.strip().lower() for keyword in v if keyword and keyword.strip()]

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "technical-specialist",
                "name": "Technical Specialist",
                "description": "A senior software engineer and technical architect.",
                "capabilities": ["Code generation, debugging, and optimization"],
                "keywords": ["code", "docker", "api"],
                "domains": ["software_development", "devops"],
                "confidence_threshold": 0.7
            }
        }


class SpecialistSummary(BaseModel):
    """Public view of a specialist for status listings."""
    id: str
    name: str
    description: str
    capabilities: List[str] = Field(default_factory=list)
    domains: List[str] = Field(default_factory=list)
    confidence_threshold: float


# Analysis and scoring models
class QueryAnalysis(BaseModel):
    """Signals extracted from a single query."""
    original_query: str = Field(..., description="Query text as received")
    analyzed_intent: str = Field(..., description="Intent label or general_inquiry")
    matched_keywords: List[str] = Field(default_factory=list, description="Specialist keywords found in the query, no duplicates")
    domain_indicators: List[str] = Field(default_factory=list, description="Domain tags indicated by the query")
    domain_matches: Dict[str, int] = Field(default_factory=dict, description="Indicator term hits per domain tag")

    class Config:
        frozen = True


class ScoreBreakdown(BaseModel):
    """Per-component view of one specialist's confidence score."""
    specialist_id: str
    keyword_score: float = Field(..., ge=0.0, le=1.0)
    domain_score: float = Field(..., ge=0.0, le=1.0)
    context_score: float = Field(..., ge=0.0)
    exact_match_count: int = Field(..., ge=0)
    raw_total: float = Field(..., description="Weighted sum before capping")
    total: float = Field(..., ge=0.0, le=1.2, description="Capped score")


class RoutingDecision(BaseModel):
    """Outcome of routing one query, kept in session history."""
    original_query: str = Field(..., description="Query the decision was made for")
    analyzed_intent: str = Field(..., description="Intent label of the query")
    matched_keywords: List[str] = Field(default_factory=list, description="Keywords that matched")
    selected_agent: str = Field(..., min_length=1, description="Chosen specialist id")
    confidence_scores: Dict[str, float] = Field(..., description="Score per registered specialist id")
    reasoning: str = Field(..., description="Human-readable justification")
    meets_threshold: bool = Field(..., description="Whether the winner met its own threshold")
    source: DecisionSource = Field(default=DecisionSource.LOCAL, description="Pipeline that produced the decision")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "original_query": "Write a Dockerfile for Node.js 20",
                "analyzed_intent": "creation_request",
                "matched_keywords": ["node", "docker", "dockerfile"],
                "selected_agent": "technical-specialist",
                "confidence_scores": {"technical-specialist": 0.86, "general-assistant": 0.0},
                "reasoning": "Selected Technical Specialist with confidence score 0.86 (threshold: 0.7).",
                "meets_threshold": True,
                "source": "local"
            }
        }


# Session context models
class ConversationStep(BaseModel):
    """One completed exchange."""
    timestamp: datetime = Field(default_factory=utc_now)
    user_message: str
    agent_id: str
    agent_response: str
    routing_reason: str = ""

    class Config:
        frozen = True


class SessionContext(BaseModel):
    """Bounded conversation state for one session id."""
    session_id: str = Field(..., description="Session identifier")
    current_query: str = Field(default="", description="Most recent query seen for this session")
    conversation_history: List[ConversationStep] = Field(default_factory=list)
    routing_decisions: List[RoutingDecision] = Field(default_factory=list)
    current_agent: Optional[str] = Field(None, description="Specialist that handled the last exchange")
    message_count: int = Field(default=0, ge=0, description="Exchanges appended over the session lifetime")
    created_at: datetime = Field(default_factory=utc_now)
    last_activity_at: datetime = Field(default_factory=utc_now)

    @property
    def intent_history(self) -> List[str]:
        """Intents of the retained decisions, oldest first."""
        return [decision.analyzed_intent for decision in self.routing_decisions]

    @property
    def is_empty(self) -> bool:
        return not self.conversation_history


class ConversationFlow(BaseModel):
    """Shape of the conversation so far."""
    dominant_topic: str = "none"
    agent_switching_frequency: float = 0.0
    conversation_depth: int = 0
    recent_topics: List[str] = Field(default_factory=list)


class SessionStats(BaseModel):
    """Derived, read-only statistics for one session."""
    session_id: str
    message_count: int = Field(..., ge=0, description="Exchanges over the session lifetime")
    history_length: int = Field(..., ge=0, description="Exchanges currently retained")
    agent_switches: int = Field(..., ge=0)
    most_used_agent: Optional[str] = None
    dominant_intent: Optional[str] = None
    current_agent: Optional[str] = None
    session_duration_seconds: float = Field(..., ge=0.0)
    created_at: datetime
    last_activity_at: datetime
    conversation_flow: ConversationFlow = Field(default_factory=ConversationFlow)

    class Config:
        json_schema_extra = {
            "example": {
                "session_id": "3f1c2a9e-8f0b-4c55-9a53-1f7f3c2b9d10",
                "message_count": 2,
                "history_length": 2,
                "agent_switches": 1,
                "most_used_agent": "data-scientist",
                "dominant_intent": "creation_request",
                "current_agent": "business-analyst",
                "session_duration_seconds": 42.5,
                "created_at": "2025-08-27T10:00:00.000Z",
                "last_activity_at": "2025-08-27T10:00:42.500Z",
                "conversation_flow": {}
            }
        }


# External collaborator models
class ClassificationResult(BaseModel):
    """Structured answer from the remote classifier."""
    target_specialist: str = Field(..., description="Specialist id chosen by the classifier")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Classifier confidence [0,1]")
    rationale: str = Field(default="No reasoning provided")
    needs_clarification: bool = Field(default=False)
    clarification_question: Optional[str] = None
    intent: Optional[str] = None


class InvocationResult(BaseModel):
    """Text returned by a specialist backend."""
    response_text: str
    generated_by: Optional[str] = Field(None, description="Backend model that produced the text")


# Public API result models
class RoutingAnalysis(BaseModel):
    """Routing transparency block returned with every result."""
    original_query: str
    analyzed_intent: str
    confidence_scores: Dict[str, float] = Field(default_factory=dict)
    selected_agent: str
    reasoning: str
    matched_keywords: List[str] = Field(default_factory=list)
    meets_threshold: bool = False
    source: DecisionSource = DecisionSource.LOCAL


class RoutingResult(BaseModel):
    """Composed answer for one routed query."""
    session_id: str = Field(..., description="Session identifier")
    handling_agent_id: str = Field(..., description="Specialist that answered")
    handling_agent_name: str = Field(..., description="Display name of the answering specialist")
    response_text: str = Field(..., description="Specialist response")
    routing_analysis: RoutingAnalysis
    context_maintained: bool = Field(..., description="Whether session history was updated")
    processing_time_ms: float = Field(default=0.0, ge=0.0)
    routing_path: List[RoutingState] = Field(default_factory=list, description="States visited while routing")

    class Config:
        json_schema_extra = {
            "example": {
                "session_id": "3f1c2a9e-8f0b-4c55-9a53-1f7f3c2b9d10",
                "handling_agent_id": "technical-specialist",
                "handling_agent_name": "Technical Specialist",
                "response_text": "Here is a multi-stage Dockerfile...",
                "routing_analysis": {},
                "context_maintained": True,
                "processing_time_ms": 812.4,
                "routing_path": ["new", "classifying", "classification_error", "local_fallback",
                                 "threshold_met", "dispatched", "context_updated"]
            }
        }


class OrchestratorStatus(BaseModel):
    """Registered specialists and live session count."""
    specialists: List[SpecialistSummary]
    active_session_count: int = Field(..., ge=0)
    fallback_agent_id: str
    classifier_enabled: bool
    version: str


# HTTP request/response models
SESSION_ID_PATTERN = r'^[a-zA-Z0-9_-]{8,64}$'


class StartSessionRequest(BaseModel):
    """Request model for opening a routed session."""
    message: str = Field(..., max_length=4000, min_length=1, description="First user message")

    @validator('message')
    def validate_message(cls, v):
        if not v or v.isspace():
            raise ValueError('Message cannot be empty or only whitespace')
        return v.strip()

    class Config:
        json_schema_extra = {
            "example": {
                "message": "Write a Dockerfile for Node.js 20 with pnpm and multi-stage builds."
            }
        }


class QueryRequest(BaseModel):
    """Request model for a query within an existing session."""
    message: str = Field(..., max_length=4000, min_length=1, description="User message content")
    session_id: str = Field(..., description="Session identifier for conversation continuity")

    @validator('message')
    def validate_message(cls, v):
        if not v or v.isspace():
            raise ValueError('Message cannot be empty or only whitespace')
        return v.strip()

    @validator('session_id')
    def validate_session_id(cls, v):
        if not re.match(SESSION_ID_PATTERN, v):
            raise ValueError('Session ID must be 8-64 alphanumeric characters with optional hyphens/underscores')
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "message": "What about the business ROI?",
                "session_id": "3f1c2a9e-8f0b-4c55-9a53-1f7f3c2b9d10"
            }
        }


class ClearSessionResponse(BaseModel):
    session_id: str
    cleared: bool


class PromptPreviewResponse(BaseModel):
    agent_id: str
    query: str
    prompt: str


class ErrorResponse(BaseModel):
    """Consistent error body for all failed requests."""
    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
    details: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[str] = None
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: str
    version: str
    components: Dict[str, Any] = Field(default_factory=dict)
