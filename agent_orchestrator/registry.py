"""
Specialist registry and the routing pattern tables.

This module provides:
- The built-in specialist profiles, in routing priority order
- Domain indicator, intent and question-word tables shared by analysis and scoring
- SpecialistRegistry, an immutable id -> profile lookup loaded once at startup
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from .models import SpecialistProfile, SpecialistSummary
from .utils import ConfigurationError


DEFAULT_FALLBACK_AGENT_ID = "general-assistant"


DEFAULT_SPECIALISTS: List[Dict] = [
    {
        "id": "technical-specialist",
        "name": "Technical Specialist",
        "description": (
            "A senior software engineer and technical architect with deep expertise in programming, "
            "system design, DevOps, and emerging technologies. Specializes in providing practical, "
            "production-ready solutions."
        ),
        "capabilities": [
            "Full-stack software development and architecture",
            "Code generation, debugging, and optimization",
            "Cloud infrastructure design and DevOps automation",
            "API design and microservices architecture",
            "Database design and performance tuning",
            "Security implementation and best practices",
            "Technical project planning and estimation",
            "Code review and quality assurance",
        ],
        "keywords": [
            "code", "programming", "debug", "api", "database", "sql", "javascript", "python",
            "typescript", "react", "node", "aws", "docker", "dockerfile", "kubernetes",
            "git", "github", "deployment", "ci/cd", "testing", "error", "bug", "function", "class",
            "method", "algorithm", "data structure", "performance", "optimization", "security",
            "framework", "library", "backend", "frontend", "server", "client",
        ],
        "domains": ["software_development", "devops", "cloud_computing", "cybersecurity"],
        "confidence_threshold": 0.7,
    },
    {
        "id": "business-analyst",
        "name": "Business Analyst",
        "description": (
            "A strategic business consultant with expertise in market analysis, financial modeling, "
            "project management, and organizational optimization. Focuses on driving measurable "
            "business outcomes."
        ),
        "capabilities": [
            "Strategic business planning and roadmap development",
            "Financial analysis and ROI modeling",
            "Market research and competitive analysis",
            "Project management and stakeholder coordination",
            "Process optimization and workflow design",
            "Risk assessment and mitigation strategies",
            "KPI definition and performance measurement",
            "Business case development and presentation",
        ],
        "keywords": [
            "business", "strategy", "market", "analysis", "project", "management", "roi",
            "revenue", "cost", "budget", "planning", "stakeholder", "requirements",
            "process", "workflow", "optimization", "kpi", "metrics", "dashboard",
            "finance", "investment", "risk", "compliance", "agile", "scrum",
            "profit", "growth", "competitive", "opportunity", "mvp", "milestone",
            "assumption", "product", "roadmap", "timeline", "plan", "owners", "risks",
        ],
        "domains": ["business_strategy", "project_management", "financial_analysis"],
        "confidence_threshold": 0.6,
    },
    {
        "id": "creative-specialist",
        "name": "Creative Specialist",
        "description": (
            "A creative director and content strategist with expertise in design, marketing "
            "communications, brand development, and audience engagement. Specializes in creating "
            "compelling, user-centered experiences."
        ),
        "capabilities": [
            "Content strategy and creative copywriting",
            "Brand development and messaging alignment",
            "User experience and interface design concepts",
            "Marketing campaign strategy and execution",
            "Social media strategy and community building",
            "Visual storytelling and multimedia content",
            "Creative problem solving and innovation",
            "Audience research and persona development",
        ],
        "keywords": [
            "content", "writing", "copy", "design", "creative", "marketing", "brand",
            "social media", "campaign", "advertising", "messaging", "story", "narrative",
            "visual", "graphics", "ui", "ux", "user experience", "blog", "article",
            "press release", "email", "newsletter", "video", "podcast", "presentation",
            "audience", "engagement", "persona", "voice", "tone",
        ],
        "domains": ["content_creation", "marketing", "design", "communications"],
        "confidence_threshold": 0.6,
    },
    {
        "id": "data-scientist",
        "name": "Data Scientist",
        "description": (
            "A senior data scientist and analytics expert specializing in statistical modeling, "
            "machine learning, and data-driven decision making. Transforms complex data into "
            "actionable business insights."
        ),
        "capabilities": [
            "Advanced statistical analysis and modeling",
            "Machine learning algorithm development and deployment",
            "Data pipeline architecture and ETL processes",
            "Predictive analytics and forecasting",
            "Data visualization and dashboard creation",
            "A/B testing and experimental design",
            "Big data processing and distributed computing",
            "AI ethics and bias detection in models",
        ],
        "keywords": [
            "data", "analysis", "statistics", "machine learning", "ml", "ai", "model",
            "prediction", "analytics", "visualization", "chart", "graph", "dataset",
            "pandas", "numpy", "scikit-learn", "tensorflow", "pytorch", "regression",
            "classification", "clustering", "neural network", "deep learning",
            "feature engineering", "correlation", "hypothesis", "experiment",
            "sql", "python", "rstudio", "r language", "tableau", "powerbi",
        ],
        "domains": ["data_science", "machine_learning", "statistics", "analytics"],
        "confidence_threshold": 0.7,
    },
    {
        "id": "financial-analyst",
        "name": "Financial Analyst",
        "description": (
            "A senior financial analyst and investment professional with expertise in financial "
            "modeling, valuation, risk management, and capital markets. Specializes in financial "
            "analysis, investment decisions, and regulatory compliance."
        ),
        "capabilities": [
            "Financial statement analysis and ratio analysis",
            "DCF modeling and company valuation",
            "Investment portfolio analysis and optimization",
            "Risk management and hedging strategies",
            "Financial planning and budgeting",
            "Market analysis and economic forecasting",
            "Regulatory compliance and reporting",
            "Capital structure and financing decisions",
        ],
        "keywords": [
            "finance", "financial", "investment", "valuation", "dcf", "cash flow",
            "budget", "forecast", "profit", "loss", "revenue", "expenses", "margin",
            "ratio", "balance sheet", "income statement", "equity", "debt", "bonds",
            "stocks", "portfolio", "risk", "return", "volatility", "beta", "alpha",
            "interest rate", "dividend", "earnings", "ebitda", "npv", "irr",
            "financial modeling", "excel", "bloomberg", "sec", "gaap", "fbar",
            "foreign bank account", "tax reporting", "compliance", "irs", "treasury",
            "reporting requirements", "foreign assets", "offshore account",
            "tax", "taxes", "taxation", "tax professional", "tax advisor", "tax consultant",
            "accountant", "cpa", "tax planning", "tax preparation", "tax return",
            "deduction", "exemption", "withholding", "refund",
        ],
        "domains": ["finance", "investment", "financial_analysis", "capital_markets"],
        # Low so that compliance queries such as FBAR still land here
        "confidence_threshold": 0.3,
    },
    {
        "id": "general-assistant",
        "name": "General Assistant",
        "description": (
            "A versatile general-purpose assistant that handles a wide variety of queries that "
            "don't require specialized domain expertise."
        ),
        "capabilities": [
            "General question answering and research",
            "Basic information lookup and explanation",
            "Multi-domain query handling",
            "General advice and guidance",
            "Simple task assistance",
            "Educational explanations",
            "General knowledge queries",
            "Cross-domain information synthesis",
        ],
        "keywords": [
            "help", "question", "what", "how", "why", "when", "where", "explain",
            "general", "basic", "simple", "information", "research", "lookup",
            "guide", "advice", "assistance", "support", "overview", "summary",
        ],
        "domains": ["general", "multi_domain", "information", "assistance"],
        "confidence_threshold": 0.1,
    },
]


@dataclass(frozen=True)
class IntentPattern:
    """Weighted pattern tiers for one intent category."""
    primary: Tuple[str, ...]
    secondary: Tuple[str, ...]
    questions: Tuple[str, ...]
    weight: float = 1.0


@dataclass(frozen=True)
class RoutingPatterns:
    """Pattern tables used for intent and domain detection."""

    # Domain tag -> indicator terms (substring matched)
    DOMAIN_PATTERNS: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: {
        "software_development": ("build", "develop", "create", "implement", "code", "program", "write"),
        "devops": ("deploy", "pipeline", "infrastructure", "container", "server", "automate", "scale"),
        "cloud_computing": ("aws", "azure", "cloud", "serverless", "kubernetes", "docker", "microservices"),
        "cybersecurity": ("secure", "encrypt", "authenticate", "vulnerability", "threat", "firewall"),
        "business_strategy": ("strategy", "plan", "business", "market", "growth", "competitive", "revenue"),
        "project_management": ("project", "timeline", "milestone", "stakeholder", "scope", "deliverable"),
        "financial_analysis": ("financial", "budget", "cost", "roi", "investment", "profit", "revenue"),
        "data_science": ("analyze", "predict", "model", "statistics", "insights", "correlation", "trend"),
        "machine_learning": ("train", "algorithm", "neural", "classification", "regression", "feature"),
        "analytics": ("dashboard", "metrics", "kpi", "visualization", "report", "measurement"),
        "content_creation": ("write", "create", "design", "content", "copy", "article", "blog"),
        "marketing": ("campaign", "promote", "brand", "audience", "engagement", "conversion"),
        "design": ("visual", "layout", "interface", "user experience", "wireframe", "prototype"),
        "communications": ("message", "communicate", "presentation", "social media", "public relations"),
    })

    # Declaration order is the tie-break order
    INTENT_PATTERNS: Dict[str, IntentPattern] = field(default_factory=lambda: {
        "help_request": IntentPattern(
            primary=("help", "assist", "support", "guide"),
            secondary=("can you", "could you", "would you", "please"),
            questions=("how to", "how do i", "how can i"),
            weight=1.0,
        ),
        "creation_request": IntentPattern(
            primary=("create", "build", "make", "develop", "generate", "design", "write", "implement"),
            secondary=("new", "from scratch", "custom", "prototype"),
            questions=("how to create", "how to build", "how to make"),
            weight=1.2,
        ),
        "analysis_request": IntentPattern(
            primary=("analyze", "examine", "review", "assess", "evaluate", "compare", "study"),
            secondary=("performance", "metrics", "data", "results"),
            questions=("what are", "which is", "how does", "why does"),
            weight=1.1,
        ),
        "learning_request": IntentPattern(
            primary=("learn", "understand", "explain", "teach", "show", "clarify"),
            secondary=("concept", "theory", "basics", "fundamentals"),
            questions=("what is", "what are", "why", "how does", "when"),
            weight=1.0,
        ),
        "troubleshooting": IntentPattern(
            primary=("fix", "debug", "solve", "resolve", "repair", "troubleshoot"),
            secondary=("error", "problem", "issue", "broken", "failing", "not working"),
            questions=("why is", "why does", "what's wrong", "how to fix"),
            weight=1.3,
        ),
        "optimization_request": IntentPattern(
            primary=("improve", "optimize", "enhance", "refactor", "upgrade"),
            secondary=("better", "faster", "efficient", "performance", "speed"),
            questions=("how to improve", "how to optimize", "how to make better"),
            weight=1.1,
        ),
        "planning_request": IntentPattern(
            primary=("plan", "strategy", "roadmap", "schedule", "organize"),
            secondary=("timeline", "approach", "methodology", "steps"),
            questions=("how should", "what should", "when should", "where should"),
            weight=1.0,
        ),
        "comparison_request": IntentPattern(
            primary=("compare", "versus", "vs", "difference", "similar", "alternative"),
            secondary=("better", "worse", "pros", "cons", "advantages"),
            questions=("which is", "what's the difference", "which should"),
            weight=1.0,
        ),
        "recommendation_request": IntentPattern(
            primary=("recommend", "suggest", "advise", "propose"),
            secondary=("best", "ideal", "suitable", "appropriate"),
            questions=("what should", "which should", "what would you"),
            weight=1.0,
        ),
    })

    # Question word -> intents that get a +1 bonus
    QUESTION_WORDS: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: {
        "what": ("learning_request", "analysis_request"),
        "how": ("help_request", "creation_request", "troubleshooting"),
        "why": ("learning_request", "troubleshooting"),
        "when": ("planning_request", "learning_request"),
        "where": ("learning_request", "planning_request"),
        "which": ("comparison_request", "recommendation_request"),
        "who": ("learning_request",),
        "can": ("help_request", "creation_request"),
        "should": ("recommendation_request", "planning_request"),
        "would": ("recommendation_request", "comparison_request"),
    })

    POLITE_PHRASES: Tuple[str, ...] = ("please", "could you")

    GENERAL_INTENT: str = "general_inquiry"
    MIN_INTENT_SCORE: float = 2.0
    CONTINUITY_BONUS: float = 0.5
    QUESTION_MARK_BONUS: float = 0.5


ROUTING_PATTERNS = RoutingPatterns()


class SpecialistRegistry:
    """Immutable, ordered collection of specialist profiles."""

    def __init__(
        self,
        specialists: List[SpecialistProfile],
        fallback_agent_id: str = DEFAULT_FALLBACK_AGENT_ID
    ):
        if not specialists:
            raise ConfigurationError("At least one specialist must be registered")

        self._profiles: Dict[str, SpecialistProfile] = {}
        for profile in specialists:
            if profile.id in self._profiles:
                raise ConfigurationError(f"Duplicate specialist id: {profile.id}")
            self._profiles[profile.id] = profile

        self.fallback_agent_id = fallback_agent_id or DEFAULT_FALLBACK_AGENT_ID

        if self.fallback_agent_id not in self._profiles:
            logger.warning(
                "Fallback specialist is not registered",
                fallback_agent_id=self.fallback_agent_id,
                registered=self.ids()
            )

    @classmethod
    def from_definitions(
        cls,
        definitions: List[Dict],
        fallback_agent_id: str = DEFAULT_FALLBACK_AGENT_ID
    ) -> "SpecialistRegistry":
        try:
            profiles = [SpecialistProfile(**definition) for definition in definitions]
        except (PydanticValidationError, TypeError) as e:
            raise ConfigurationError(f"Invalid specialist definition: {e}")
        return cls(profiles, fallback_agent_id)

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        fallback_agent_id: str = DEFAULT_FALLBACK_AGENT_ID
    ) -> "SpecialistRegistry":
        """Load profiles from a JSON file holding a list of specialist objects."""
        path = Path(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                definitions = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read specialists file {path}: {e}")

        if not isinstance(definitions, list):
            raise ConfigurationError(f"Specialists file {path} must contain a JSON list")

        registry = cls.from_definitions(definitions, fallback_agent_id)
        logger.info("Specialists loaded from file", path=str(path), count=len(registry))
        return registry

    def get(self, specialist_id: str) -> Optional[SpecialistProfile]:
        return self._profiles.get(specialist_id)

    def all(self) -> List[SpecialistProfile]:
        return list(self._profiles.values())

    def ids(self) -> List[str]:
        return list(self._profiles.keys())

    def name_of(self, specialist_id: str) -> str:
        """Display name for an id, or the id itself when unknown."""
        profile = self._profiles.get(specialist_id)
        return profile.name if profile else specialist_id

    def summaries(self) -> List[SpecialistSummary]:
        return [
            SpecialistSummary(
                id=profile.id,
                name=profile.name,
                description=profile.description,
                capabilities=list(profile.capabilities),
                domains=list(profile.domains),
                confidence_threshold=profile.confidence_threshold
            )
            for profile in self._profiles.values()
        ]

    def __contains__(self, specialist_id: object) -> bool:
        return specialist_id in self._profiles

    def __iter__(self) -> Iterator[SpecialistProfile]:
        return iter(list(self._profiles.values()))

    def __len__(self) -> int:
        return len(self._profiles)


def build_default_registry(fallback_agent_id: str = DEFAULT_FALLBACK_AGENT_ID) -> SpecialistRegistry:
    """Registry holding the built-in specialists."""
    return SpecialistRegistry.from_definitions(DEFAULT_SPECIALISTS, fallback_agent_id)


def load_registry(config: Dict) -> SpecialistRegistry:
    """Build the registry described by configuration, loaded once at startup."""
    fallback_agent_id = config.get("FALLBACK_AGENT_ID") or DEFAULT_FALLBACK_AGENT_ID
    path = config.get("SPECIALISTS_CONFIG_PATH")
    if path:
        return SpecialistRegistry.from_file(path, fallback_agent_id)
    return build_default_registry(fallback_agent_id)
