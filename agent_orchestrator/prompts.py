"""
Prompt composition for specialist invocation.

Builds the role assignment for the chosen specialist and the conversation
block: a context transfer summary when the handling specialist changes, a
one-line reminder of the previous exchange otherwise.
"""

from typing import Dict, List

from .models import RoutingDecision, SessionContext, SpecialistProfile
from .registry import SpecialistRegistry
from .store import analyze_conversation_flow
from .utils import truncate


TRANSFER_EXCHANGES = 3
TRANSFER_USER_CHARS = 80
TRANSFER_AGENT_CHARS = 100
REMINDER_USER_CHARS = 80
REMINDER_RESPONSE_CHARS = 100


BEHAVIORAL_INSTRUCTIONS: Dict[str, List[str]] = {
    "technical-specialist": [
        "Focus on technical accuracy and implementation details",
        "Provide code examples when relevant (properly formatted)",
        "Discuss performance, scalability, and security considerations",
        "Mention relevant tools, frameworks, and technologies",
        "Consider different approaches and trade-offs",
        "Reference documentation and best practices",
    ],
    "business-analyst": [
        "Frame responses in business impact and strategic value",
        "Quantify benefits where possible (ROI, metrics, KPIs)",
        "Consider stakeholder perspectives and requirements",
        "Discuss implementation feasibility and resource needs",
        "Address risk factors and mitigation strategies",
        "Connect solutions to business objectives",
    ],
    "creative-specialist": [
        "Emphasize user experience and audience engagement",
        "Consider brand consistency and messaging alignment",
        "Suggest creative approaches and innovative solutions",
        "Think about visual appeal and emotional impact",
        "Discuss content strategy and storytelling elements",
        "Consider multichannel and cross-platform implications",
    ],
    "data-scientist": [
        "Focus on data-driven insights and statistical significance",
        "Explain methodologies and analytical approaches",
        "Discuss data quality, sources, and limitations",
        "Provide visualization recommendations",
        "Consider model selection and validation strategies",
        "Address ethical considerations and bias in data analysis",
    ],
}

DEFAULT_BEHAVIORAL_INSTRUCTIONS = [
    "Provide expert advice in your specialized domain",
    "Use professional terminology and industry standards",
    "Focus on practical, actionable recommendations",
    "Consider real-world constraints and best practices",
]

QUALITY_STANDARDS = [
    "Provide expert-level insights and detailed explanations",
    "Use domain-specific terminology appropriately",
    "Offer practical, actionable advice",
    "Share relevant best practices and industry standards",
    "When applicable, provide examples or code snippets",
    "Acknowledge limitations and suggest when to consult other specialists",
]


def _bullets(lines: List[str]) -> List[str]:
    return [f"• {line}" for line in lines]


def format_domain(domain: str) -> str:
    """software_development -> Software Development"""
    return domain.replace("_", " ").title()


def build_behavioral_instructions(specialist: SpecialistProfile) -> str:
    instructions = BEHAVIORAL_INSTRUCTIONS.get(specialist.id, DEFAULT_BEHAVIORAL_INSTRUCTIONS)
    return "\n".join(_bullets(instructions))


def build_specialization_prompt(specialist: SpecialistProfile, decision: RoutingDecision) -> str:
    """Role assignment for the specialist, including the routing signals."""
    confidence = decision.confidence_scores.get(specialist.id, 0.0)
    keywords = ", ".join(decision.matched_keywords) or "none"

    components = [
        f"You are a {specialist.name}, a highly experienced professional specialist.",
        specialist.description,
        "",
        "**Your Core Expertise:**",
        *_bullets(specialist.capabilities),
        "",
        "**Your Specialized Domains:**",
        *_bullets([format_domain(domain) for domain in specialist.domains]),
        "",
        "**How You Should Respond:**",
        build_behavioral_instructions(specialist),
        "",
        "**Quality Standards:**",
        *_bullets(QUALITY_STANDARDS),
        "",
        "**Context Information:**",
        f"• User query intent: {decision.analyzed_intent}",
        f"• Confidence in domain match: {confidence:.2f}",
        f"• Matched keywords: {keywords}",
        "",
    ]
    return "\n".join(components)


def generate_context_summary(
    context: SessionContext,
    target: SpecialistProfile,
    registry: SpecialistRegistry
) -> str:
    """Context transfer block handed to a newly selected specialist."""
    if context.is_empty:
        return ""

    flow = analyze_conversation_flow(context)
    summary_parts = [
        f"[CONTEXT TRANSFER to {target.name}]",
        f"Conversation Summary: {flow.conversation_depth} exchanges, dominant topic: {flow.dominant_topic}",
        "Recent discussion:",
    ]

    recent = context.conversation_history[-TRANSFER_EXCHANGES:]
    for index, exchange in enumerate(recent, start=1):
        agent_name = registry.name_of(exchange.agent_id)
        summary_parts.append(f"{index}. User: {truncate(exchange.user_message, TRANSFER_USER_CHARS)}")
        summary_parts.append(f"   {agent_name}: {truncate(exchange.agent_response, TRANSFER_AGENT_CHARS)}")

    summary_parts.append("[END CONTEXT TRANSFER]")
    summary_parts.append("")
    return "\n".join(summary_parts)


def enhance_query_with_context(
    query: str,
    context: SessionContext,
    target: SpecialistProfile,
    registry: SpecialistRegistry
) -> str:
    """Prepend either a context transfer or a previous-exchange reminder."""
    if context.is_empty:
        return query

    if context.current_agent and context.current_agent != target.id:
        summary = generate_context_summary(context, target, registry)
        return f"{summary}\nCurrent Question: {query}"

    last = context.conversation_history[-1]
    return (
        f'Previous context: "{truncate(last.user_message, REMINDER_USER_CHARS)}" -> '
        f'"{truncate(last.agent_response, REMINDER_RESPONSE_CHARS)}"\n\n'
        f"Current question: {query}"
    )


def combine_prompt_components(specialization_prompt: str, contextual_query: str, specialist: SpecialistProfile) -> str:
    combined = [
        "=== SPECIALIST ROLE ASSIGNMENT ===",
        specialization_prompt,
        "",
        "=== CONVERSATION CONTEXT ===",
        contextual_query,
        "",
        "=== RESPONSE INSTRUCTIONS ===",
        f"As the {specialist.name}, provide a comprehensive and expert response that:",
        "• Demonstrates deep domain expertise",
        "• Addresses the specific question or request",
        "• Provides actionable insights or solutions",
        "• Maintains professional specialist tone",
        "",
        "Begin your response now:",
    ]
    return "\n".join(combined)


def build_specialist_prompt(
    query: str,
    specialist: SpecialistProfile,
    decision: RoutingDecision,
    context: SessionContext,
    registry: SpecialistRegistry
) -> str:
    """Full prompt delivered to the specialist backend."""
    return combine_prompt_components(
        build_specialization_prompt(specialist, decision),
        enhance_query_with_context(query, context, specialist, registry),
        specialist
    )
