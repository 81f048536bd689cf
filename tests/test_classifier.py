"""
Unit tests for the remote classifier contract, payload parsing and the
specialist invoker.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_orchestrator.classifier import (
    ClassificationError,
    LLMClassifierClient,
    classification_to_decision,
    extract_classification_from_text,
    parse_classification_payload,
    resolve_specialist_id,
)
from agent_orchestrator.invoker import InvocationError, LLMSpecialistInvoker
from agent_orchestrator.llm import LLMError
from agent_orchestrator.models import ClassificationResult, DecisionSource


def mock_llm_client(reply=None, error=None):
    client = MagicMock()
    client.routing_model = "test/routing-model"
    client.generation_model = "test/generation-model"
    client.generate_response = AsyncMock(return_value=reply, side_effect=error)
    return client


class TestPayloadParsing:

    def test_json_payload_with_alias(self, registry):
        reply = json.dumps({
            "target_specialist": "finance",
            "routing_confidence": 0.65,
            "rationale": "FBAR is a reporting requirement",
            "needs_clarification": True,
            "question": "Which tax year?"
        })
        result = parse_classification_payload(reply, "Do I need to file an FBAR?", registry)

        assert result.target_specialist == "financial-analyst"
        assert result.confidence == pytest.approx(0.65)
        assert result.needs_clarification is True
        assert result.clarification_question == "Which tax year?"

    def test_json_embedded_in_prose(self, registry):
        reply = 'Sure. {"target_specialist": "technical-specialist", "confidence": 0.9} Hope that helps.'
        result = parse_classification_payload(reply, "fix my build", registry)

        assert result.target_specialist == "technical-specialist"
        assert result.rationale == "No reasoning provided"

    def test_confidence_is_clamped(self, registry):
        reply = '{"target_specialist": "data", "routing_confidence": 1.7}'
        assert parse_classification_payload(reply, "q", registry).confidence == 1.0

    def test_prose_reply_uses_text_extraction(self, registry):
        reply = "This looks like a question about containers and deployment."
        result = parse_classification_payload(reply, "Write a Dockerfile for my api backend", registry)

        assert result.target_specialist == "technical-specialist"
        assert 0.6 <= result.confidence <= 0.9

    def test_missing_confidence_is_rejected(self, registry):
        with pytest.raises(ClassificationError):
            parse_classification_payload('{"target_specialist": "business"}', "q", registry)

    def test_non_numeric_confidence_is_rejected(self, registry):
        with pytest.raises(ClassificationError):
            parse_classification_payload('{"target_specialist": "business", "confidence": "high"}', "q", registry)

    def test_unknown_specialist_is_rejected(self, registry):
        with pytest.raises(ClassificationError):
            resolve_specialist_id("astrologer", registry)


class TestTextExtraction:

    def test_query_hits_outweigh_response_hits(self):
        payload = extract_classification_from_text(
            "build a roadmap with milestones and risk owners",
            "the code and the api"
        )
        assert payload["target_specialist"] == "business"

    def test_nothing_matches_is_general(self):
        payload = extract_classification_from_text("xyzzy", "plugh")

        assert payload["target_specialist"] == "general"
        assert payload["routing_confidence"] == pytest.approx(0.6)

    def test_confidence_is_bounded(self):
        payload = extract_classification_from_text(
            "docker kubernetes aws cloud devops api backend frontend database git", ""
        )
        assert payload["target_specialist"] == "technical"
        assert payload["routing_confidence"] == pytest.approx(0.9)


class TestClassificationToDecision:

    def test_other_agents_get_scaled_confidence(self, registry):
        result = ClassificationResult(target_specialist="financial-analyst", confidence=0.8, rationale="tax question")
        decision = classification_to_decision("q", result, registry)

        assert decision.selected_agent == "financial-analyst"
        assert decision.source == DecisionSource.CLASSIFIER
        assert set(decision.confidence_scores) == set(registry.ids())
        assert decision.confidence_scores["financial-analyst"] == pytest.approx(0.8)
        assert decision.confidence_scores["technical-specialist"] == pytest.approx(0.24)
        assert decision.reasoning == "tax question"

    def test_other_agents_have_a_floor(self, registry):
        result = ClassificationResult(target_specialist="general-assistant", confidence=0.2)
        decision = classification_to_decision("q", result, registry)

        assert decision.confidence_scores["data-scientist"] == pytest.approx(0.1)

    def test_threshold_flag_reflects_selected_specialist(self, registry):
        result = ClassificationResult(target_specialist="technical-specialist", confidence=0.5, intent="help_request")
        decision = classification_to_decision("q", result, registry)

        assert decision.meets_threshold is False
        assert decision.selected_agent == "technical-specialist"
        assert decision.analyzed_intent == "help_request"


class TestLLMClassifierClient:

    def test_classify_parses_reply(self, registry):
        client = mock_llm_client('{"target_specialist": "creative", "routing_confidence": 0.77}')
        classifier = LLMClassifierClient(registry, client)

        result = asyncio.run(classifier.classify("Draft a launch campaign"))

        assert result.target_specialist == "creative-specialist"
        kwargs = client.generate_response.call_args.kwargs
        assert kwargs["model"] == "test/routing-model"
        assert kwargs["temperature"] == 0.1
        assert "Draft a launch campaign" in kwargs["messages"][0]["content"]

    def test_llm_failure_becomes_classification_error(self, registry):
        classifier = LLMClassifierClient(registry, mock_llm_client(error=LLMError("timeout")))

        with pytest.raises(ClassificationError):
            asyncio.run(classifier.classify("anything"))

    def test_prompt_lists_every_specialist(self, registry):
        classifier = LLMClassifierClient(registry, mock_llm_client())
        prompt = classifier._build_classification_prompt("q")

        for specialist_id in registry.ids():
            assert specialist_id in prompt


class TestLLMSpecialistInvoker:

    def test_invoke_returns_text(self, registry):
        client = mock_llm_client("Use a multi-stage build.")
        invoker = LLMSpecialistInvoker(client)

        result = asyncio.run(invoker.invoke(registry.get("technical-specialist"), "prompt", "session-1234"))

        assert result.response_text == "Use a multi-stage build."
        assert result.generated_by == "test/generation-model"
        assert client.generate_response.call_args.kwargs["user"] == "session-1234"

    def test_llm_failure_becomes_invocation_error(self, registry):
        invoker = LLMSpecialistInvoker(mock_llm_client(error=LLMError("503")))

        with pytest.raises(InvocationError):
            asyncio.run(invoker.invoke(registry.get("technical-specialist"), "prompt", "session-1234"))
