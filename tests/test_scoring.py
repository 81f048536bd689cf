"""
Unit tests for confidence scoring and threshold-gated selection.
"""

import pytest

from agent_orchestrator.analyzer import QueryAnalyzer
from agent_orchestrator.models import SessionContext
from agent_orchestrator.registry import SpecialistRegistry, build_default_registry
from agent_orchestrator.scoring import ConfidenceScorer


DOCKERFILE_QUERY = "Write a Dockerfile for Node.js 20 with pnpm and multi-stage builds."
DATA_QUERY = "Train a regression model on this dataset and plot feature correlation"
ROI_QUERY = "What about the business ROI?"


class TestScoreComponents:

    def test_dockerfile_breakdown(self, analyzer, scorer, registry, empty_context):
        analysis = analyzer.analyze(DOCKERFILE_QUERY)
        breakdown = scorer.score_breakdown(analysis, registry.get("technical-specialist"), empty_context)

        # docker, dockerfile and node saturate the keyword component
        assert breakdown.keyword_score == pytest.approx(1.0)
        # write + build (software_development) and docker (cloud_computing)
        assert breakdown.domain_score == pytest.approx(0.3)
        assert breakdown.context_score == 0
        # "dockerfile" and "node" stand alone; "docker" does not
        assert breakdown.exact_match_count == 2
        assert breakdown.total == pytest.approx(0.86)

    def test_domain_score_capped_per_domain(self, analyzer, scorer, registry, empty_context):
        # Five devops terms count as 0.3, not 0.5
        analysis = analyzer.analyze("deploy pipeline infrastructure server automate")
        breakdown = scorer.score_breakdown(analysis, registry.get("technical-specialist"), empty_context)

        assert analysis.domain_matches["devops"] == 5
        assert breakdown.domain_score == pytest.approx(0.3)

    def test_score_never_exceeds_cap(self, analyzer, scorer, registry, empty_context):
        analysis = analyzer.analyze(
            "tax taxes taxation cpa irs dcf npv irr ebitda gaap fbar equity debt bonds dividend"
        )
        breakdown = scorer.score_breakdown(analysis, registry.get("financial-analyst"), empty_context)

        assert breakdown.raw_total > 1.2
        assert breakdown.total == pytest.approx(1.2)
        assert scorer.score(analysis, registry.get("financial-analyst"), empty_context) == pytest.approx(1.2)

    @pytest.mark.parametrize("query", [
        "",
        "xyzzy",
        DOCKERFILE_QUERY,
        DATA_QUERY,
        "tax " * 50,
        "docker kubernetes aws git github react node python typescript sql api",
    ])
    def test_scores_stay_in_bounds(self, analyzer, scorer, registry, query):
        context = SessionContext(session_id="bounds-session", current_agent="technical-specialist")
        analysis = analyzer.analyze(query)

        for specialist in registry:
            assert 0.0 <= scorer.score(analysis, specialist, context) <= 1.2

    def test_distinct_keywords_give_strictly_highest_keyword_score(self, analyzer, scorer, registry, empty_context):
        analysis = analyzer.analyze("kubernetes github typescript")
        keyword_scores = {
            specialist.id: scorer.score_breakdown(analysis, specialist, empty_context).keyword_score
            for specialist in registry
        }

        best = max(keyword_scores.values())
        assert keyword_scores["technical-specialist"] == best
        assert all(
            score < best for specialist_id, score in keyword_scores.items()
            if specialist_id != "technical-specialist"
        )

    @pytest.mark.parametrize("specialist_id, keyword", [
        (profile.id, keyword)
        for profile in build_default_registry()
        for keyword in profile.keywords
    ])
    def test_every_keyword_favors_its_own_specialist(
        self, analyzer, scorer, registry, empty_context, specialist_id, keyword
    ):
        analysis = analyzer.analyze(keyword)
        keyword_scores = {
            specialist.id: scorer.score_breakdown(analysis, specialist, empty_context).keyword_score
            for specialist in registry
        }

        assert keyword_scores[specialist_id] == max(keyword_scores.values())


class TestContinuity:

    def test_current_agent_gets_context_component(self, analyzer, scorer, registry, empty_context):
        analysis = analyzer.analyze("xyzzy")
        specialist = registry.get("business-analyst")
        context = SessionContext(session_id="continuity-1", current_agent="business-analyst")

        without = scorer.score_breakdown(analysis, specialist, empty_context)
        with_context = scorer.score_breakdown(analysis, specialist, context)

        assert with_context.context_score - without.context_score == pytest.approx(0.3)
        # The component is weighted 0.2 in the total
        assert with_context.raw_total - without.raw_total == pytest.approx(0.06)

    def test_other_agents_get_no_context(self, analyzer, scorer, registry):
        analysis = analyzer.analyze("xyzzy")
        context = SessionContext(session_id="continuity-2", current_agent="business-analyst")

        breakdown = scorer.score_breakdown(analysis, registry.get("creative-specialist"), context)
        assert breakdown.context_score == 0


class TestRanking:

    def test_rank_is_descending(self, analyzer, scorer, empty_context):
        ranked = scorer.rank(analyzer.analyze(DATA_QUERY), empty_context)
        scores = [score for _, score in ranked]

        assert ranked[0][0] == "data-scientist"
        assert scores == sorted(scores, reverse=True)

    def test_ties_keep_registry_order(self, analyzer, scorer, registry, empty_context):
        ranked = scorer.rank(analyzer.analyze("xyzzy"), empty_context)
        assert [specialist_id for specialist_id, _ in ranked] == registry.ids()


class TestDecide:

    def test_dockerfile_routes_to_technical(self, analyzer, scorer, registry, empty_context):
        decision = scorer.decide(analyzer.analyze(DOCKERFILE_QUERY), empty_context)

        assert decision.selected_agent == "technical-specialist"
        assert decision.meets_threshold is True
        assert "docker" in decision.matched_keywords
        assert set(decision.confidence_scores) == set(registry.ids())
        assert decision.reasoning.startswith("Selected Technical Specialist with confidence score 0.86")

    def test_data_query_routes_to_data_scientist(self, analyzer, scorer, empty_context):
        decision = scorer.decide(analyzer.analyze(DATA_QUERY), empty_context)

        assert decision.selected_agent == "data-scientist"
        assert decision.confidence_scores["data-scientist"] == pytest.approx(1.1)

    def test_roi_follow_up_switches_to_business(self, analyzer, scorer):
        context = SessionContext(session_id="roi-session", current_agent="data-scientist")
        decision = scorer.decide(analyzer.analyze(ROI_QUERY), context)

        assert decision.selected_agent == "business-analyst"
        assert decision.confidence_scores["business-analyst"] == pytest.approx(0.64)

    def test_no_threshold_met_falls_back(self, analyzer, scorer, empty_context):
        decision = scorer.decide(analyzer.analyze("xyzzy"), empty_context)

        assert decision.selected_agent == "general-assistant"
        assert decision.meets_threshold is False
        assert "No specialist met its confidence threshold" in decision.reasoning
        assert "Routing to fallback specialist general-assistant" in decision.reasoning

    def test_configured_fallback_is_used(self, empty_context):
        registry = SpecialistRegistry(build_default_registry().all(), fallback_agent_id="creative-specialist")
        scorer = ConfidenceScorer(registry)
        analyzer = QueryAnalyzer(registry)

        decision = scorer.decide(analyzer.analyze("xyzzy"), empty_context)
        assert decision.selected_agent == "creative-specialist"

    def test_reasoning_names_top_three(self, analyzer, scorer, registry, empty_context):
        analysis = analyzer.analyze(DATA_QUERY)
        decision = scorer.decide(analysis, empty_context)
        top_three = scorer.rank(analysis, empty_context)[:3]

        candidates = decision.reasoning.split("Top candidates: ", 1)[1]
        positions = [candidates.index(registry.name_of(specialist_id)) for specialist_id, _ in top_three]
        assert positions == sorted(positions)
