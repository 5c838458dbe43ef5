"""SimulatedProvider 单元测试"""

import random
from unittest.mock import AsyncMock

import pytest
from mindgate.provider import AnalysisRequest, AnalysisType, ProviderTransientError, SimulatedProvider


def _request(analysis_type, content=None, **kwargs) -> AnalysisRequest:
    return AnalysisRequest(analysis_type=analysis_type, content=content or {}, **kwargs)


class TestEpisodeAnalysis:
    """episode_analysis 结果定制"""

    async def test_severe_episode_recommends_support(self, simulated_provider):
        result = await simulated_provider.analyze(
            _request(AnalysisType.EPISODE_ANALYSIS, {"severity": 9})
        )
        assert result.data["professional_support_recommended"] is True
        assert result.data["severity_assessment"]["suggested_severity"] == 9
        assert "seeking support is a sign of strength" in result.data["encouragement"]

    async def test_moderate_episode(self, simulated_provider):
        result = await simulated_provider.analyze(
            _request(AnalysisType.EPISODE_ANALYSIS, {"severity": "7"})
        )
        assert result.data["professional_support_recommended"] is False
        assert result.data["severity_assessment"]["suggested_severity"] == 7

    async def test_envelope_shape(self, simulated_provider, episode_request):
        result = await simulated_provider.analyze(episode_request)
        assert result.type == "episode_analysis"
        assert result.format == "structured"
        assert result.model == "mock-advanced"
        assert result.provider == "simulated"
        usage = result.usage
        assert 200 <= usage.prompt_tokens <= 400
        assert 300 <= usage.completion_tokens <= 500
        assert usage.total_tokens == usage.prompt_tokens + usage.completion_tokens

    async def test_templates_not_mutated_between_calls(self, simulated_provider):
        await simulated_provider.analyze(_request(AnalysisType.EPISODE_ANALYSIS, {"severity": 10}))
        result = await simulated_provider.analyze(_request(AnalysisType.EPISODE_ANALYSIS))
        assert result.data["professional_support_recommended"] is False
        assert result.data["severity_assessment"]["suggested_severity"] == 6

    async def test_randomize_keeps_at_least_two_items(self):
        provider = SimulatedProvider(response_delay_s=0, randomize=True, rng=random.Random(7))
        for _ in range(10):
            result = await provider.analyze(_request(AnalysisType.EPISODE_ANALYSIS))
            assert len(result.data["patterns"]) >= 2
            assert set(result.data["triggers"]) == {"Work stress", "Sleep disruption"}


class TestOtherTypes:
    async def test_pattern_analysis_limited_data(self, simulated_provider):
        result = await simulated_provider.analyze(
            _request(
                AnalysisType.PATTERN_ANALYSIS,
                {"episode_count": 5, "timespan": {"days": 14}},
            )
        )
        assert result.data["trends"]["description"].startswith("Limited data")
        assert "Analysis based on 14 days of data" in result.data["key_insights"]

    @pytest.mark.parametrize(
        ("context", "expected_action"),
        [
            ("coping_skills", "Practice your most effective coping skill"),
            ("predictive", "Prepare for potential triggers"),
            ("general", "Take 5 deep breaths"),
        ],
    )
    async def test_recommendations_by_context(self, simulated_provider, context, expected_action):
        result = await simulated_provider.analyze(
            _request(AnalysisType.RECOMMENDATIONS, options={"context": context})
        )
        assert result.data["immediate_actions"][0]["action"] == expected_action

    async def test_recommendations_goals(self, simulated_provider):
        result = await simulated_provider.analyze(
            _request(AnalysisType.RECOMMENDATIONS, options={"context": "goals"})
        )
        assert result.data["lifestyle_suggestions"][0] == "Set one small, achievable goal for this week"

    async def test_input_analysis_sentiment(self, simulated_provider):
        result = await simulated_provider.analyze(
            _request(AnalysisType.INPUT_ANALYSIS, options={"analysis_focus": "sentiment"})
        )
        assert result.data["sentiment"] in {"positive", "negative", "neutral", "mixed"}

    async def test_outcome_prediction_confidence(self, simulated_provider):
        sparse = await simulated_provider.analyze(
            _request(AnalysisType.OUTCOME_PREDICTION, {"historical_data": [1] * 5})
        )
        rich = await simulated_provider.analyze(
            _request(AnalysisType.OUTCOME_PREDICTION, {"historical_data": [1] * 21})
        )
        assert sparse.data["confidence"] == 0.75
        assert rich.data["confidence"] == 0.85

    async def test_type_without_payload_uses_generic(self, simulated_provider):
        result = await simulated_provider.analyze(
            _request(AnalysisType.CRISIS_SUPPORT, {"situation": "panic"})
        )
        assert result.type == "crisis_support"
        assert result.data["details"]["content_received"] is True

    async def test_requested_model_honoured(self, simulated_provider):
        result = await simulated_provider.analyze(
            _request(AnalysisType.PREDICTIVE_ANALYSIS, model="mock-basic")
        )
        assert result.model == "mock-basic"


class TestBehaviourKnobs:
    async def test_delay_applied(self):
        sleep = AsyncMock()
        provider = SimulatedProvider(response_delay_s=1.5, randomize=False, sleep=sleep)
        await provider.analyze(_request(AnalysisType.EPISODE_ANALYSIS))
        sleep.assert_awaited_once_with(1.5)

    async def test_full_error_rate_raises_transient(self):
        provider = SimulatedProvider(response_delay_s=0, error_rate=100)
        with pytest.raises(ProviderTransientError):
            await provider.analyze(_request(AnalysisType.EPISODE_ANALYSIS))

    async def test_contract_operations(self, simulated_provider):
        assert await simulated_provider.check_availability() is True
        assert simulated_provider.estimate_cost("mock-advanced", 10000) == 0.0
        assert simulated_provider.default_model() == "mock-advanced"
        descriptor = simulated_provider.descriptor
        assert descriptor.id == "simulated"
        assert set(descriptor.models) == {"mock-advanced", "mock-basic"}
        assert descriptor.capabilities["network"] is False
