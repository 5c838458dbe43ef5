"""数据模型单元测试"""

import pytest
from mindgate.provider.models import (
    AnalysisError,
    AnalysisRequest,
    AnalysisResult,
    AnalysisType,
    ResultFormat,
    TokenUsage,
)
from pydantic import ValidationError


class TestTokenUsage:
    def test_defaults_zero(self):
        usage = TokenUsage()
        assert usage.prompt_tokens == 0
        assert usage.completion_tokens == 0
        assert usage.total_tokens == 0

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            TokenUsage(prompt_tokens=-1)


class TestAnalysisResult:
    """AnalysisResult 恰好携带 data 或 content 之一"""

    def test_structured_result(self):
        result = AnalysisResult(type="episode_analysis", data={"a": 1}, model="mock-advanced")
        assert result.format == ResultFormat.STRUCTURED
        assert result.timestamp.tzinfo is not None

    def test_neither_payload_rejected(self):
        with pytest.raises(ValidationError):
            AnalysisResult(type="episode_analysis", model="m")

    def test_both_payloads_rejected(self):
        with pytest.raises(ValidationError):
            AnalysisResult(type="episode_analysis", data={}, content="x", model="m")

    def test_envelope_drops_unused_payload(self):
        envelope = AnalysisResult(
            type="insight_generation",
            content="plain text",
            format=ResultFormat.TEXT,
            model="gpt-4",
            usage=TokenUsage(prompt_tokens=1, completion_tokens=2, total_tokens=3),
        ).to_envelope()
        assert envelope["content"] == "plain text"
        assert "data" not in envelope
        assert envelope["format"] == "text"
        assert envelope["usage"] == {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3}
        assert isinstance(envelope["timestamp"], str)
        for key in ("type", "model", "usage", "timestamp"):
            assert key in envelope


class TestAnalysisError:
    def test_envelope_omits_empty_retry_after(self):
        assert AnalysisError(error="boom", code="provider_error").to_envelope() == {
            "error": "boom",
            "code": "provider_error",
        }

    def test_envelope_has_no_data(self):
        envelope = AnalysisError(error="slow down", code="rate_limited", retry_after=12.5).to_envelope()
        assert envelope["retry_after"] == 12.5
        assert "data" not in envelope and "content" not in envelope


class TestAnalysisRequest:
    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            AnalysisRequest(analysis_type="horoscope")

    def test_string_type_coerced(self):
        request = AnalysisRequest(analysis_type="pattern_analysis")
        assert request.analysis_type is AnalysisType.PATTERN_ANALYSIS
        assert request.user_id == "anonymous"
