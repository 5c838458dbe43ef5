"""SimulatedProvider -- 无网络的模拟 provider

按分析类型返回预置的结构化结果，支持人工延迟、模拟错误率与结果随机化。
零成本，始终可用，适用于开发、演示和测试环境。
"""

import asyncio
import copy
import random
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from .base import AIProvider
from .exceptions import ProviderTransientError
from .models import AnalysisRequest, AnalysisResult, AnalysisType, ModelInfo, TokenUsage

log = structlog.get_logger()

SEVERE_EPISODE_THRESHOLD = 8

SIMULATED_MODELS = {
    "mock-advanced": ModelInfo(name="Mock Advanced Model", max_tokens=10000, is_default=True),
    "mock-basic": ModelInfo(name="Mock Basic Model", max_tokens=5000),
}

# 各分析类型的 (prompt_tokens, completion_tokens) 随机区间
_USAGE_RANGES: dict[str, tuple[tuple[int, int], tuple[int, int]]] = {
    AnalysisType.EPISODE_ANALYSIS: ((200, 400), (300, 500)),
    AnalysisType.PATTERN_ANALYSIS: ((500, 800), (600, 900)),
    AnalysisType.INSIGHT_GENERATION: ((400, 600), (500, 700)),
    AnalysisType.RECOMMENDATIONS: ((300, 500), (400, 600)),
    AnalysisType.INPUT_ANALYSIS: ((100, 200), (150, 250)),
    AnalysisType.OUTCOME_PREDICTION: ((300, 400), (200, 300)),
    AnalysisType.PREDICTIVE_ANALYSIS: ((600, 800), (700, 900)),
}
_GENERIC_USAGE_RANGE = ((100, 300), (100, 300))

_EPISODE_TEMPLATE: dict[str, Any] = {
    "severity_assessment": {
        "suggested_severity": 6,
        "severity_rationale": "Based on the content and context, this appears to be a moderate episode.",
    },
    "patterns": ["Time-based pattern detected", "Stress-related trigger identified"],
    "triggers": ["Work stress", "Sleep disruption"],
    "insights": [
        "Your episodes tend to occur more frequently during weekday mornings",
        "There appears to be a correlation between work deadlines and episode severity",
    ],
    "coping_suggestions": [
        "Try the 5-4-3-2-1 grounding technique when you feel an episode starting",
        "Consider scheduling brief breaks during high-stress work periods",
    ],
    "professional_support_recommended": False,
    "encouragement": "You're doing great by tracking your episodes. "
    "This awareness is a powerful tool for improvement.",
}

_PATTERN_TEMPLATE: dict[str, Any] = {
    "recurring_patterns": [
        {
            "pattern": "Morning anxiety spike",
            "frequency": "4-5 times per week",
            "triggers": ["Work anticipation", "Morning routine rush"],
            "impact": "Moderate increase in severity",
        },
        {
            "pattern": "Weekend recovery",
            "frequency": "Weekly",
            "triggers": ["Reduced obligations"],
            "impact": "Significant severity decrease",
        },
    ],
    "correlations": [
        {
            "factor1": "Sleep quality",
            "factor2": "Episode severity",
            "correlation_strength": "strong",
            "description": "Poor sleep quality strongly correlates with increased "
            "episode severity the following day",
        }
    ],
    "trends": {
        "severity_trend": "improving",
        "frequency_trend": "stable",
        "description": "Overall severity showing gradual improvement while frequency "
        "remains consistent",
    },
    "key_insights": [
        "Your coping strategies are becoming more effective over time",
        "Maintaining consistent sleep schedule could further reduce episode severity",
    ],
    "recommendations": [
        "Prioritize sleep hygiene to leverage the strong sleep-severity correlation",
        "Continue using successful coping strategies, especially grounding techniques",
    ],
}

_INSIGHT_TEMPLATE: dict[str, Any] = {
    "strengths": [
        "Consistent tracking shows commitment to wellness",
        "Developing awareness of personal patterns",
    ],
    "progress_highlights": [
        "Severity decreased by 15% compared to last month",
        "Successfully used coping strategies 8 times this week",
    ],
    "growth_opportunities": [
        {
            "area": "Sleep consistency",
            "suggestion": "Establish a regular bedtime routine",
            "rationale": "Better sleep correlates with reduced episode severity",
        },
        {
            "area": "Social connection",
            "suggestion": "Schedule regular check-ins with support network",
            "rationale": "Social support enhances resilience",
        },
    ],
    "personalized_insights": [
        "Your episodes are 40% less severe on days with morning exercise",
        "Journaling appears to be your most effective coping strategy",
    ],
    "wellbeing_summary": "Overall showing positive trajectory with room for optimization "
    "in sleep and social areas",
    "next_steps": [
        "Focus on sleep hygiene this week",
        "Try one new coping skill from your list",
    ],
}

_RECOMMENDATIONS_TEMPLATE: dict[str, Any] = {
    "immediate_actions": [
        {
            "action": "Take 5 deep breaths",
            "rationale": "Activates parasympathetic nervous system for immediate calming",
            "how_to": "Breathe in for 4 counts, hold for 4, out for 6",
        },
        {
            "action": "Step outside for fresh air",
            "rationale": "Change of environment can interrupt negative thought patterns",
            "how_to": "Take a 5-minute walk or simply stand outside",
        },
    ],
    "coping_strategies": [
        {
            "strategy": "Progressive Muscle Relaxation",
            "when_to_use": "When feeling physical tension or anxiety",
            "expected_benefit": "Reduces physical symptoms of stress",
        },
        {
            "strategy": "Mindful journaling",
            "when_to_use": "End of day reflection",
            "expected_benefit": "Processes emotions and identifies patterns",
        },
    ],
    "lifestyle_suggestions": [
        "Establish a consistent sleep schedule",
        "Incorporate 20 minutes of daily physical activity",
    ],
    "skill_building": [
        {
            "skill": "Emotion regulation",
            "importance": "Core skill for managing episode intensity",
            "resources": "DBT workbooks or online courses",
        }
    ],
    "professional_resources": [
        "Consider CBT therapy for long-term pattern change",
        "Explore mindfulness-based stress reduction programs",
    ],
}

# recommendations 按 context 定制首条行动建议
_CONTEXT_ACTIONS: dict[str, dict[str, str]] = {
    "coping_skills": {
        "action": "Practice your most effective coping skill",
        "rationale": "Build on what already works for you",
        "how_to": "Use the technique that helped last time",
    },
    "predictive": {
        "action": "Prepare for potential triggers",
        "rationale": "Patterns suggest increased risk in next 48 hours",
        "how_to": "Review your coping strategy list and have tools ready",
    },
}

_PREDICTIVE_TEMPLATE: dict[str, Any] = {
    "predictions": {
        "escalation": {
            "confidence": 0.72,
            "timeframe": "48_hours",
            "details": {
                "expected_severity_increase": 2,
                "risk_factors": ["Recent pattern changes", "Upcoming stressors"],
            },
            "reasoning": "Based on historical patterns and current trajectory",
        },
        "pattern_recurrence": {
            "confidence": 0.68,
            "timeframe": "7_days",
            "details": {
                "expected_pattern": "Weekly cycle",
                "typical_triggers": ["Monday stress", "Weekend transitions"],
            },
            "reasoning": "Cyclical patterns detected in past 30 days",
        },
    },
    "risk_assessment": [
        {"type": "severity_spike", "level": "moderate", "likelihood": 0.65, "timeframe": "3_days"},
        {"type": "coping_fatigue", "level": "low", "likelihood": 0.45, "timeframe": "1_week"},
    ],
    "preventive_measures": [
        "Increase self-care activities in next 48 hours",
        "Prepare coping strategies for identified risk periods",
        "Consider scheduling support check-ins",
    ],
}

# 情绪倾向及其权重（百分比）
_SENTIMENT_WEIGHTS = (("positive", 25), ("negative", 25), ("neutral", 30), ("mixed", 20))


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class SimulatedProvider(AIProvider):
    """模拟 provider

    Args:
        response_delay_s: 每次调用的人工延迟（秒）
        error_rate: 模拟错误率（0-100 百分比），命中时抛出 ProviderTransientError
        randomize: 是否打乱/截断结果中的列表字段
        rng: 随机数生成器，测试中可注入带种子的实例
        sleep: 延迟函数，测试中可替换
    """

    provider_id = "simulated"
    display_name = "Simulated AI Provider (Testing)"
    capabilities = {"network": False, "structured_output": True, "cost_tracking": False}

    def __init__(
        self,
        response_delay_s: float = 1.0,
        error_rate: float = 0,
        randomize: bool = True,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._response_delay_s = response_delay_s
        self._error_rate = error_rate
        self._randomize = randomize
        self._rng = rng or random.Random()
        self._sleep = sleep

    def get_models(self) -> dict[str, ModelInfo]:
        return dict(SIMULATED_MODELS)

    def estimate_cost(self, model: str | None = None, estimated_tokens: int = 1000) -> float:
        return 0.0

    async def check_availability(self) -> bool:
        return True

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """按分析类型生成模拟结果"""
        if self._response_delay_s > 0:
            await self._sleep(self._response_delay_s)

        if self._error_rate > 0 and self._rng.randint(1, 100) <= self._error_rate:
            log.info("simulated_error_injected", analysis_type=request.analysis_type)
            raise ProviderTransientError("Simulated API error for testing", status_code=503)

        builders = {
            AnalysisType.EPISODE_ANALYSIS: self._episode_analysis,
            AnalysisType.PATTERN_ANALYSIS: self._pattern_analysis,
            AnalysisType.INSIGHT_GENERATION: self._insight_generation,
            AnalysisType.RECOMMENDATIONS: self._recommendations,
            AnalysisType.INPUT_ANALYSIS: self._input_analysis,
            AnalysisType.OUTCOME_PREDICTION: self._outcome_prediction,
            AnalysisType.PREDICTIVE_ANALYSIS: self._predictive_analysis,
        }
        builder = builders.get(request.analysis_type, self._generic)
        data = builder(request)

        model = request.model if request.model in SIMULATED_MODELS else self.default_model()
        return AnalysisResult(
            type=request.analysis_type.value,
            data=data,
            model=model,
            usage=self._usage(request.analysis_type),
            provider=self.provider_id,
        )

    def _usage(self, analysis_type: AnalysisType) -> TokenUsage:
        prompt_range, completion_range = _USAGE_RANGES.get(analysis_type, _GENERIC_USAGE_RANGE)
        prompt_tokens = self._rng.randint(*prompt_range)
        completion_tokens = self._rng.randint(*completion_range)
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )

    def _randomized(self, template: dict[str, Any]) -> dict[str, Any]:
        """打乱顶层列表字段，并随机截断为至少 2 项"""
        for key, value in template.items():
            if not isinstance(value, list):
                continue
            self._rng.shuffle(value)
            if len(value) > 2 and self._rng.randint(0, 1):
                template[key] = value[: self._rng.randint(2, len(value))]
        return template

    def _episode_analysis(self, request: AnalysisRequest) -> dict[str, Any]:
        template = copy.deepcopy(_EPISODE_TEMPLATE)
        if "severity" in request.content:
            severity = _as_int(request.content["severity"])
            template["severity_assessment"]["suggested_severity"] = severity
            if severity >= SEVERE_EPISODE_THRESHOLD:
                template["professional_support_recommended"] = True
                template["encouragement"] = (
                    "This seems like a difficult time. "
                    "Remember that seeking support is a sign of strength."
                )
        if self._randomize:
            template = self._randomized(template)
        return template

    def _pattern_analysis(self, request: AnalysisRequest) -> dict[str, Any]:
        template = copy.deepcopy(_PATTERN_TEMPLATE)
        content = request.content
        if "episode_count" in content and _as_int(content["episode_count"]) < 20:
            template["trends"]["description"] = (
                "Limited data for comprehensive trend analysis, "
                "but initial patterns are emerging"
            )
        if "timespan" in content:
            timespan = content["timespan"] if isinstance(content["timespan"], dict) else {}
            days = _as_int(timespan.get("days", 30), 30)
            template["key_insights"].append(f"Analysis based on {days} days of data")
        return template

    def _insight_generation(self, request: AnalysisRequest) -> dict[str, Any]:
        insights = copy.deepcopy(_INSIGHT_TEMPLATE)
        if "triggers" in request.options.get("focus_areas", []):
            insights["personalized_insights"].append("Work stress remains your primary trigger")
        return insights

    def _recommendations(self, request: AnalysisRequest) -> dict[str, Any]:
        template = copy.deepcopy(_RECOMMENDATIONS_TEMPLATE)
        context = request.options.get("context") or request.content.get("context")
        if context in _CONTEXT_ACTIONS:
            template["immediate_actions"][0] = dict(_CONTEXT_ACTIONS[context])
        elif context == "goals":
            template["lifestyle_suggestions"] = [
                "Set one small, achievable goal for this week",
                "Break larger goals into daily micro-habits",
            ]
        return template

    def _input_analysis(self, request: AnalysisRequest) -> dict[str, Any]:
        focus = request.options.get("analysis_focus")
        if focus == "cognitive_distortions":
            return {
                "patterns": ["All-or-nothing thinking detected", "Possible catastrophizing"],
                "coping_suggestions": [
                    "Try to find the middle ground in this situation",
                    "Ask yourself: What evidence supports a less extreme view?",
                ],
            }
        if focus == "sentiment":
            return {
                "sentiment": self._random_sentiment(),
                "emotions": {"primary": "anxiety", "secondary": ["frustration", "hope"]},
                "themes": ["work stress", "self-improvement", "relationships"],
            }
        return {"summary": "Input analyzed successfully", "key_points": ["Point 1", "Point 2"]}

    def _outcome_prediction(self, request: AnalysisRequest) -> dict[str, Any]:
        history = request.content.get("historical_data")
        confidence = 0.85 if isinstance(history, list) and len(history) > 20 else 0.75
        return {
            "confidence": confidence,
            "prediction": "positive_outcome",
            "timeframe": "7_days",
            "factors": [
                "Historical success with similar approaches",
                "Current motivation level appears high",
                "Support systems in place",
            ],
            "recommendations": [
                "Continue current approach with minor adjustments",
                "Monitor progress daily for best results",
            ],
        }

    def _predictive_analysis(self, request: AnalysisRequest) -> dict[str, Any]:
        return copy.deepcopy(_PREDICTIVE_TEMPLATE)

    def _generic(self, request: AnalysisRequest) -> dict[str, Any]:
        return {
            "message": "Analysis completed successfully",
            "summary": "Simulated provider processed your request",
            "details": {
                "content_received": bool(request.content),
                "params_received": bool(request.options or request.instructions),
            },
        }

    def _random_sentiment(self) -> str:
        roll = self._rng.randint(1, 100)
        cumulative = 0
        for sentiment, weight in _SENTIMENT_WEIGHTS:
            cumulative += weight
            if roll <= cumulative:
                return sentiment
        return "neutral"
