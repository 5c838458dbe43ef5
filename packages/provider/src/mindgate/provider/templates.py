"""PromptTemplateStore -- 分析类型到提示词模板的映射

模板是纯数据：{system, user} 两段文本，user 段含 {name} 形式的命名占位符。
渲染时未提供值的占位符原样保留，渲染永不失败。
"""

import json
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from .models import AnalysisType

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

_JSON_ONLY = "Respond only with a JSON object."


class PromptTemplate(BaseModel, frozen=True):
    """单个分析类型的提示词模板"""

    system: str
    user: str

    @property
    def placeholders(self) -> list[str]:
        """user 模板中出现的占位符名称（按出现顺序去重）"""
        return list(dict.fromkeys(_PLACEHOLDER.findall(self.user)))


DEFAULT_TEMPLATES: dict[AnalysisType, PromptTemplate] = {
    AnalysisType.EPISODE_ANALYSIS: PromptTemplate(
        system=(
            "You are a compassionate mental health AI assistant analyzing user episodes. "
            "Identify patterns and triggers, validate the severity rating (1-10), provide "
            "supportive insights without diagnosing, suggest evidence-based coping "
            "strategies and flag concerning patterns that may need professional attention. "
            "Return keys severity_assessment, patterns, triggers, insights, "
            "coping_suggestions, professional_support_recommended and encouragement. "
            + _JSON_ONLY
        ),
        user=(
            "Analyze this {episode_type} episode.\n"
            "When: {datetime}\nDuration: {duration}\nSeverity: {severity}\n"
            "Intensity: {intensity}\nTriggers: {triggers}\nSymptoms: {symptoms}\n"
            "Thoughts: {thoughts}\nCoping strategies used: {coping_strategies}"
        ),
    ),
    AnalysisType.PATTERN_ANALYSIS: PromptTemplate(
        system=(
            "You are an expert in mental health pattern recognition. Identify recurring "
            "patterns across time, correlations between factors, and trends in severity "
            "and frequency. Return keys recurring_patterns, correlations, trends, "
            "key_insights and recommendations. " + _JSON_ONLY
        ),
        user=(
            "Analyze {episode_count} episodes recorded over {timespan}.\n"
            "Episodes: {episodes}"
        ),
    ),
    AnalysisType.INSIGHT_GENERATION: PromptTemplate(
        system=(
            "You generate encouraging, personalized wellbeing insights from tracking data. "
            "Return keys strengths, progress_highlights, growth_opportunities, "
            "personalized_insights, wellbeing_summary and next_steps. " + _JSON_ONLY
        ),
        user="Generate insights for the last {period}.\nFocus areas: {focus_areas}\nData: {data}",
    ),
    AnalysisType.RECOMMENDATIONS: PromptTemplate(
        system=(
            "You recommend practical, evidence-based self-care actions. Return keys "
            "immediate_actions, coping_strategies, lifestyle_suggestions, skill_building "
            "and professional_resources. " + _JSON_ONLY
        ),
        user=(
            "Provide personalized recommendations for context: {context}.\n"
            "Recent activity: {recent_activity}"
        ),
    ),
    AnalysisType.INPUT_ANALYSIS: PromptTemplate(
        system=(
            "You analyze free-text journal input for sentiment, emotions, themes and "
            "cognitive distortions. " + _JSON_ONLY
        ),
        user="Analyze the following input with focus on {analysis_focus}:\n{text}",
    ),
    AnalysisType.OUTCOME_PREDICTION: PromptTemplate(
        system=(
            "You estimate the likely outcome of a planned approach from historical data. "
            "Return keys confidence, prediction, timeframe, factors and recommendations. "
            + _JSON_ONLY
        ),
        user="Planned approach: {approach}\nHistorical data: {historical_data}",
    ),
    AnalysisType.PREDICTIVE_ANALYSIS: PromptTemplate(
        system=(
            "You forecast short-term risk from episode history. Return keys predictions, "
            "risk_assessment and preventive_measures. " + _JSON_ONLY
        ),
        user="Recent episodes: {episodes}\nUpcoming events: {upcoming_events}",
    ),
    AnalysisType.COPING_SUGGESTIONS: PromptTemplate(
        system=(
            "You suggest coping strategies matched to the user's current state and past "
            "successes. " + _JSON_ONLY
        ),
        user=(
            "Current state: {current_state}\nSeverity: {severity}\n"
            "Strategies that helped before: {effective_strategies}"
        ),
    ),
    AnalysisType.PROGRESS_SUMMARY: PromptTemplate(
        system="You summarize wellbeing progress over a period in a supportive tone. " + _JSON_ONLY,
        user="Summarize progress for {period}.\nGoals: {goals}\nMetrics: {metrics}",
    ),
    AnalysisType.CRISIS_SUPPORT: PromptTemplate(
        system=(
            "You provide calm, immediate grounding support and always point to "
            "professional and emergency resources. " + _JSON_ONLY
        ),
        user="The user reports: {situation}\nSeverity: {severity}",
    ),
}


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return ", ".join(_format_value(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def render(text: str, values: Mapping[str, Any]) -> str:
    """替换文本中的 {name} 占位符

    缺失或值为 None 的占位符保留原文；列表用 ", " 连接，字典序列化为 JSON。
    """

    def _substitute(match: re.Match[str]) -> str:
        value = values.get(match.group(1))
        if value is None:
            return match.group(0)
        return _format_value(value)

    return _PLACEHOLDER.sub(_substitute, text)


class PromptTemplateStore:
    """模板仓库

    没有专属模板的分析类型回落到 episode_analysis 模板。
    """

    fallback_type = AnalysisType.EPISODE_ANALYSIS

    def __init__(self, templates: Mapping[str, PromptTemplate] | None = None) -> None:
        source = DEFAULT_TEMPLATES if templates is None else templates
        self._templates: dict[str, PromptTemplate] = {str(k): v for k, v in source.items()}

    def register(self, analysis_type: str, template: PromptTemplate) -> None:
        """注册或替换模板"""
        self._templates[str(analysis_type)] = template

    def get(self, analysis_type: str) -> PromptTemplate:
        return (
            self._templates.get(str(analysis_type))
            or self._templates.get(self.fallback_type)
            or DEFAULT_TEMPLATES[self.fallback_type]
        )

    def render(
        self,
        analysis_type: str,
        values: Mapping[str, Any],
        instructions: str | None = None,
    ) -> list[dict[str, str]]:
        """渲染为 chat messages

        Args:
            analysis_type: 分析类型
            values: 占位符取值
            instructions: 附加指令，追加在 user 消息末尾

        Returns:
            [{"role": "system", ...}, {"role": "user", ...}]
        """
        template = self.get(analysis_type)
        user_content = render(template.user, values)
        if instructions:
            user_content += f"\n\nAdditional instructions: {instructions}"
        return [
            {"role": "system", "content": template.system},
            {"role": "user", "content": user_content},
        ]
