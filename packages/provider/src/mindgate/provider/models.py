"""数据模型 -- 分析请求/结果、Provider 描述、Token 使用

AnalysisResult 与 AnalysisError 是网关对外的两种结果形态，
二者互斥：成功结果恰好携带 data 或 content 之一，错误结果只有 error。
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class AnalysisType(StrEnum):
    """分析类型 -- 决定提示词模板和结果结构"""

    EPISODE_ANALYSIS = "episode_analysis"
    PATTERN_ANALYSIS = "pattern_analysis"
    INSIGHT_GENERATION = "insight_generation"
    RECOMMENDATIONS = "recommendations"
    INPUT_ANALYSIS = "input_analysis"
    OUTCOME_PREDICTION = "outcome_prediction"
    PREDICTIVE_ANALYSIS = "predictive_analysis"
    COPING_SUGGESTIONS = "coping_suggestions"
    PROGRESS_SUMMARY = "progress_summary"
    CRISIS_SUPPORT = "crisis_support"


class ResultFormat(StrEnum):
    """结果格式"""

    STRUCTURED = "structured"
    TEXT = "text"


class TokenUsage(BaseModel):
    """Token 使用统计

    key 命名对齐 OpenAI 行业标准：prompt_tokens / completion_tokens / total_tokens
    """

    prompt_tokens: int = Field(default=0, ge=0, description="输入 token 数")
    completion_tokens: int = Field(default=0, ge=0, description="输出 token 数")
    total_tokens: int = Field(default=0, ge=0, description="总 token 数")


class ModelInfo(BaseModel):
    """模型目录条目，价格单位为 USD / 1k tokens"""

    name: str = Field(default="", description="展示名称")
    max_tokens: int = Field(ge=0, description="上下文窗口上限")
    input_cost_per_1k: float = Field(default=0.0, ge=0.0, description="输入单价")
    output_cost_per_1k: float = Field(default=0.0, ge=0.0, description="输出单价")
    is_default: bool = Field(default=False, description="是否为该 provider 的默认模型")


class ProviderDescriptor(BaseModel):
    """Provider 描述：标识、展示名、模型目录、能力标记"""

    id: str
    name: str
    models: dict[str, ModelInfo] = Field(default_factory=dict)
    capabilities: dict[str, bool] = Field(default_factory=dict)


class AnalysisRequest(BaseModel):
    """一次分析请求

    messages 由网关门面根据模板渲染后填入，provider 不负责拼装提示词。
    options 承载 provider 相关的附加参数（如 context、analysis_focus）。
    """

    content: dict[str, Any] = Field(default_factory=dict, description="结构化分析内容")
    analysis_type: AnalysisType = Field(description="分析类型")
    instructions: str | None = Field(default=None, description="附加自由文本指令")
    model: str | None = Field(default=None, description="目标模型，None 使用默认模型")
    user_id: str = Field(default="anonymous", description="请求主体标识")
    conversation_id: str | None = Field(default=None, description="会话标识")
    options: dict[str, Any] = Field(default_factory=dict, description="附加参数")
    messages: list[dict[str, str]] = Field(default_factory=list, description="渲染后的消息")


class AnalysisResult(BaseModel):
    """成功的分析结果"""

    type: str
    data: dict[str, Any] | list[Any] | None = None
    content: str | None = None
    format: ResultFormat = ResultFormat.STRUCTURED
    model: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    provider: str = ""

    @model_validator(mode="after")
    def _exactly_one_payload(self) -> "AnalysisResult":
        if (self.data is None) == (self.content is None):
            raise ValueError("AnalysisResult 必须恰好包含 data 或 content 之一")
        return self

    def to_envelope(self) -> dict[str, Any]:
        """转换为对外响应结构（省略未使用的 data/content 字段）"""
        envelope = self.model_dump(mode="json")
        if self.data is None:
            envelope.pop("data")
        else:
            envelope.pop("content")
        return envelope


class AnalysisError(BaseModel):
    """失败的分析结果"""

    error: str
    code: str = "provider_error"
    retry_after: float | None = None

    def to_envelope(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


AnalysisOutcome = AnalysisResult | AnalysisError


class ConversationTurn(BaseModel):
    """会话中的一条消息"""

    role: str = Field(description="user / assistant / system")
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RateLimitStatus(BaseModel):
    """当前分钟窗口的限流状态"""

    limit: int = Field(description="每分钟请求上限")
    remaining: int = Field(ge=0, description="本窗口剩余请求数")
    reset: int = Field(ge=0, description="距窗口重置的秒数")
    token_limit: int = Field(description="每分钟 token 上限")
    tokens_remaining: int = Field(ge=0, description="本窗口剩余 token 数")
