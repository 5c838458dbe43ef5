"""MindGate Provider -- AI provider 抽象与网关基础组件

packages/provider 的公开接口导出。
"""

# 接口
from .base import AIProvider

# 配置
from .config import ProviderConfig, load_provider_config
from .cost import CostTracker

# 异常
from .exceptions import (
    ConfigurationError,
    GatewayError,
    ProviderPermanentError,
    ProviderTransientError,
    RateLimitExceeded,
)

# 核心组件
from .history import ConversationHistoryStore
from .ledger import UsageLedger
from .models import (
    AnalysisError,
    AnalysisOutcome,
    AnalysisRequest,
    AnalysisResult,
    AnalysisType,
    ConversationTurn,
    ModelInfo,
    ProviderDescriptor,
    RateLimitStatus,
    ResultFormat,
    TokenUsage,
)
from .openai_provider import OpenAIProvider
from .rate_limiter import RateLimiter
from .registry import ProviderRegistry
from .retry import RetryExecutor, classify_error
from .simulated import SimulatedProvider
from .templates import PromptTemplate, PromptTemplateStore

__all__ = [
    "AIProvider",
    "AnalysisError",
    "AnalysisOutcome",
    "AnalysisRequest",
    "AnalysisResult",
    "AnalysisType",
    "ConversationTurn",
    "ModelInfo",
    "ProviderDescriptor",
    "RateLimitStatus",
    "ResultFormat",
    "TokenUsage",
    "OpenAIProvider",
    "SimulatedProvider",
    "ProviderRegistry",
    "PromptTemplate",
    "PromptTemplateStore",
    "RateLimiter",
    "RetryExecutor",
    "classify_error",
    "UsageLedger",
    "ConversationHistoryStore",
    "CostTracker",
    "ProviderConfig",
    "load_provider_config",
    "GatewayError",
    "ConfigurationError",
    "RateLimitExceeded",
    "ProviderTransientError",
    "ProviderPermanentError",
]
