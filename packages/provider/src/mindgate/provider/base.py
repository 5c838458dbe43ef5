"""AIProvider -- Provider 统一接口

每个后端实现四个操作：analyze / get_models / estimate_cost / check_availability。
"""

from abc import ABC, abstractmethod

from .cost import CostTracker
from .models import AnalysisRequest, AnalysisResult, ModelInfo, ProviderDescriptor


class AIProvider(ABC):
    """AI Provider 抽象基类"""

    provider_id: str = ""
    display_name: str = ""
    capabilities: dict[str, bool] = {}

    @abstractmethod
    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """执行一次分析

        Raises:
            ProviderTransientError: 可重试的上游错误
            ProviderPermanentError: 不可重试的上游错误
        """

    @abstractmethod
    def get_models(self) -> dict[str, ModelInfo]:
        """返回模型目录"""

    @abstractmethod
    async def check_availability(self) -> bool:
        """检查 provider 是否可用，不抛异常"""

    def default_model(self) -> str:
        """返回默认模型 id（目录中标记 is_default 的模型，否则第一个）"""
        models = self.get_models()
        for model_id, info in models.items():
            if info.is_default:
                return model_id
        return next(iter(models), "")

    def estimate_cost(self, model: str | None = None, estimated_tokens: int = 1000) -> float:
        """预估调用成本，未知模型返回 0"""
        model_info = self.get_models().get(model or self.default_model())
        return CostTracker.estimate_cost(model_info, estimated_tokens)

    @property
    def descriptor(self) -> ProviderDescriptor:
        return ProviderDescriptor(
            id=self.provider_id,
            name=self.display_name,
            models=self.get_models(),
            capabilities=dict(self.capabilities),
        )
