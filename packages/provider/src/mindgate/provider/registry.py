"""ProviderRegistry -- provider id 到工厂函数的映射

解析时按需构造并缓存 provider 实例。未知 id 或缺少配置（如无凭据）
抛出 ConfigurationError。force_simulated 标记可把默认 provider 强制切换为模拟 provider。
"""

from collections.abc import Callable

import structlog

from .base import AIProvider
from .config import ProviderConfig
from .exceptions import ConfigurationError
from .models import ModelInfo, ProviderDescriptor
from .openai_provider import OPENAI_MODELS, OpenAIProvider
from .simulated import SIMULATED_MODELS, SimulatedProvider

log = structlog.get_logger()

ProviderFactory = Callable[[ProviderConfig], AIProvider]

SIMULATED_PROVIDER_ID = "simulated"

# 兼容旧配置中的 provider 名称
_ALIASES = {"mock": SIMULATED_PROVIDER_ID}


def simulated_factory(config: ProviderConfig) -> AIProvider:
    return SimulatedProvider(
        response_delay_s=config.simulated_response_delay_s,
        error_rate=config.simulated_error_rate,
        randomize=config.simulated_randomize,
    )


def openai_factory(config: ProviderConfig) -> AIProvider:
    api_key = config.openai_api_key.get_secret_value()
    if not api_key:
        raise ConfigurationError("OpenAI API key is not configured")
    return OpenAIProvider(
        api_key=api_key,
        api_base=config.openai_api_base,
        default_model=config.default_model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout_s=config.timeout_s,
        availability_ttl_s=config.availability_ttl_s,
    )


class ProviderRegistry:
    """Provider 注册表

    Args:
        config: 网关配置，传给每个工厂
        register_defaults: 是否注册内置的 simulated / openai provider
    """

    def __init__(self, config: ProviderConfig, register_defaults: bool = True) -> None:
        self._config = config
        self._factories: dict[str, ProviderFactory] = {}
        self._catalogs: dict[str, dict[str, ModelInfo]] = {}
        self._names: dict[str, str] = {}
        self._instances: dict[str, AIProvider] = {}
        if register_defaults:
            self.register(
                SIMULATED_PROVIDER_ID,
                simulated_factory,
                name=SimulatedProvider.display_name,
                models=SIMULATED_MODELS,
            )
            self.register(
                "openai",
                openai_factory,
                name=OpenAIProvider.display_name,
                models=OPENAI_MODELS,
            )

    def register(
        self,
        provider_id: str,
        factory: ProviderFactory,
        name: str = "",
        models: dict[str, ModelInfo] | None = None,
    ) -> None:
        """注册 provider 工厂

        Args:
            provider_id: provider 标识
            factory: 以 ProviderConfig 为参数的工厂
            name: 展示名称
            models: 静态模型目录，用于无需实例化即可查询价格
        """
        self._factories[provider_id] = factory
        self._names[provider_id] = name or provider_id
        if models is not None:
            self._catalogs[provider_id] = dict(models)
        self._instances.pop(provider_id, None)

    @property
    def provider_ids(self) -> list[str]:
        return list(self._factories)

    @property
    def default_provider_id(self) -> str:
        if self._config.force_simulated:
            return SIMULATED_PROVIDER_ID
        return _ALIASES.get(self._config.default_provider, self._config.default_provider)

    def resolve(self, provider_id: str | None = None) -> AIProvider:
        """按 id 获取 provider 实例（None 使用默认 provider）

        Raises:
            ConfigurationError: 未知 id 或 provider 配置缺失
        """
        pid = provider_id or self.default_provider_id
        pid = _ALIASES.get(pid, pid)
        if pid in self._instances:
            return self._instances[pid]

        factory = self._factories.get(pid)
        if factory is None:
            raise ConfigurationError(f"Unknown AI provider: {pid}")

        provider = factory(self._config)
        self._instances[pid] = provider
        log.info("provider_resolved", provider=pid)
        return provider

    def describe(self, provider_id: str) -> ProviderDescriptor:
        """provider 描述；无法实例化时使用静态目录"""
        try:
            return self.resolve(provider_id).descriptor
        except ConfigurationError:
            return ProviderDescriptor(
                id=provider_id,
                name=self._names.get(provider_id, provider_id),
                models=self._catalogs.get(provider_id, {}),
            )

    def price_table(self) -> dict[str, ModelInfo]:
        """合并所有已注册 provider 的模型价格表"""
        prices: dict[str, ModelInfo] = {}
        for pid in self._factories:
            catalog = self._catalogs.get(pid)
            if catalog is None:
                try:
                    catalog = self.resolve(pid).get_models()
                except ConfigurationError:
                    continue
            prices.update(catalog)
        return prices
