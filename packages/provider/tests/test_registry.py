"""ProviderRegistry 单元测试"""

import pytest
from mindgate.provider import (
    ConfigurationError,
    ModelInfo,
    OpenAIProvider,
    ProviderConfig,
    ProviderRegistry,
    SimulatedProvider,
)


def _config(**overrides) -> ProviderConfig:
    return ProviderConfig(simulated_response_delay_s=0, **overrides)


class TestResolve:
    def test_default_is_openai(self):
        registry = ProviderRegistry(_config(openai_api_key="sk-test"))
        provider = registry.resolve()
        assert isinstance(provider, OpenAIProvider)

    def test_openai_without_key_is_configuration_error(self):
        registry = ProviderRegistry(_config())
        with pytest.raises(ConfigurationError):
            registry.resolve("openai")

    def test_force_simulated_overrides_default(self):
        registry = ProviderRegistry(_config(openai_api_key="sk-test", force_simulated=True))
        assert registry.default_provider_id == "simulated"
        assert isinstance(registry.resolve(), SimulatedProvider)

    def test_mock_alias(self):
        registry = ProviderRegistry(_config(default_provider="mock"))
        assert registry.default_provider_id == "simulated"
        assert isinstance(registry.resolve("mock"), SimulatedProvider)

    def test_unknown_provider(self):
        registry = ProviderRegistry(_config())
        with pytest.raises(ConfigurationError, match="Unknown AI provider"):
            registry.resolve("anthropic")

    def test_instances_cached(self):
        registry = ProviderRegistry(_config())
        assert registry.resolve("simulated") is registry.resolve("simulated")

    def test_simulated_factory_uses_config(self):
        registry = ProviderRegistry(_config(simulated_error_rate=100))
        provider = registry.resolve("simulated")
        assert provider._error_rate == 100


class TestRegister:
    def test_custom_provider(self):
        registry = ProviderRegistry(_config(), register_defaults=False)
        assert registry.provider_ids == []

        custom = SimulatedProvider(response_delay_s=0)
        registry.register("custom", lambda config: custom, name="Custom")
        assert registry.provider_ids == ["custom"]
        assert registry.resolve("custom") is custom

    def test_reregister_drops_cached_instance(self):
        registry = ProviderRegistry(_config())
        first = registry.resolve("simulated")
        registry.register("simulated", lambda config: SimulatedProvider(response_delay_s=0))
        assert registry.resolve("simulated") is not first


class TestDescribe:
    def test_describe_instantiable(self):
        registry = ProviderRegistry(_config())
        descriptor = registry.describe("simulated")
        assert descriptor.id == "simulated"
        assert "mock-advanced" in descriptor.models

    def test_describe_falls_back_to_catalog(self):
        registry = ProviderRegistry(_config())
        descriptor = registry.describe("openai")
        assert descriptor.id == "openai"
        assert descriptor.name == "OpenAI GPT"
        assert "gpt-4-turbo" in descriptor.models

    def test_price_table_merges_catalogs(self):
        registry = ProviderRegistry(_config())
        extra = {"custom-model": ModelInfo(name="Custom", max_tokens=100, input_cost_per_1k=1.0)}
        registry.register("custom", lambda config: SimulatedProvider(), models=extra)

        prices = registry.price_table()
        assert {"gpt-4-turbo", "mock-advanced", "custom-model"} <= set(prices)
        assert prices["gpt-4-turbo"].input_cost_per_1k == 0.01
