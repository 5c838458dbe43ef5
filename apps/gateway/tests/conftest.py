"""apps/gateway 测试配置 -- 绕过 lifespan 手动组装网关 + httpx AsyncClient"""

import random
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mindgate.core.store import InMemoryKVStore
from mindgate.gateway.services.analysis_service import AnalysisGateway
from mindgate.provider import (
    ConversationHistoryStore,
    PromptTemplateStore,
    ProviderConfig,
    ProviderRegistry,
    RateLimiter,
    RetryExecutor,
    SimulatedProvider,
    UsageLedger,
)


@pytest.fixture
def provider_config() -> ProviderConfig:
    """强制使用无延迟的模拟 provider，默认关闭结果缓存"""
    return ProviderConfig(
        force_simulated=True,
        simulated_response_delay_s=0,
        simulated_randomize=False,
        cache_results=False,
    )


@pytest.fixture
def retry_sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def make_gateway(memory_store, fake_clock, retry_sleep):
    """按需组装 AnalysisGateway，所有时间相关组件绑定假时钟"""

    def _make(
        config: ProviderConfig,
        provider: SimulatedProvider | None = None,
    ) -> AnalysisGateway:
        registry = ProviderRegistry(config)
        if provider is not None:
            registry.register("simulated", lambda _config: provider, name="Simulated")
        return AnalysisGateway(
            registry=registry,
            templates=PromptTemplateStore(),
            rate_limiter=RateLimiter(
                memory_store,
                requests_per_minute=config.requests_per_minute,
                tokens_per_minute=config.tokens_per_minute,
                clock=fake_clock,
            ),
            executor=RetryExecutor(
                max_attempts=config.max_attempts,
                base_delay_s=config.retry_base_delay_s,
                sleep=retry_sleep,
            ),
            ledger=UsageLedger(memory_store, clock=fake_clock),
            history=ConversationHistoryStore(memory_store),
            result_cache=memory_store if config.cache_results else None,
            result_cache_ttl_s=config.result_cache_ttl_s,
            privacy_mode=config.privacy_mode,
        )

    return _make


@pytest.fixture
def seeded_provider() -> SimulatedProvider:
    return SimulatedProvider(response_delay_s=0, randomize=False, rng=random.Random(1))


@pytest.fixture
def gateway(make_gateway, provider_config, seeded_provider) -> AnalysisGateway:
    return make_gateway(provider_config, seeded_provider)


@pytest_asyncio.fixture
async def app(monkeypatch, memory_store, gateway):
    """创建测试用 FastAPI app 实例（手动初始化，绕过 lifespan）"""
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")
    monkeypatch.delenv("MINDGATE_API_TOKEN", raising=False)

    from mindgate.gateway.main import create_app

    application = create_app()
    application.state.kv_store = memory_store
    application.state.gateway = gateway
    yield application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
