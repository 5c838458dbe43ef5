"""集成测试共享 fixture -- GatewayClient 经 ASGITransport 直连网关 app"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport
from mindgate.client import GatewayClient
from mindgate.core.store import create_kv_store
from mindgate.gateway.services.analysis_service import build_gateway
from mindgate.provider import ProviderConfig, RateLimiter, UsageLedger


@pytest.fixture
def integration_config() -> ProviderConfig:
    return ProviderConfig(
        force_simulated=True,
        simulated_response_delay_s=0,
        simulated_randomize=False,
        requests_per_minute=5,
        cache_results=False,
    )


@pytest_asyncio.fixture
async def open_app(tmp_path: Path, monkeypatch, fake_clock, integration_config):
    """按需创建绑定同一 SQLite 文件的 app（可多次打开，模拟进程重启）"""
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")
    monkeypatch.setenv("MINDGATE_API_TOKEN", "integration-token")
    db_path = tmp_path / "sqlite" / "mindgate.db"
    stores = []

    from mindgate.gateway.main import create_app

    async def _open():
        store = await create_kv_store("sqlite", db_path)
        stores.append(store)
        gateway = build_gateway(store, integration_config)
        # 时间相关组件绑定假时钟
        gateway.rate_limiter = RateLimiter(
            store,
            requests_per_minute=integration_config.requests_per_minute,
            tokens_per_minute=integration_config.tokens_per_minute,
            clock=fake_clock,
        )
        gateway.ledger = UsageLedger(store, clock=fake_clock)

        app = create_app()
        app.state.kv_store = store
        app.state.provider_config = integration_config
        app.state.gateway = gateway
        return app

    yield _open

    for store in stores:
        await store.close()


@pytest_asyncio.fixture
async def make_gateway_client(open_app) -> AsyncGenerator[Callable, None]:
    """构造连到新 app 实例的 GatewayClient"""
    clients: list[GatewayClient] = []

    async def _make(token: str | None = "integration-token", **kwargs) -> GatewayClient:
        app = await open_app()
        client = GatewayClient(
            "http://test",
            token=token,
            transport=ASGITransport(app=app),
            **kwargs,
        )
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
