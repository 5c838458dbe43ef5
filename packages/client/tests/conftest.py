"""Client 包测试 fixtures"""

import json

import httpx
import pytest
import pytest_asyncio
from mindgate.client import GatewayClient


class ScriptedTransport:
    """按顺序返回预设响应的 httpx handler，并记录收到的请求

    脚本项可以是 httpx.Response、异常实例，或接收 request 的可调用对象。
    脚本用尽后重复最后一项。
    """

    def __init__(self, *script) -> None:
        self.script = list(script)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.script)) - 1
        item = self.script[index]
        if isinstance(item, Exception):
            raise item
        if callable(item) and not isinstance(item, httpx.Response):
            return item(request)
        return item

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def json_body(self, index: int = -1):
        return json.loads(self.requests[index].content)


class SleepRecorder:
    """替代 asyncio.sleep，只记录延迟不等待"""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def script():
    """脚本化 transport 工厂"""
    return ScriptedTransport


@pytest_asyncio.fixture
async def make_client(sleep_recorder, fake_clock):
    """构造绑定 mock handler 的 GatewayClient，测试结束自动关闭"""
    clients = []

    def _make(handler, **kwargs) -> GatewayClient:
        kwargs.setdefault("token", "test-token")
        kwargs.setdefault("sleep", sleep_recorder)
        kwargs.setdefault("clock", fake_clock)
        client = GatewayClient(
            "http://gateway.test",
            transport=httpx.MockTransport(handler),
            **kwargs,
        )
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.aclose()
