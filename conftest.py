"""全局 pytest 配置 -- 临时 SQLite 数据库 + 假时钟 + 内存 KV fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from mindgate.core.store import InMemoryKVStore


class FakeClock:
    """可手动推进的时钟，返回 Unix 时间戳"""

    def __init__(self, start: float | None = None) -> None:
        if start is None:
            # 固定在某分钟的第 10 秒，便于推算窗口边界
            start = datetime(2026, 3, 14, 9, 26, 10, tzinfo=UTC).timestamp()
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    """提供假时钟"""
    return FakeClock()


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def memory_store(fake_clock: FakeClock) -> AsyncGenerator[InMemoryKVStore, None]:
    """提供绑定假时钟的内存 KV 存储"""
    store = InMemoryKVStore(clock=fake_clock)
    yield store
    await store.close()
