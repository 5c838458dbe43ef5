"""packages/core 测试配置 -- 两种 KV 后端的参数化 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from mindgate.core.store import KVStore, create_kv_store


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def kv_store(request, tmp_path: Path, fake_clock) -> AsyncGenerator[KVStore, None]:
    """分别以内存和 SQLite 后端运行同一组用例"""
    store = await create_kv_store(
        backend=request.param,
        db_path=str(tmp_path / "sqlite" / "kv_test.db"),
        clock=fake_clock,
    )
    yield store
    await store.close()
