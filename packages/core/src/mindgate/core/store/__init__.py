"""MindGate Core Store -- KV 持久化实现

提供工厂函数按配置创建 KV 存储实例。
"""

import time
from pathlib import Path

import aiosqlite

from .memory_store import InMemoryKVStore
from .protocols import Clock, KVStore
from .sqlite_init import init_db
from .sqlite_store import SqliteKVStore


async def create_kv_store(
    backend: str = "sqlite",
    db_path: str | None = None,
    clock: Clock = time.time,
) -> KVStore:
    """创建 KV 存储实例

    Args:
        backend: 存储后端（sqlite / memory）
        db_path: SQLite 数据库文件路径（sqlite 后端必填）
        clock: 时钟函数，测试中可注入

    Returns:
        KVStore 实例

    Raises:
        ValueError: 未知后端，或 sqlite 后端缺少 db_path
    """
    if backend == "memory":
        return InMemoryKVStore(clock=clock)
    if backend != "sqlite":
        raise ValueError(f"未知的 KV 存储后端: {backend}")
    if not db_path:
        raise ValueError("sqlite 后端需要 db_path")

    # 确保数据库目录存在
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)
    return SqliteKVStore(conn, clock=clock)


__all__ = [
    "Clock",
    "KVStore",
    "InMemoryKVStore",
    "SqliteKVStore",
    "create_kv_store",
    "init_db",
]
