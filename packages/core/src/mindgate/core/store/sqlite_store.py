"""SqliteKVStore -- KV 存储的 SQLite 实现

kv 表存储 JSON 文本值和可选的过期时间戳。
incr 通过单条 UPSERT ... RETURNING 语句完成，保证原子性。
"""

import asyncio
import json
import time
from typing import Any

import aiosqlite

from .protocols import Clock

# 过期键视为不存在：重置为本次增量并刷新过期时间
_INCR_SQL = """
INSERT INTO kv (key, value, expires_at) VALUES (?, ?, ?)
ON CONFLICT(key) DO UPDATE SET
    value = CASE
        WHEN kv.expires_at IS NOT NULL AND kv.expires_at <= ? THEN excluded.value
        ELSE CAST(kv.value AS INTEGER) + ?
    END,
    expires_at = CASE
        WHEN kv.expires_at IS NOT NULL AND kv.expires_at <= ? THEN excluded.expires_at
        ELSE kv.expires_at
    END
RETURNING value
"""


class SqliteKVStore:
    """KVStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection, clock: Clock = time.time) -> None:
        self._conn = conn
        self._clock = clock
        # 同一连接上的写语句与 commit 串行执行
        self._write_lock = asyncio.Lock()

    @property
    def conn(self) -> aiosqlite.Connection:
        return self._conn

    def _expiry(self, ttl_s: float | None) -> float | None:
        return None if ttl_s is None else self._clock() + ttl_s

    async def get(self, key: str) -> Any | None:
        """读取键值，过期键返回 None"""
        cursor = await self._conn.execute(
            "SELECT value FROM kv WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)",
            (key, self._clock()),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    async def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        """覆盖写入"""
        async with self._write_lock:
            await self._conn.execute(
                """
                INSERT INTO kv (key, value, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    expires_at = excluded.expires_at
                """,
                (key, json.dumps(value, ensure_ascii=False), self._expiry(ttl_s)),
            )
            await self._conn.commit()

    async def incr(self, key: str, amount: int = 1, ttl_s: float | None = None) -> int:
        """原子自增并返回新值"""
        async with self._write_lock:
            now = self._clock()
            cursor = await self._conn.execute(
                _INCR_SQL,
                (key, str(amount), self._expiry(ttl_s), now, amount, now),
            )
            row = await cursor.fetchone()
            await self._conn.commit()
        return int(row[0])

    async def delete(self, key: str) -> None:
        async with self._write_lock:
            await self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            await self._conn.commit()

    async def keys(self, prefix: str) -> list[str]:
        """列出前缀下未过期的键，按字典序"""
        cursor = await self._conn.execute(
            """
            SELECT key FROM kv
            WHERE substr(key, 1, ?) = ?
              AND (expires_at IS NULL OR expires_at > ?)
            ORDER BY key
            """,
            (len(prefix), prefix, self._clock()),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def ping(self) -> bool:
        cursor = await self._conn.execute("SELECT 1")
        row = await cursor.fetchone()
        return row is not None

    async def close(self) -> None:
        await self._conn.close()

    async def purge_expired(self) -> int:
        """物理删除已过期的行，返回删除数量（离线维护用）"""
        async with self._write_lock:
            cursor = await self._conn.execute(
                "DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (self._clock(),),
            )
            await self._conn.commit()
        return cursor.rowcount
