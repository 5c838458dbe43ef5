"""InMemoryKVStore -- 进程内 KV 存储

适用于单进程部署和测试。单事件循环内所有操作都不会被打断，
因此 incr 天然是原子的。
"""

import copy
import time
from typing import Any

from .protocols import Clock


class InMemoryKVStore:
    """基于 dict 的 KV 存储，过期时间在读取时惰性判断"""

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._data: dict[str, tuple[Any, float | None]] = {}

    def _live_entry(self, key: str) -> tuple[Any, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            # 过期键在访问时顺手丢弃
            del self._data[key]
            return None
        return entry

    def _expiry(self, ttl_s: float | None) -> float | None:
        return None if ttl_s is None else self._clock() + ttl_s

    async def get(self, key: str) -> Any | None:
        entry = self._live_entry(key)
        return None if entry is None else copy.deepcopy(entry[0])

    async def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        self._data[key] = (copy.deepcopy(value), self._expiry(ttl_s))

    async def incr(self, key: str, amount: int = 1, ttl_s: float | None = None) -> int:
        entry = self._live_entry(key)
        if entry is None:
            new_value = amount
            expires_at = self._expiry(ttl_s)
        else:
            new_value = int(entry[0]) + amount
            expires_at = entry[1]
        self._data[key] = (new_value, expires_at)
        return new_value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str) -> list[str]:
        return sorted(
            key
            for key in list(self._data)
            if key.startswith(prefix) and self._live_entry(key) is not None
        )

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()
