"""ResponseCache -- 读请求响应缓存

按 {method, url, params} 缓存，TTL 默认 5 分钟，最多 100 条，
超出时淘汰最早写入的条目。
"""

import copy
import json
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel


class CacheEntry(BaseModel):
    value: Any
    expires_at: float


def cache_key(method: str, url: str, params: Any = None) -> str:
    """生成缓存键，params 按键排序序列化"""
    return f"{method.upper()}:{url}:{json.dumps(params, sort_keys=True, default=str)}"


class ResponseCache:
    """有界 TTL 缓存"""

    def __init__(
        self,
        ttl_s: float = 300,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_s = ttl_s
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> CacheEntry | None:
        """命中返回条目副本，过期条目顺手删除"""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return CacheEntry(value=copy.deepcopy(entry.value), expires_at=entry.expires_at)

    def set(self, key: str, value: Any) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            value=copy.deepcopy(value),
            expires_at=self._clock() + self.ttl_s,
        )
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self, pattern: str | None = None) -> int:
        """清空缓存；指定 pattern 时只删除键中包含 pattern 的条目"""
        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed
        doomed = [key for key in self._entries if pattern in key]
        for key in doomed:
            del self._entries[key]
        return len(doomed)
