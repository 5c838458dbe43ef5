"""Store Protocol 接口定义

KV 存储是网关唯一的共享可变状态载体（限流窗口、用量账本、会话历史）。
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from collections.abc import Callable
from typing import Any, Protocol

# 时钟函数：返回 Unix 时间戳（秒），测试中可注入假时钟
Clock = Callable[[], float]


class KVStore(Protocol):
    """键值存储接口

    值必须可 JSON 序列化。带 TTL 的键过期后读取为 None，
    不需要显式清扫。
    """

    async def get(self, key: str) -> Any | None:
        """读取键值，不存在或已过期返回 None"""
        ...

    async def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        """覆盖写入，每次写入重新开始计算 TTL"""
        ...

    async def incr(self, key: str, amount: int = 1, ttl_s: float | None = None) -> int:
        """原子自增并返回新值

        键不存在或已过期时从 0 开始计数，ttl_s 仅在新建键时生效。
        """
        ...

    async def delete(self, key: str) -> None:
        """删除键（不存在时静默）"""
        ...

    async def keys(self, prefix: str) -> list[str]:
        """列出指定前缀下所有未过期的键"""
        ...

    async def ping(self) -> bool:
        """连通性检查"""
        ...

    async def close(self) -> None:
        """释放底层资源"""
        ...
