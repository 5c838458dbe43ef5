"""UsageLedger -- 按用户 / 模型 / 日期的 token 账本

写入：成功调用后对用户桶和全局桶的各字段做原子自增，并记录用户出现标记。
查询：按 today / week / month 折叠最近 1 / 7 / 30 个日桶，成本在查询时按
产出模型的价格表惰性计算。超过 90 天的日桶在写入时顺带清理（每天至多一次）。
"""

import time
from collections.abc import Mapping
from datetime import UTC, date, datetime, timedelta
from typing import Any
from urllib.parse import quote, unquote

import structlog
from mindgate.core.store import Clock, KVStore

from .cost import CostTracker
from .models import ModelInfo, TokenUsage

log = structlog.get_logger()

RETENTION_DAYS = 90

PERIOD_DAYS = {"today": 1, "week": 7, "month": 30}

USAGE_FIELDS = ("prompt_tokens", "completion_tokens", "total_tokens", "request_count")

_PRUNE_MARKER_KEY = "ledger:last_prune"


def _empty_entry() -> dict[str, Any]:
    return {field: 0 for field in USAGE_FIELDS}


class UsageLedger:
    """token 用量账本

    Args:
        store: 共享 KV 存储
        clock: 返回 Unix 时间戳的时钟，按 UTC 日期分桶
    """

    def __init__(self, store: KVStore, clock: Clock = time.time) -> None:
        self._store = store
        self._clock = clock

    def _today(self) -> date:
        return datetime.fromtimestamp(self._clock(), UTC).date()

    async def record(self, user_id: str, model: str, usage: TokenUsage) -> None:
        """记录一次成功调用的用量"""
        day = self._today().isoformat()
        user = quote(user_id, safe="")
        model_key = quote(model, safe="")
        amounts = {
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
            "request_count": 1,
        }
        for field, amount in amounts.items():
            await self._store.incr(f"usage:{day}:user:{user}:{field}:{model_key}", amount)
            await self._store.incr(f"usage:{day}:global:{field}:{model_key}", amount)
        await self._store.set(f"usage:{day}:users:{user}:{model_key}", 1)

        log.debug(
            "usage_recorded",
            user_id=user_id,
            model=model,
            total_tokens=usage.total_tokens,
        )
        await self._maybe_prune()

    async def _maybe_prune(self) -> None:
        today = self._today()
        if await self._store.get(_PRUNE_MARKER_KEY) == today.isoformat():
            return
        await self._store.set(_PRUNE_MARKER_KEY, today.isoformat())

        cutoff = (today - timedelta(days=RETENTION_DAYS)).isoformat()
        pruned = 0
        for key in await self._store.keys("usage:"):
            if key.split(":", 2)[1] < cutoff:
                await self._store.delete(key)
                pruned += 1
        if pruned:
            log.info("usage_buckets_pruned", cutoff=cutoff, deleted_keys=pruned)

    async def get_stats(
        self,
        period: str = "today",
        user_id: str | None = None,
        price_table: Mapping[str, ModelInfo] | None = None,
    ) -> dict[str, Any]:
        """汇总用量

        Args:
            period: today / week / month
            user_id: 指定时同时返回该用户的分模型用量
            price_table: 模型 -> 价格信息，缺失模型成本为 0

        Returns:
            {"period", "user": {model: {...}}, "global": {model: {...}}}

        Raises:
            ValueError: 未知 period
        """
        if period not in PERIOD_DAYS:
            raise ValueError(f"未知统计周期: {period}")
        prices = price_table or {}
        today = self._today()
        days = [(today - timedelta(days=i)).isoformat() for i in range(PERIOD_DAYS[period])]
        target_user = quote(user_id, safe="") if user_id is not None else None

        user_stats: dict[str, dict[str, Any]] = {}
        global_stats: dict[str, dict[str, Any]] = {}
        users_by_model: dict[str, set[str]] = {}

        for day in days:
            for key in await self._store.keys(f"usage:{day}:"):
                parts = key.split(":")
                scope = parts[2]
                if scope == "global" and len(parts) == 5:
                    field, model = parts[3], unquote(parts[4])
                    entry = global_stats.setdefault(model, _empty_entry())
                elif scope == "user" and len(parts) == 6 and parts[3] == target_user:
                    field, model = parts[4], unquote(parts[5])
                    entry = user_stats.setdefault(model, _empty_entry())
                elif scope == "users" and len(parts) == 5:
                    users_by_model.setdefault(unquote(parts[4]), set()).add(parts[3])
                    continue
                else:
                    continue
                if field in USAGE_FIELDS:
                    entry[field] += int(await self._store.get(key) or 0)

        for section in (user_stats, global_stats):
            for model, entry in section.items():
                entry["estimated_cost"] = CostTracker.calculate_cost(
                    entry["prompt_tokens"], entry["completion_tokens"], prices.get(model)
                )
        for model, entry in global_stats.items():
            entry["unique_users"] = len(users_by_model.get(model, ()))

        return {"period": period, "user": user_stats, "global": global_stats}
