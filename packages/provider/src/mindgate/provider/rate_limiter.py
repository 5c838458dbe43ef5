"""RateLimiter -- 每分钟请求数 / token 数配额

按挂钟分钟分桶（固定窗口），每个桶两只计数器：requests / tokens。
桶键带 120 秒 TTL，随分钟滚动自然失效，不做显式清扫。
分钟边界处最多可能放行约 2 倍配额，这是固定窗口的已知近似。
"""

import math
import time
from datetime import UTC, datetime

import structlog
from mindgate.core.store import Clock, KVStore

from .exceptions import RateLimitExceeded
from .models import RateLimitStatus, TokenUsage

log = structlog.get_logger()

# 预估 token = 文本长度 × 系数（调用前的廉价启发式）
TOKEN_ESTIMATE_FACTOR = 0.75
WINDOW_SECONDS = 60
WINDOW_TTL_S = 120


class RateLimiter:
    """固定窗口限流器

    Args:
        store: 共享 KV 存储
        requests_per_minute: 每分钟请求上限
        tokens_per_minute: 每分钟 token 上限
        clock: 返回 Unix 时间戳的时钟
    """

    def __init__(
        self,
        store: KVStore,
        requests_per_minute: int = 60,
        tokens_per_minute: int = 90000,
        clock: Clock = time.time,
    ) -> None:
        self._store = store
        self.requests_per_minute = requests_per_minute
        self.tokens_per_minute = tokens_per_minute
        self._clock = clock

    @staticmethod
    def estimate_tokens(text: str) -> int:
        return int(len(text) * TOKEN_ESTIMATE_FACTOR)

    def _window_keys(self, scope: str, now: float) -> tuple[str, str]:
        bucket = datetime.fromtimestamp(now, UTC).strftime("%Y%m%d%H%M")
        prefix = f"ratelimit:{scope}:{bucket}"
        return f"{prefix}:requests", f"{prefix}:tokens"

    @staticmethod
    def _seconds_until_reset(now: float) -> float:
        return WINDOW_SECONDS - (now % WINDOW_SECONDS)

    async def _counts(self, scope: str, now: float) -> tuple[int, int]:
        requests_key, tokens_key = self._window_keys(scope, now)
        request_count = await self._store.get(requests_key) or 0
        token_count = await self._store.get(tokens_key) or 0
        return int(request_count), int(token_count)

    async def check(self, scope: str, content_text: str) -> None:
        """调用前检查配额

        Args:
            scope: 计数范围（通常为 provider id）
            content_text: 待发送的提示词文本，用于预估 token

        Raises:
            RateLimitExceeded: 请求数或预估 token 数超出本分钟配额
        """
        now = self._clock()
        request_count, token_count = await self._counts(scope, now)
        estimated = self.estimate_tokens(content_text)

        if request_count >= self.requests_per_minute:
            reason = "requests_per_minute"
        elif token_count + estimated > self.tokens_per_minute:
            reason = "tokens_per_minute"
        else:
            return

        wait_hint = round(self._seconds_until_reset(now), 3)
        log.warning(
            "rate_limit_exceeded",
            scope=scope,
            reason=reason,
            request_count=request_count,
            token_count=token_count,
            estimated_tokens=estimated,
            wait_hint=wait_hint,
        )
        raise RateLimitExceeded(
            f"Rate limit exceeded ({reason}). Please try again later.",
            wait_hint=wait_hint,
        )

    async def record(self, scope: str, usage: TokenUsage) -> None:
        """成功调用后按实际用量累加计数"""
        requests_key, tokens_key = self._window_keys(scope, self._clock())
        await self._store.incr(requests_key, 1, ttl_s=WINDOW_TTL_S)
        if usage.total_tokens:
            await self._store.incr(tokens_key, usage.total_tokens, ttl_s=WINDOW_TTL_S)

    async def status(self, scope: str) -> RateLimitStatus:
        """当前窗口的配额余量"""
        now = self._clock()
        request_count, token_count = await self._counts(scope, now)
        return RateLimitStatus(
            limit=self.requests_per_minute,
            remaining=max(self.requests_per_minute - request_count, 0),
            reset=math.ceil(self._seconds_until_reset(now)),
            token_limit=self.tokens_per_minute,
            tokens_remaining=max(self.tokens_per_minute - token_count, 0),
        )
