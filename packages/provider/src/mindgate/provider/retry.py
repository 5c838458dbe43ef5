"""RetryExecutor -- 失败分类 + 线性退避重试

| 条件 | 分类 | 处理 |
|---|---|---|
| 429 | 可重试 | 优先使用上游 retry-after，否则线性退避 |
| 5xx | 可重试 | 线性退避 |
| 网络 / 超时 | 可重试 | 线性退避 |
| 其他 4xx、响应格式错误 | 不可重试 | 立即上抛 |

退避延迟 = base_delay × attempt，且不小于上一次延迟。
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import structlog

from .exceptions import GatewayError, ProviderPermanentError, ProviderTransientError

log = structlog.get_logger()

T = TypeVar("T")

# 连接类异常类型集合
_CONNECTION_ERROR_TYPES = (
    ConnectionError,
    OSError,
    TimeoutError,
    httpx.TransportError,
)

# litellm / openai SDK 中表示连接失败或超时的异常类名
_CONNECTION_ERROR_NAMES = ("APIConnectionError", "APITimeoutError", "Timeout")


def _is_connection_error(e: Exception) -> bool:
    """判断异常是否为连接类错误"""
    if isinstance(e, _CONNECTION_ERROR_TYPES):
        return True
    return type(e).__name__ in _CONNECTION_ERROR_NAMES


def _status_code(e: Exception) -> int | None:
    status = getattr(e, "status_code", None)
    if isinstance(status, int):
        return status
    if isinstance(e, httpx.HTTPStatusError):
        return e.response.status_code
    return None


def _retry_after(e: Exception) -> float | None:
    """从异常或其 HTTP 响应头中提取 retry-after 秒数"""
    hint = getattr(e, "retry_after", None)
    if isinstance(hint, (int, float)) and not isinstance(hint, bool):
        return float(hint)
    response = getattr(e, "response", None)
    headers = getattr(response, "headers", None)
    if isinstance(headers, (httpx.Headers, dict)):
        raw = headers.get("retry-after") or headers.get("Retry-After")
        try:
            return float(raw) if raw is not None else None
        except ValueError:
            return None
    return None


def classify_error(e: Exception) -> GatewayError:
    """把原始异常映射到网关异常体系

    已分类的 GatewayError 原样返回。
    """
    if isinstance(e, GatewayError):
        return e
    if _is_connection_error(e):
        return ProviderTransientError(f"Network error: {e}")

    status = _status_code(e)
    if status == 429:
        return ProviderTransientError(
            f"Provider rate limited: {e}",
            status_code=status,
            retry_after=_retry_after(e),
        )
    if status is not None and status >= 500:
        return ProviderTransientError(f"Provider server error: {e}", status_code=status)
    if status is not None and status >= 400:
        return ProviderPermanentError(f"Provider rejected request: {e}", status_code=status)
    if isinstance(e, (ValueError, KeyError, TypeError, AttributeError)):
        return ProviderPermanentError(f"Malformed provider response: {e}")
    return ProviderPermanentError(f"Provider call failed: {e}")


class RetryExecutor:
    """包裹每次出站 provider 调用的重试执行器

    Args:
        max_attempts: 最大尝试次数（含首次）
        base_delay_s: 线性退避基础延迟
        sleep: 延迟函数，测试中可替换
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_s: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.base_delay_s = base_delay_s
        self._sleep = sleep

    def compute_delay(
        self,
        attempt: int,
        error: ProviderTransientError,
        previous_delay: float = 0.0,
    ) -> float:
        """计算第 attempt 次失败后的等待时间"""
        if error.retry_after is not None:
            delay = error.retry_after
        else:
            delay = self.base_delay_s * attempt
        return max(delay, previous_delay)

    async def execute(self, operation: Callable[[], Awaitable[T]], label: str = "") -> T:
        """执行 operation，按分类结果重试

        Args:
            operation: 无参协程工厂，每次尝试调用一次
            label: 日志标签

        Returns:
            operation 首次成功的返回值

        Raises:
            ProviderTransientError: 重试耗尽，抛出最后一次错误
            GatewayError: 不可重试错误立即抛出
        """
        previous_delay = 0.0
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                error = classify_error(e)
                retryable = isinstance(error, ProviderTransientError)
                log.warning(
                    "provider_attempt_failed",
                    label=label,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=error.message,
                    error_type=type(e).__name__,
                    retryable=retryable,
                )
                if not retryable or attempt >= self.max_attempts:
                    if error is e:
                        raise
                    raise error from e

                delay = self.compute_delay(attempt, error, previous_delay)
                previous_delay = delay
                await self._sleep(delay)

        # max_attempts >= 1，循环必然返回或抛出
        raise AssertionError("unreachable")
