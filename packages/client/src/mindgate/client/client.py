"""GatewayClient -- 网关调用编排器

在消费端运行（单事件循环，协作式并发），负责：
- 并发上限：同时在途请求不超过 max_concurrency，超出部分按 FIFO 排队
- 读缓存：GET 响应按 {method, url, params} 缓存
- 限流处理：读取 X-RateLimit-Reset，按调用方偏好等待重试或直接抛出
- 重试：5xx / 网络错误线性退避重试；超时不重试
- 事件通知：加载状态、限流、认证失败、网络错误、请求状态
- batch：同一并发上限下批量请求，单个失败不影响整体
"""

import asyncio
import itertools
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from .cache import ResponseCache, cache_key
from .events import (
    AuthFailed,
    EventChannel,
    LoadingStateChanged,
    NetworkErrorOccurred,
    RateLimited,
    RateLimitInfo,
    RequestState,
    RequestStateChanged,
)
from .exceptions import (
    AuthenticationError,
    ClientResponseError,
    NetworkError,
    RateLimitedError,
    RequestTimeoutError,
)

log = structlog.get_logger()

# 429 响应缺少 reset 提示时的默认等待秒数
DEFAULT_RATE_LIMIT_WAIT_S = 60


class RequestOptions(BaseModel):
    """单次请求选项"""

    no_cache: bool = Field(default=False, description="跳过读缓存")
    no_retry: bool = Field(default=False, description="禁止任何自动重试")
    wait_on_rate_limit: bool = Field(default=True, description="被限流时等待后重试")
    headers: dict[str, str] = Field(default_factory=dict, description="附加请求头")
    timeout_s: float | None = Field(default=None, description="单次请求超时，覆盖默认值")


class BatchRequest(BaseModel):
    """batch() 中的单个请求"""

    method: str = "GET"
    endpoint: str
    data: Any = None
    options: RequestOptions = Field(default_factory=RequestOptions)


class BatchOutcome(BaseModel):
    """batch() 中单个请求的结算结果"""

    request: BatchRequest | dict[str, Any] = Field(description="原始请求，校验失败时保留输入的 dict")
    status: str = Field(description="fulfilled / rejected")
    value: Any = None
    error: str | None = None


class _Retry(Exception):
    """内部信号：释放并发槽位后等待 delay 秒再重试"""

    def __init__(self, delay: float, state: RequestState) -> None:
        super().__init__(delay)
        self.delay = delay
        self.state = state


def _parse_seconds(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _response_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_message(body: Any, status: int) -> tuple[str, str | None]:
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"]), body.get("code")
    return f"Request failed with status {status}", None


class GatewayClient:
    """网关 HTTP 客户端

    Args:
        base_url: 网关地址
        token: Bearer token，可通过 set_token() 运行时刷新
        timeout_s: 默认请求超时（秒）
        max_concurrency: 同时在途请求上限
        retry_attempts: 单次逻辑请求最大尝试次数
        retry_delay_s: 线性退避基础延迟
        cache_ttl_s: 读缓存 TTL
        cache_max_entries: 读缓存条目上限
        transport: httpx transport（测试注入）
        sleep: 延迟函数（测试注入）
        clock: 缓存使用的单调时钟（测试注入）
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout_s: float = 30,
        max_concurrency: int = 5,
        retry_attempts: int = 3,
        retry_delay_s: float = 1.0,
        cache_ttl_s: float = 300,
        cache_max_entries: int = 100,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            transport=transport,
            timeout=timeout_s,
        )
        self._token = token
        self.max_concurrency = max_concurrency
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay_s = retry_delay_s
        self._slots = asyncio.Semaphore(max_concurrency)
        self._cache = ResponseCache(ttl_s=cache_ttl_s, max_entries=cache_max_entries, clock=clock)
        self._sleep = sleep
        self._loading: dict[str, int] = {}
        self._request_ids = itertools.count(1)
        self.events = EventChannel()
        self.rate_limit_info: RateLimitInfo | None = None

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def set_token(self, token: str | None) -> None:
        """刷新认证 token，后续请求立即生效"""
        self._token = token

    def clear_cache(self, pattern: str | None = None) -> int:
        return self._cache.clear(pattern)

    def is_loading(self, key: str | None = None) -> bool:
        """key 为 "METHOD:endpoint"；None 表示任意请求在途"""
        if key is None:
            return any(self._loading.values())
        return self._loading.get(key, 0) > 0

    def _set_loading(self, key: str, delta: int) -> None:
        before = self._loading.get(key, 0)
        after = before + delta
        if after > 0:
            self._loading[key] = after
        else:
            self._loading.pop(key, None)
        if (before == 0) != (after == 0):
            self.events.publish(LoadingStateChanged(key=key, loading=after > 0))

    def _transition(
        self,
        request_id: int,
        method: str,
        endpoint: str,
        state: RequestState,
        attempt: int,
    ) -> None:
        self.events.publish(
            RequestStateChanged(
                request_id=request_id,
                method=method,
                endpoint=endpoint,
                state=state,
                attempt=attempt,
            )
        )

    async def request(
        self,
        method: str,
        endpoint: str,
        data: Any = None,
        options: RequestOptions | None = None,
    ) -> Any:
        """通用请求入口

        GET 请求的 data 作为查询参数并参与缓存；其他方法的 data 作为 JSON 请求体。

        Raises:
            RateLimitedError: 被限流且未重试（或重试耗尽）
            AuthenticationError: 401 / 403
            ClientResponseError: 其他非 2xx 响应
            RequestTimeoutError: 请求超时
            NetworkError: 网络错误重试耗尽
        """
        method = method.upper()
        options = options or RequestOptions()
        cacheable = method == "GET" and not options.no_cache
        key = cache_key(method, endpoint, data)

        if cacheable and (entry := self._cache.get(key)) is not None:
            log.debug("client_cache_hit", endpoint=endpoint)
            return entry.value

        loading_key = f"{method}:{endpoint}"
        self._set_loading(loading_key, 1)
        try:
            result = await self._execute(method, endpoint, data, options)
        finally:
            self._set_loading(loading_key, -1)

        if cacheable:
            self._cache.set(key, result)
        return result

    async def _execute(
        self,
        method: str,
        endpoint: str,
        data: Any,
        options: RequestOptions,
    ) -> Any:
        request_id = next(self._request_ids)
        attempt = 0
        while True:
            attempt += 1
            self._transition(request_id, method, endpoint, RequestState.QUEUED, attempt)
            try:
                async with self._slots:
                    self._transition(request_id, method, endpoint, RequestState.IN_FLIGHT, attempt)
                    result = await self._attempt(method, endpoint, data, options, attempt)
            except _Retry as retry:
                # 等待期间不占用并发槽位
                self._transition(request_id, method, endpoint, retry.state, attempt)
                log.info(
                    "client_request_retry",
                    endpoint=endpoint,
                    attempt=attempt,
                    delay_s=retry.delay,
                    state=retry.state,
                )
                await self._sleep(retry.delay)
                continue
            except Exception:
                self._transition(request_id, method, endpoint, RequestState.FAILED, attempt)
                raise
            self._transition(request_id, method, endpoint, RequestState.SUCCEEDED, attempt)
            return result

    async def _attempt(
        self,
        method: str,
        endpoint: str,
        data: Any,
        options: RequestOptions,
        attempt: int,
    ) -> Any:
        """发送一次 HTTP 请求并按响应决定返回、重试或抛出"""
        headers = {"Accept": "application/json", **options.headers}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        kwargs: dict[str, Any] = {"headers": headers}
        if method == "GET":
            if data:
                kwargs["params"] = {k: v for k, v in data.items() if v is not None}
        elif data is not None:
            kwargs["json"] = data
        if options.timeout_s is not None:
            kwargs["timeout"] = options.timeout_s

        can_retry = not options.no_retry and attempt < self.retry_attempts

        try:
            response = await self._http.request(method, endpoint, **kwargs)
        except httpx.TimeoutException as e:
            log.warning("client_request_timeout", endpoint=endpoint, attempt=attempt)
            raise RequestTimeoutError("Request timeout") from e
        except httpx.TransportError as e:
            self.events.publish(NetworkErrorOccurred(endpoint=endpoint, error=str(e)))
            if can_retry:
                raise _Retry(self.retry_delay_s * attempt, RequestState.RETRYING) from e
            raise NetworkError(f"Network error: {e}") from e

        self._capture_rate_limit_info(response)
        status = response.status_code
        body = _response_body(response)

        if status == 429:
            retry_after = _parse_seconds(response.headers.get("X-RateLimit-Reset"))
            if retry_after is None:
                retry_after = _parse_seconds(response.headers.get("Retry-After"))
            if retry_after is None:
                retry_after = DEFAULT_RATE_LIMIT_WAIT_S
            will_retry = options.wait_on_rate_limit and can_retry
            self.events.publish(
                RateLimited(endpoint=endpoint, retry_after=retry_after, will_retry=will_retry)
            )
            if will_retry:
                raise _Retry(retry_after, RequestState.RATE_LIMITED)
            message, _ = _error_message(body, status)
            raise RateLimitedError(message, retry_after=retry_after, data=body)

        if status in (401, 403):
            self.events.publish(AuthFailed(endpoint=endpoint, status=status))
            message, code = _error_message(body, status)
            raise AuthenticationError(status, message, code=code, data=body)

        if status >= 500 and can_retry:
            raise _Retry(self.retry_delay_s * attempt, RequestState.RETRYING)

        if status >= 400:
            message, code = _error_message(body, status)
            raise ClientResponseError(status, message, code=code, data=body)

        return body

    def _capture_rate_limit_info(self, response: httpx.Response) -> None:
        headers = response.headers
        if "X-RateLimit-Limit" not in headers:
            return
        try:
            info = RateLimitInfo(
                limit=int(headers["X-RateLimit-Limit"]),
                remaining=int(headers.get("X-RateLimit-Remaining", 0)),
                reset=int(float(headers.get("X-RateLimit-Reset", 0))),
            )
        except ValueError:
            log.debug("invalid_rate_limit_headers", headers=dict(headers))
            return
        self.rate_limit_info = info
        self.events.publish(info)

    async def batch(self, requests: list[BatchRequest | dict[str, Any]]) -> list[BatchOutcome]:
        """批量请求，共享并发上限，返回与输入一一对应的结算结果

        单个请求校验失败或执行失败只记为 rejected，不影响其余请求。
        """
        outcomes: list[BatchOutcome | None] = []
        pending: list[tuple[int, BatchRequest]] = []
        for entry in requests:
            try:
                req = entry if isinstance(entry, BatchRequest) else BatchRequest.model_validate(entry)
            except ValidationError as e:
                first = e.errors()[0]
                location = ".".join(str(part) for part in first["loc"])
                outcomes.append(
                    BatchOutcome(
                        request=entry,
                        status="rejected",
                        error=f"Invalid batch request: {location} {first['msg']}".strip(),
                    )
                )
                continue
            pending.append((len(outcomes), req))
            outcomes.append(None)

        results = await asyncio.gather(
            *(self.request(r.method, r.endpoint, r.data, r.options) for _, r in pending),
            return_exceptions=True,
        )
        for (index, req), result in zip(pending, results, strict=True):
            if isinstance(result, BaseException):
                outcomes[index] = BatchOutcome(request=req, status="rejected", error=str(result))
            else:
                outcomes[index] = BatchOutcome(request=req, status="fulfilled", value=result)
        return outcomes

    async def analyze(
        self,
        content: dict[str, Any],
        params: dict[str, Any] | None = None,
        user_id: str | None = None,
        options: RequestOptions | None = None,
    ) -> dict[str, Any]:
        """POST /api/analyze"""
        payload: dict[str, Any] = {"content": content, "params": params or {}}
        if user_id is not None:
            payload["user_id"] = user_id
        return await self.request("POST", "/api/analyze", payload, options)

    async def get_recommendations(
        self,
        user_id: str,
        context: str = "general",
        options: RequestOptions | None = None,
    ) -> dict[str, Any]:
        """POST /api/recommendations"""
        return await self.request(
            "POST",
            "/api/recommendations",
            {"user_id": user_id, "context": context},
            options,
        )

    async def estimate_cost(
        self,
        params: dict[str, Any] | None = None,
        options: RequestOptions | None = None,
    ) -> float:
        """GET /api/estimate-cost，返回预估 USD 成本"""
        body = await self.request("GET", "/api/estimate-cost", params or {}, options)
        return float(body["estimated_cost"])

    async def get_usage_stats(
        self,
        period: str = "today",
        user_id: str | None = None,
        options: RequestOptions | None = None,
    ) -> dict[str, Any]:
        """GET /api/usage"""
        return await self.request(
            "GET",
            "/api/usage",
            {"period": period, "user_id": user_id},
            options,
        )

    async def list_providers(self, options: RequestOptions | None = None) -> list[dict[str, Any]]:
        """GET /api/providers"""
        body = await self.request("GET", "/api/providers", None, options)
        return body["providers"]
