"""MindGate Client -- 网关调用编排器

packages/client 的公开接口导出。
"""

from .cache import ResponseCache
from .client import BatchOutcome, BatchRequest, GatewayClient, RequestOptions
from .events import (
    AuthFailed,
    ClientEvent,
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
    ClientError,
    ClientResponseError,
    NetworkError,
    RateLimitedError,
    RequestTimeoutError,
)

__all__ = [
    "GatewayClient",
    "RequestOptions",
    "BatchRequest",
    "BatchOutcome",
    "ResponseCache",
    "EventChannel",
    "ClientEvent",
    "LoadingStateChanged",
    "RateLimited",
    "RateLimitInfo",
    "AuthFailed",
    "NetworkErrorOccurred",
    "RequestState",
    "RequestStateChanged",
    "ClientError",
    "ClientResponseError",
    "RateLimitedError",
    "AuthenticationError",
    "RequestTimeoutError",
    "NetworkError",
]
