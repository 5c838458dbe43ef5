"""EventChannel -- 类型化的事件订阅通道

订阅者按事件类型注册回调，subscribe() 返回取消订阅函数。
"""

from collections import defaultdict
from collections.abc import Callable
from enum import StrEnum
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel

log = structlog.get_logger()


class RequestState(StrEnum):
    """单次逻辑请求的状态机

    QUEUED -> IN_FLIGHT -> SUCCEEDED | RATE_LIMITED | RETRYING | FAILED；
    RATE_LIMITED / RETRYING 在等待后回到 QUEUED，直到达到尝试上限。
    """

    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    RATE_LIMITED = "rate_limited"
    RETRYING = "retrying"
    FAILED = "failed"


class ClientEvent(BaseModel, frozen=True):
    """事件基类"""


class LoadingStateChanged(ClientEvent, frozen=True):
    key: str
    loading: bool


class RateLimited(ClientEvent, frozen=True):
    endpoint: str
    retry_after: float
    will_retry: bool


class RateLimitInfo(ClientEvent, frozen=True):
    limit: int
    remaining: int
    reset: int


class AuthFailed(ClientEvent, frozen=True):
    endpoint: str
    status: int


class NetworkErrorOccurred(ClientEvent, frozen=True):
    endpoint: str
    error: str


class RequestStateChanged(ClientEvent, frozen=True):
    request_id: int
    method: str
    endpoint: str
    state: RequestState
    attempt: int


E = TypeVar("E", bound=ClientEvent)


class EventChannel:
    """发布/订阅通道

    回调同步执行；单个回调抛出的异常只记录日志，不影响其他订阅者和请求本身。
    """

    def __init__(self) -> None:
        self._subscribers: dict[type[ClientEvent], list[Callable[[Any], None]]] = defaultdict(
            list
        )

    def subscribe(self, event_type: type[E], callback: Callable[[E], None]) -> Callable[[], None]:
        """订阅指定类型的事件

        Returns:
            取消订阅函数（重复调用无副作用）
        """
        self._subscribers[event_type].append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def publish(self, event: ClientEvent) -> None:
        """向订阅了该事件类型的回调广播"""
        for callback in list(self._subscribers.get(type(event), ())):
            try:
                callback(event)
            except Exception:
                log.exception("event_subscriber_failed", event_type=type(event).__name__)

    def subscriber_count(self, event_type: type[ClientEvent]) -> int:
        return len(self._subscribers.get(event_type, ()))
