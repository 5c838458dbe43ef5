"""LoggingMiddleware -- 网关请求日志

每个请求绑定 request_id（沿用调用方的 X-Request-ID，否则生成 ULID），
完成时按状态码分级记录：5xx 为 error，429 与其余 4xx 为 warning。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

log = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_REQUEST_ID_LEN = 128


def _request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if incoming and len(incoming) <= _MAX_REQUEST_ID_LEN:
        return incoming
    return str(ULID())


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id(request)
        start = time.monotonic()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
        except Exception:
            log.exception(
                "request_failed",
                duration_ms=int((time.monotonic() - start) * 1000),
            )
            raise

        fields = {
            "status_code": response.status_code,
            "duration_ms": int((time.monotonic() - start) * 1000),
        }
        if "X-RateLimit-Remaining" in response.headers:
            fields["rate_limit_remaining"] = response.headers["X-RateLimit-Remaining"]
        if "Retry-After" in response.headers:
            fields["retry_after"] = response.headers["Retry-After"]

        if response.status_code >= 500:
            log.error("request_completed", **fields)
        elif response.status_code >= 400:
            log.warning("request_completed", **fields)
        else:
            log.info("request_completed", **fields)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
