"""TraceMiddleware -- 跨服务追踪

优先使用调用方传入的 X-Trace-ID，否则使用 X-Conversation-ID 派生 trace_id，
绑定到 structlog contextvars，贯穿一次分析调用的全部日志。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


class TraceMiddleware(BaseHTTPMiddleware):
    """追踪中间件 -- 绑定 trace_id"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        trace_id = request.headers.get("X-Trace-ID")
        if not trace_id and (conversation_id := request.headers.get("X-Conversation-ID")):
            trace_id = f"trace-{conversation_id}"

        if trace_id:
            structlog.contextvars.bind_contextvars(trace_id=trace_id)

        response = await call_next(request)
        if trace_id:
            response.headers["X-Trace-ID"] = trace_id
        return response
