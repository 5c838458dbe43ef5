"""FastAPI 应用主文件

app 创建 + lifespan 管理：KV 存储初始化/关闭 + 网关门面组装 + 路由注册。
"""

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from mindgate.core.config import get_db_path, get_store_backend
from mindgate.core.store import create_kv_store
from mindgate.provider import load_provider_config
from starlette.responses import JSONResponse

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import analysis, health
from .services.analysis_service import build_gateway

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化存储和网关组件，关闭时释放连接"""
    backend = get_store_backend()
    kv_store = await create_kv_store(backend, get_db_path())
    app.state.kv_store = kv_store

    provider_config = load_provider_config()
    app.state.provider_config = provider_config
    app.state.gateway = build_gateway(kv_store, provider_config)

    log.info(
        "gateway_initialized",
        store_backend=backend,
        default_provider=app.state.gateway.registry.default_provider_id,
        requests_per_minute=provider_config.requests_per_minute,
        tokens_per_minute=provider_config.tokens_per_minute,
        max_attempts=provider_config.max_attempts,
    )

    yield

    if getattr(app.state, "kv_store", None) is not None:
        await app.state.kv_store.close()


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    return JSONResponse(
        status_code=400,
        content={
            "error": f"Invalid request: {location} {first.get('msg', '')}".strip(),
            "code": "invalid_request",
        },
    )


async def _http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    # detail 已是 {error, code} 结构时原样返回
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"error": str(exc.detail), "code": "http_error"}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="MindGate Gateway",
        version="0.1.0",
        description="MindGate AI provider 网关 API",
        lifespan=lifespan,
    )
    app.state.api_token = os.environ.get("MINDGATE_API_TOKEN", "")

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)

    setup_logging()
    setup_logfire(app)

    app.include_router(analysis.router, tags=["analysis"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
