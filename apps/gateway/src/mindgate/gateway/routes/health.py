"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 KV 存储连通性；profile=llm 时探测默认 provider。
"""

import structlog
from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(
    request: Request,
    profile: str | None = Query(
        default=None,
        description="检查配置：core（默认）仅核心检查；llm/full 包含默认 provider 可用性探测",
    ),
):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. kv_store: KV 存储连通性
    2. provider: 根据 profile 决定是否探测默认 provider
    """
    effective_profile = profile or "core"

    checks: dict[str, str] = {}
    all_ok = True

    # 1. KV 存储连通性
    try:
        kv_store = request.app.state.kv_store
        if await kv_store.ping():
            checks["kv_store"] = "ok"
        else:
            checks["kv_store"] = "error: ping failed"
            all_ok = False
    except Exception as e:
        checks["kv_store"] = f"error: {e}"
        all_ok = False

    # 2. 默认 provider 可用性
    if effective_profile in ("llm", "full"):
        try:
            registry = request.app.state.gateway.registry
            provider = registry.resolve()
            if await provider.check_availability():
                checks["provider"] = "ok"
            else:
                checks["provider"] = "unreachable"
                all_ok = False
        except Exception as e:
            log.warning("provider_readiness_check_failed", error=str(e))
            checks["provider"] = f"error: {e}"
            all_ok = False
    else:
        checks["provider"] = "skipped"

    status_code = 200 if all_ok else 503
    status_text = "ready" if all_ok else "not_ready"

    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_text,
            "profile": effective_profile,
            "checks": checks,
        },
    )
