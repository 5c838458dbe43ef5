"""依赖注入模块 -- 通过 FastAPI Depends 注入网关组件

组件实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

import secrets

from fastapi import HTTPException, Request
from mindgate.core.store import KVStore

from .services.analysis_service import AnalysisGateway


def get_gateway(request: Request) -> AnalysisGateway:
    """从 app.state 获取 AnalysisGateway 实例"""
    return request.app.state.gateway


def get_kv_store(request: Request) -> KVStore:
    """从 app.state 获取 KV 存储实例"""
    return request.app.state.kv_store


def require_api_token(request: Request) -> None:
    """校验 Bearer token（未配置 MINDGATE_API_TOKEN 时放行）"""
    expected = getattr(request.app.state, "api_token", "")
    if not expected:
        return
    auth = request.headers.get("Authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
        raise HTTPException(
            status_code=401,
            detail={"error": "Invalid or missing API token", "code": "unauthorized"},
        )
