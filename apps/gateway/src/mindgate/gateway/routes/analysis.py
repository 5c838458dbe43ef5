"""分析 API 路由

POST /api/analyze: 执行分析
POST /api/recommendations: 个性化建议
GET /api/estimate-cost: 预估成本
GET /api/usage: 用量统计
GET /api/providers: provider 列表与可用性

错误码到 HTTP 状态码的映射见 STATUS_BY_CODE；限流响应携带
Retry-After / X-RateLimit-Reset，成功的分析响应携带 X-RateLimit-* 配额头。
"""

import math
from typing import Any

from fastapi import APIRouter, Depends, Query
from mindgate.provider import AnalysisError, AnalysisOutcome
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_gateway, require_api_token
from ..services.analysis_service import AnalysisGateway

router = APIRouter(prefix="/api", dependencies=[Depends(require_api_token)])

STATUS_BY_CODE = {
    "invalid_request": 400,
    "unauthorized": 401,
    "rate_limited": 429,
    "configuration_error": 503,
    "provider_unavailable": 502,
    "provider_error": 502,
    "internal_error": 500,
}


class AnalyzeParams(BaseModel):
    """分析参数"""

    type: str = Field(default="episode_analysis", description="分析类型")
    model: str | None = Field(default=None, description="目标模型")
    instructions: str | None = Field(default=None, description="附加指令")
    conversation_id: str | None = Field(default=None, description="会话标识")
    provider: str | None = Field(default=None, description="provider id，默认使用配置值")
    options: dict[str, Any] = Field(default_factory=dict, description="provider 附加参数")


class AnalyzeBody(BaseModel):
    """POST /api/analyze 请求体"""

    content: dict[str, Any] = Field(default_factory=dict)
    params: AnalyzeParams = Field(default_factory=AnalyzeParams)
    user_id: str = Field(default="anonymous", min_length=1)


class RecommendationsBody(BaseModel):
    """POST /api/recommendations 请求体"""

    user_id: str = Field(min_length=1)
    context: str = "general"
    recent_activity: Any = None


def error_response(error: AnalysisError) -> JSONResponse:
    """AnalysisError -> JSONResponse"""
    headers = {}
    if error.retry_after is not None:
        wait = str(max(math.ceil(error.retry_after), 0))
        headers["Retry-After"] = wait
        if error.code == "rate_limited":
            headers["X-RateLimit-Reset"] = wait
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(error.code, 500),
        content=error.to_envelope(),
        headers=headers,
    )


async def _outcome_response(
    outcome: AnalysisOutcome,
    gateway: AnalysisGateway,
    provider: str | None,
) -> JSONResponse:
    if isinstance(outcome, AnalysisError):
        return error_response(outcome)

    headers = {}
    status = await gateway.rate_limit_status(provider)
    if status is not None:
        headers = {
            "X-RateLimit-Limit": str(status.limit),
            "X-RateLimit-Remaining": str(status.remaining),
            "X-RateLimit-Reset": str(status.reset),
        }
    return JSONResponse(content=outcome.to_envelope(), headers=headers)


@router.post("/analyze")
async def analyze(
    body: AnalyzeBody,
    gateway: AnalysisGateway = Depends(get_gateway),
):
    """执行一次分析"""
    params = body.params.model_dump(exclude_none=True)
    outcome = await gateway.analyze(body.content, params, user_id=body.user_id)
    return await _outcome_response(outcome, gateway, body.params.provider)


@router.post("/recommendations")
async def recommendations(
    body: RecommendationsBody,
    gateway: AnalysisGateway = Depends(get_gateway),
):
    """生成个性化建议"""
    outcome = await gateway.get_recommendations(
        body.user_id,
        body.context,
        recent_activity=body.recent_activity,
    )
    return await _outcome_response(outcome, gateway, None)


@router.get("/estimate-cost")
async def estimate_cost(
    model: str | None = Query(default=None),
    estimated_tokens: int | None = Query(default=None, ge=0),
    analysis_type: str | None = Query(
        default=None, alias="type", description="分析类型，未给出 token 数时用于估算"
    ),
    provider: str | None = Query(default=None),
    gateway: AnalysisGateway = Depends(get_gateway),
):
    """预估调用成本（USD）"""
    params = {
        "model": model,
        "estimated_tokens": estimated_tokens,
        "type": analysis_type,
        "provider": provider,
    }
    cost = gateway.estimate_cost(params)
    if isinstance(cost, AnalysisError):
        return error_response(cost)
    return {
        "estimated_cost": cost,
        "estimated_tokens": gateway.resolve_estimated_tokens(params),
        "model": model,
    }


@router.get("/usage")
async def usage(
    period: str = Query(default="today"),
    user_id: str | None = Query(default=None),
    gateway: AnalysisGateway = Depends(get_gateway),
):
    """按周期汇总用量与成本"""
    stats = await gateway.get_usage_stats(period, user_id=user_id)
    if isinstance(stats, AnalysisError):
        return error_response(stats)
    return stats


@router.get("/providers")
async def providers(gateway: AnalysisGateway = Depends(get_gateway)):
    """provider 列表与可用性"""
    return {"providers": await gateway.list_providers()}
