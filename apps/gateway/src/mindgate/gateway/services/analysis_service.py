"""AnalysisGateway -- 网关门面

组合 provider 注册表、模板、限流器、重试执行器、用量账本和会话历史，
对外提供 analyze / get_recommendations / estimate_cost / get_usage_stats。

处理链：解析 provider -> 隐私字段剔除 -> 结果缓存查询 -> 渲染提示词
-> 限流检查（快速拒绝）-> 经 RetryExecutor 调用
-> 成功后更新账本、限流计数、会话历史和结果缓存。
缓存命中直接返回，不消耗配额也不记账；错误结果从不缓存。
异常不越过门面边界：所有公开操作返回成功结果或 AnalysisError。
"""

import hashlib
import json
from typing import Any

import structlog
from mindgate.core.store import KVStore
from mindgate.provider import (
    AnalysisError,
    AnalysisOutcome,
    AnalysisRequest,
    AnalysisResult,
    AnalysisType,
    ConversationHistoryStore,
    ConversationTurn,
    GatewayError,
    PromptTemplateStore,
    ProviderConfig,
    ProviderRegistry,
    RateLimiter,
    RateLimitStatus,
    RetryExecutor,
    UsageLedger,
)
from pydantic import ValidationError

log = structlog.get_logger()

DEFAULT_ESTIMATED_TOKENS = 1000

# 未指定 estimated_tokens 时按分析类型估算
ESTIMATED_TOKENS_BY_TYPE: dict[AnalysisType, int] = {
    AnalysisType.EPISODE_ANALYSIS: 500,
    AnalysisType.PATTERN_ANALYSIS: 2000,
    AnalysisType.INSIGHT_GENERATION: 1500,
    AnalysisType.RECOMMENDATIONS: 1000,
}

# 隐私模式下从分析内容顶层剔除的字段
PRIVATE_FIELDS = ("name", "email", "phone", "address")

RESULT_CACHE_PREFIX = "result:"


def _error_from(e: GatewayError) -> AnalysisError:
    retry_after = getattr(e, "wait_hint", None)
    if retry_after is None:
        retry_after = getattr(e, "retry_after", None)
    return AnalysisError(error=e.message, code=e.code, retry_after=retry_after)


def _invalid(message: str) -> AnalysisError:
    return AnalysisError(error=message, code="invalid_request")


def _internal(operation: str) -> AnalysisError:
    log.exception("gateway_internal_error", operation=operation)
    return AnalysisError(error="Internal gateway error", code="internal_error")


def anonymize(content: dict[str, Any]) -> dict[str, Any]:
    """剔除内容中的个人身份字段（仅顶层）"""
    return {key: value for key, value in content.items() if key not in PRIVATE_FIELDS}


def result_cache_key(provider_id: str, request: AnalysisRequest) -> str:
    """结果缓存键：对 provider、类型、模型、内容、指令和附加参数做 sha256"""
    material = json.dumps(
        [
            provider_id,
            request.analysis_type,
            request.model,
            request.content,
            request.instructions,
            request.options,
        ],
        sort_keys=True,
        ensure_ascii=False,
        default=str,
    )
    return RESULT_CACHE_PREFIX + hashlib.sha256(material.encode()).hexdigest()


class AnalysisGateway:
    """网关门面，启动时构造一次，协作组件显式注入

    result_cache 为 None 时不缓存分析结果。
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        templates: PromptTemplateStore,
        rate_limiter: RateLimiter,
        executor: RetryExecutor,
        ledger: UsageLedger,
        history: ConversationHistoryStore,
        result_cache: KVStore | None = None,
        result_cache_ttl_s: float = 3600,
        privacy_mode: bool = False,
    ) -> None:
        self.registry = registry
        self.templates = templates
        self.rate_limiter = rate_limiter
        self.executor = executor
        self.ledger = ledger
        self.history = history
        self.result_cache = result_cache
        self.result_cache_ttl_s = result_cache_ttl_s
        self.privacy_mode = privacy_mode

    async def analyze(
        self,
        content: dict[str, Any],
        params: dict[str, Any],
        user_id: str = "anonymous",
    ) -> AnalysisOutcome:
        """执行一次分析

        Args:
            content: 结构化分析内容
            params: {type, model?, instructions?, conversation_id?, provider?, options?}
            user_id: 请求主体

        Returns:
            AnalysisResult 或 AnalysisError
        """
        try:
            return await self._analyze(content, params, user_id)
        except GatewayError as e:
            return _error_from(e)
        except ValidationError as e:
            return _invalid(f"Invalid analysis request: {e.errors()[0]['msg']}")
        except Exception:
            return _internal("analyze")

    async def _analyze(
        self,
        content: dict[str, Any],
        params: dict[str, Any],
        user_id: str,
    ) -> AnalysisOutcome:
        raw_type = params.get("type") or AnalysisType.EPISODE_ANALYSIS
        try:
            analysis_type = AnalysisType(raw_type)
        except ValueError:
            return _invalid(f"Unknown analysis type: {raw_type}")

        provider = self.registry.resolve(params.get("provider"))
        if self.privacy_mode and isinstance(content, dict):
            content = anonymize(content)
        request = AnalysisRequest(
            content=content,
            analysis_type=analysis_type,
            instructions=params.get("instructions"),
            model=params.get("model"),
            user_id=user_id,
            conversation_id=params.get("conversation_id"),
            options=params.get("options") or {},
        )
        scope = provider.provider_id

        # 会话内的结果依赖历史，不走缓存
        cache_key = None
        if self.result_cache is not None and not request.conversation_id:
            cache_key = result_cache_key(scope, request)
            cached = await self.result_cache.get(cache_key)
            if cached is not None:
                log.info(
                    "analysis_cache_hit",
                    provider=scope,
                    analysis_type=request.analysis_type,
                    user_id=user_id,
                )
                return AnalysisResult.model_validate(cached)

        messages = self.templates.render(request.analysis_type, content, request.instructions)
        if request.conversation_id:
            prior = await self.history.get(request.conversation_id)
            messages[1:1] = [{"role": turn.role, "content": turn.content} for turn in prior]
        request.messages = messages

        prompt_text = "\n".join(message["content"] for message in messages)
        await self.rate_limiter.check(scope, prompt_text)

        log.info(
            "analysis_dispatched",
            provider=scope,
            analysis_type=request.analysis_type,
            model=request.model,
            user_id=user_id,
        )
        result = await self.executor.execute(
            lambda: provider.analyze(request),
            label=f"{scope}:{request.analysis_type}",
        )

        try:
            await self._record_success(request, result, messages[-1]["content"], scope)
        except Exception:
            # 记账失败不影响已成功的调用结果
            log.exception("usage_accounting_failed", provider=scope, user_id=user_id)
        if cache_key is not None:
            try:
                await self.result_cache.set(
                    cache_key,
                    result.model_dump(mode="json"),
                    ttl_s=self.result_cache_ttl_s,
                )
            except Exception:
                log.exception("result_cache_write_failed", provider=scope)
        log.info(
            "analysis_completed",
            provider=scope,
            analysis_type=request.analysis_type,
            model=result.model,
            format=result.format,
            total_tokens=result.usage.total_tokens,
        )
        return result

    async def _record_success(
        self,
        request: AnalysisRequest,
        result: AnalysisResult,
        user_prompt: str,
        scope: str,
    ) -> None:
        """首次成功后更新账本、限流计数和会话历史（每次逻辑调用仅一次）"""
        await self.ledger.record(request.user_id, result.model, result.usage)
        await self.rate_limiter.record(scope, result.usage)
        if request.conversation_id:
            if result.data is not None:
                reply = json.dumps(result.data, ensure_ascii=False)
            else:
                reply = result.content or ""
            await self.history.extend(
                request.conversation_id,
                [
                    ConversationTurn(role="user", content=user_prompt),
                    ConversationTurn(role="assistant", content=reply),
                ],
            )

    async def get_recommendations(
        self,
        user_id: str,
        context: str = "general",
        recent_activity: Any = None,
    ) -> AnalysisOutcome:
        """生成个性化建议"""
        content: dict[str, Any] = {"context": context}
        if recent_activity is not None:
            content["recent_activity"] = recent_activity
        return await self.analyze(
            content,
            {"type": AnalysisType.RECOMMENDATIONS, "options": {"context": context}},
            user_id=user_id,
        )

    @staticmethod
    def resolve_estimated_tokens(params: dict[str, Any]) -> int:
        """确定预估 token 数：显式值优先（0 合法），否则按分析类型取默认值

        Raises:
            ValueError: estimated_tokens 非整数或为负，或分析类型未知
        """
        raw = params.get("estimated_tokens")
        if raw is None:
            raw_type = params.get("type")
            if not raw_type:
                return DEFAULT_ESTIMATED_TOKENS
            try:
                analysis_type = AnalysisType(raw_type)
            except ValueError:
                raise ValueError(f"Unknown analysis type: {raw_type}") from None
            return ESTIMATED_TOKENS_BY_TYPE.get(analysis_type, DEFAULT_ESTIMATED_TOKENS)
        try:
            estimated_tokens = int(raw)
        except (TypeError, ValueError):
            raise ValueError("estimated_tokens must be an integer") from None
        if estimated_tokens < 0:
            raise ValueError("estimated_tokens must be non-negative")
        return estimated_tokens

    def estimate_cost(self, params: dict[str, Any]) -> float | AnalysisError:
        """预估调用成本

        Args:
            params: {model?, estimated_tokens?, type?, provider?}
        """
        try:
            estimated_tokens = self.resolve_estimated_tokens(params)
        except ValueError as e:
            return _invalid(str(e))
        try:
            provider = self.registry.resolve(params.get("provider"))
            return provider.estimate_cost(params.get("model"), estimated_tokens)
        except GatewayError as e:
            return _error_from(e)
        except Exception:
            return _internal("estimate_cost")

    async def get_usage_stats(
        self,
        period: str = "today",
        user_id: str | None = None,
    ) -> dict[str, Any] | AnalysisError:
        """按周期汇总分模型用量与成本"""
        try:
            return await self.ledger.get_stats(
                period,
                user_id=user_id,
                price_table=self.registry.price_table(),
            )
        except ValueError as e:
            return _invalid(str(e))
        except Exception:
            return _internal("get_usage_stats")

    async def rate_limit_status(self, provider_id: str | None = None) -> RateLimitStatus | None:
        """当前限流窗口状态，provider 无法解析时返回 None"""
        try:
            provider = self.registry.resolve(provider_id)
        except GatewayError:
            return None
        return await self.rate_limiter.status(provider.provider_id)

    async def list_providers(self) -> list[dict[str, Any]]:
        """列出已注册 provider 及其可用性"""
        providers = []
        for pid in self.registry.provider_ids:
            descriptor = self.registry.describe(pid)
            try:
                available = await self.registry.resolve(pid).check_availability()
            except GatewayError:
                available = False
            providers.append(
                {
                    **descriptor.model_dump(mode="json"),
                    "available": available,
                    "default": pid == self.registry.default_provider_id,
                }
            )
        return providers


def build_gateway(store: KVStore, config: ProviderConfig) -> AnalysisGateway:
    """按配置组装网关门面及其协作组件"""
    return AnalysisGateway(
        registry=ProviderRegistry(config),
        templates=PromptTemplateStore(),
        rate_limiter=RateLimiter(
            store,
            requests_per_minute=config.requests_per_minute,
            tokens_per_minute=config.tokens_per_minute,
        ),
        executor=RetryExecutor(
            max_attempts=config.max_attempts,
            base_delay_s=config.retry_base_delay_s,
        ),
        ledger=UsageLedger(store),
        history=ConversationHistoryStore(store),
        result_cache=store if config.cache_results else None,
        result_cache_ttl_s=config.result_cache_ttl_s,
        privacy_mode=config.privacy_mode,
    )
