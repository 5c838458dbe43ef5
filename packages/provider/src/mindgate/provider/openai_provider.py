"""OpenAIProvider -- 联网 provider

通过 litellm.acompletion() 调用 OpenAI 兼容的 chat completions 接口。
重试由网关的 RetryExecutor 统一负责，这里关闭 SDK 自带重试。
可用性 = 配置了 API key 且 GET /models 探测成功，探测结果按 TTL 缓存。
"""

import json
import time

import httpx
import structlog
from litellm import acompletion

from .base import AIProvider
from .cost import CostTracker
from .exceptions import ProviderPermanentError
from .models import (
    AnalysisRequest,
    AnalysisResult,
    ModelInfo,
    ResultFormat,
)

log = structlog.get_logger()

# 可用性探测超时（硬编码，应快速响应）
AVAILABILITY_CHECK_TIMEOUT_S = 5

OPENAI_MODELS = {
    "gpt-4-turbo": ModelInfo(
        name="GPT-4 Turbo",
        max_tokens=128000,
        input_cost_per_1k=0.01,
        output_cost_per_1k=0.03,
        is_default=True,
    ),
    "gpt-4": ModelInfo(
        name="GPT-4",
        max_tokens=8192,
        input_cost_per_1k=0.03,
        output_cost_per_1k=0.06,
    ),
    "gpt-3.5-turbo": ModelInfo(
        name="GPT-3.5 Turbo",
        max_tokens=16385,
        input_cost_per_1k=0.001,
        output_cost_per_1k=0.002,
    ),
}


class OpenAIProvider(AIProvider):
    """OpenAI provider

    封装 litellm.acompletion() 调用，要求 JSON 对象输出；
    非 JSON 响应降级为 text 格式结果。
    """

    provider_id = "openai"
    display_name = "OpenAI GPT"
    capabilities = {"network": True, "structured_output": True, "cost_tracking": True}

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://api.openai.com/v1",
        default_model: str = "gpt-4-turbo",
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout_s: float = 30,
        availability_ttl_s: float = 3600,
        http_transport: httpx.AsyncBaseTransport | None = None,
        clock=time.monotonic,
    ) -> None:
        """初始化 OpenAI provider

        Args:
            api_key: OpenAI API key
            api_base: 接口基础 URL
            default_model: 请求未指定模型时使用的模型
            temperature: 采样温度
            max_tokens: 单次生成 token 上限
            timeout_s: 单次调用超时（秒）
            availability_ttl_s: 可用性探测结果缓存时长（秒）
            http_transport: 可用性探测使用的 httpx transport（测试注入）
            clock: 单调时钟
        """
        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._default_model = default_model if default_model in OPENAI_MODELS else "gpt-4-turbo"
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout_s = timeout_s
        self._availability_ttl_s = availability_ttl_s
        self._http_transport = http_transport
        self._clock = clock
        self._availability: tuple[float, bool] | None = None

    def get_models(self) -> dict[str, ModelInfo]:
        return dict(OPENAI_MODELS)

    def default_model(self) -> str:
        return self._default_model

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """发送 chat completion 请求

        Raises:
            ProviderPermanentError: 响应缺少 choices[0].message.content
            Exception: litellm / httpx 原始异常，由 RetryExecutor 分类
        """
        model = request.model if request.model in OPENAI_MODELS else self._default_model
        messages = request.messages or [
            {"role": "user", "content": json.dumps(request.content, ensure_ascii=False)}
        ]

        start_time = time.monotonic()
        log.debug(
            "openai_call_start",
            model=model,
            analysis_type=request.analysis_type,
            message_count=len(messages),
        )

        response = await acompletion(
            model=f"openai/{model}",
            messages=messages,
            api_base=self._api_base,
            api_key=self._api_key,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            timeout=self._timeout_s,
            response_format={"type": "json_object"},
            max_retries=0,
        )

        duration_ms = int((time.monotonic() - start_time) * 1000)

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise ProviderPermanentError("Invalid response format from OpenAI") from e
        if content is None:
            raise ProviderPermanentError("Invalid response format from OpenAI")

        usage = CostTracker.parse_usage(response)
        log.info(
            "openai_call_completed",
            model=model,
            duration_ms=duration_ms,
            total_tokens=usage.total_tokens,
        )

        result_kwargs = {
            "type": request.analysis_type.value,
            "model": model,
            "usage": usage,
            "provider": self.provider_id,
        }
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, (dict, list)):
            return AnalysisResult(data=parsed, format=ResultFormat.STRUCTURED, **result_kwargs)

        # 非 JSON 或标量 JSON：降级为文本结果
        log.info("openai_response_not_json", model=model)
        return AnalysisResult(content=content, format=ResultFormat.TEXT, **result_kwargs)

    async def check_availability(self) -> bool:
        """检查 API 可达性

        未配置 API key 直接返回 False；否则探测 GET {api_base}/models，
        结果在 availability_ttl_s 内复用。此方法不抛出异常。
        """
        if not self._api_key:
            return False

        now = self._clock()
        if self._availability is not None:
            checked_at, available = self._availability
            if now - checked_at < self._availability_ttl_s:
                return available

        url = f"{self._api_base}/models"
        try:
            async with httpx.AsyncClient(transport=self._http_transport) as http_client:
                resp = await http_client.get(
                    url,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    timeout=AVAILABILITY_CHECK_TIMEOUT_S,
                )
                available = resp.status_code == 200
        except Exception as e:
            log.debug("availability_check_failed", url=url, error=str(e))
            available = False

        self._availability = (now, available)
        return available
