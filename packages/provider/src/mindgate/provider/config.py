"""ProviderConfig -- 网关配置加载

从环境变量加载 provider 选择、凭据、限流与重试参数。
非法的数值配置记录 warning 并回落默认值，不阻塞启动。
"""

import os
from typing import Any

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()

_TRUTHY = ("1", "true", "yes", "on")


class ProviderConfig(BaseModel):
    """网关配置 -- 从环境变量加载

    环境变量:
        MINDGATE_AI_PROVIDER: 默认 provider id（默认 openai）
        MINDGATE_FORCE_SIMULATED: 强制使用模拟 provider
        OPENAI_API_KEY / OPENAI_API_BASE: 联网 provider 凭据与地址
        MINDGATE_RPM / MINDGATE_TPM: 每分钟请求数 / token 数上限
        MINDGATE_RETRY_ATTEMPTS / MINDGATE_RETRY_DELAY_S: 重试次数与基础延迟
        MINDGATE_CACHE_RESULTS / MINDGATE_RESULT_CACHE_TTL_S: 分析结果缓存开关与时长
        MINDGATE_PRIVACY_MODE: 分析前剔除个人身份字段
    """

    default_provider: str = Field(default="openai", description="默认 provider id")
    force_simulated: bool = Field(
        default=False,
        description="强制默认 provider 为模拟 provider（开发/演示环境）",
    )

    # 联网 provider
    openai_api_key: SecretStr = Field(default=SecretStr(""), description="OpenAI API key")
    openai_api_base: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI 兼容接口基础 URL",
    )
    default_model: str = Field(default="gpt-4-turbo", description="联网 provider 默认模型")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="采样温度")
    max_tokens: int = Field(default=2000, ge=1, description="单次生成 token 上限")
    timeout_s: float = Field(default=30, gt=0, description="单次调用超时（秒）")
    availability_ttl_s: float = Field(
        default=3600, ge=0, description="可用性探测结果缓存时长（秒）"
    )

    # 限流
    requests_per_minute: int = Field(default=60, ge=1, description="每分钟请求上限")
    tokens_per_minute: int = Field(default=90000, ge=1, description="每分钟 token 上限")

    # 重试
    max_attempts: int = Field(default=3, ge=1, description="单次逻辑调用最大尝试次数")
    retry_base_delay_s: float = Field(default=1.0, ge=0.0, description="线性退避基础延迟")

    # 结果缓存与隐私
    cache_results: bool = Field(default=True, description="是否缓存成功的分析结果")
    result_cache_ttl_s: float = Field(default=3600, gt=0, description="分析结果缓存时长（秒）")
    privacy_mode: bool = Field(
        default=False,
        description="分析前剔除 name / email / phone / address 字段",
    )

    # 模拟 provider
    simulated_response_delay_s: float = Field(default=1.0, ge=0.0, description="模拟延迟")
    simulated_error_rate: float = Field(
        default=0, ge=0, le=100, description="模拟错误率（百分比）"
    )
    simulated_randomize: bool = Field(default=True, description="是否随机化模拟结果")


# 环境变量 -> (字段名, 类型转换)
_NUMERIC_ENV: dict[str, tuple[str, type]] = {
    "MINDGATE_AI_TEMPERATURE": ("temperature", float),
    "MINDGATE_AI_MAX_TOKENS": ("max_tokens", int),
    "MINDGATE_AI_TIMEOUT_S": ("timeout_s", float),
    "MINDGATE_AVAILABILITY_TTL_S": ("availability_ttl_s", float),
    "MINDGATE_RPM": ("requests_per_minute", int),
    "MINDGATE_TPM": ("tokens_per_minute", int),
    "MINDGATE_RETRY_ATTEMPTS": ("max_attempts", int),
    "MINDGATE_RETRY_DELAY_S": ("retry_base_delay_s", float),
    "MINDGATE_RESULT_CACHE_TTL_S": ("result_cache_ttl_s", float),
    "MINDGATE_SIMULATED_DELAY_S": ("simulated_response_delay_s", float),
    "MINDGATE_SIMULATED_ERROR_RATE": ("simulated_error_rate", float),
}


def _parse_bool(val: str) -> bool:
    return val.strip().lower() in _TRUTHY


def load_provider_config() -> ProviderConfig:
    """从环境变量加载网关配置

    Returns:
        ProviderConfig 实例
    """
    kwargs: dict[str, Any] = {}

    if val := os.environ.get("MINDGATE_AI_PROVIDER"):
        kwargs["default_provider"] = val.strip().lower()

    if val := os.environ.get("MINDGATE_FORCE_SIMULATED"):
        kwargs["force_simulated"] = _parse_bool(val)

    if val := os.environ.get("OPENAI_API_KEY"):
        kwargs["openai_api_key"] = SecretStr(val)

    if val := os.environ.get("OPENAI_API_BASE"):
        kwargs["openai_api_base"] = val.rstrip("/")

    if val := os.environ.get("MINDGATE_AI_MODEL"):
        kwargs["default_model"] = val

    if val := os.environ.get("MINDGATE_SIMULATED_RANDOMIZE"):
        kwargs["simulated_randomize"] = _parse_bool(val)

    if val := os.environ.get("MINDGATE_CACHE_RESULTS"):
        kwargs["cache_results"] = _parse_bool(val)

    if val := os.environ.get("MINDGATE_PRIVACY_MODE"):
        kwargs["privacy_mode"] = _parse_bool(val)

    defaults = ProviderConfig.model_fields
    for env_var, (field_name, cast) in _NUMERIC_ENV.items():
        if val := os.environ.get(env_var):
            try:
                kwargs[field_name] = cast(val)
            except ValueError:
                log.warning(
                    "invalid_numeric_config",
                    env_var=env_var,
                    value=val,
                    fallback=defaults[field_name].default,
                )
                # 使用默认值，不阻塞启动

    return ProviderConfig(**kwargs)
