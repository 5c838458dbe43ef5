"""网关日志配置

structlog 统一渲染网关自身与 litellm / httpx 的日志；
所有日志在渲染前经过 redact_sensitive，提示词内容与凭据不落日志。
MINDGATE_LOG_FORMAT=json 输出结构化 JSON，默认 dev 可读输出。
LOGFIRE_SEND_TO_LOGFIRE=true 时额外接入 Logfire。
"""

import logging
import os
from collections.abc import MutableMapping
from typing import Any

import structlog
from fastapi import FastAPI

REDACTED = "[REDACTED]"

# 值会被替换为 REDACTED 的日志字段（不区分大小写）
SENSITIVE_KEYS = frozenset(
    {
        "api_key",
        "openai_api_key",
        "authorization",
        "token",
        "content",
        "messages",
        "instructions",
        "prompt",
    }
)

# 上游 SDK 的调试日志会带出完整请求体
_NOISY_LOGGERS = ("litellm", "LiteLLM", "httpx", "httpcore")


def redact_sensitive(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor：屏蔽敏感字段的值"""
    for key in event_dict:
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
    return event_dict


def setup_logging() -> None:
    """初始化 structlog 与标准库 logging"""
    log_format = os.environ.get("MINDGATE_LOG_FORMAT", "dev")
    log_level = getattr(
        logging, os.environ.get("MINDGATE_LOG_LEVEL", "INFO").upper(), logging.INFO
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def setup_logfire(app: FastAPI) -> None:
    """按 LOGFIRE_SEND_TO_LOGFIRE 接入 Logfire（需安装 observability extra）"""
    if os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower() != "true":
        return
    try:
        import logfire

        logfire.configure(service_name="mindgate-gateway")
        logfire.instrument_fastapi(app)
    except Exception:
        structlog.get_logger().warning("logfire_init_failed", fallback="local_logging")
