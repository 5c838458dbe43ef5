"""CostTracker -- 成本估算与计算

估算：按 70% 输入 / 30% 输出拆分预估 token，保留 4 位小数。
实际成本：按产出模型的价格表惰性计算，保留 6 位小数。
未知模型成本为 0，所有方法不抛异常。
"""

import contextlib

import structlog

from .models import ModelInfo, TokenUsage

log = structlog.get_logger()

# 预估时输入 token 占比
INPUT_TOKEN_SHARE = 0.7


class CostTracker:
    """成本追踪器

    提供成本估算、实际成本计算、Token 解析等静态方法。
    """

    @staticmethod
    def estimate_cost(model_info: ModelInfo | None, estimated_tokens: int = 1000) -> float:
        """预估一次调用的 USD 成本

        Args:
            model_info: 模型价格信息，None 表示未知模型
            estimated_tokens: 预估总 token 数

        Returns:
            预估成本（4 位小数），未知模型返回 0.0
        """
        if model_info is None:
            return 0.0
        input_tokens = estimated_tokens * INPUT_TOKEN_SHARE
        output_tokens = estimated_tokens * (1 - INPUT_TOKEN_SHARE)
        cost = (input_tokens / 1000) * model_info.input_cost_per_1k + (
            output_tokens / 1000
        ) * model_info.output_cost_per_1k
        return round(cost, 4)

    @staticmethod
    def calculate_cost(
        prompt_tokens: int,
        completion_tokens: int,
        model_info: ModelInfo | None,
    ) -> float:
        """按实际 token 数计算 USD 成本

        Returns:
            实际成本（6 位小数），未知模型返回 0.0
        """
        if model_info is None:
            return 0.0
        cost = (prompt_tokens / 1000) * model_info.input_cost_per_1k + (
            completion_tokens / 1000
        ) * model_info.output_cost_per_1k
        return round(cost, 6)

    @staticmethod
    def parse_usage(response) -> TokenUsage:
        """从 chat completion 响应解析 token 使用数据

        Args:
            response: litellm ModelResponse 对象

        Returns:
            TokenUsage 实例（失败时返回全零）
        """
        try:
            usage = getattr(response, "usage", None)
            if usage is not None:
                prompt = getattr(usage, "prompt_tokens", 0) or 0
                completion = getattr(usage, "completion_tokens", 0) or 0
                total = getattr(usage, "total_tokens", 0) or prompt + completion
                return TokenUsage(
                    prompt_tokens=prompt,
                    completion_tokens=completion,
                    total_tokens=total,
                )
        except Exception as e:
            log.debug("parse_usage_failed", error=str(e))

        return TokenUsage()

    @staticmethod
    def extract_model_name(response, fallback: str = "") -> str:
        """从响应提取实际模型名称"""
        model_name = ""
        with contextlib.suppress(Exception):
            model_name = getattr(response, "model", "") or ""
        return model_name or fallback
