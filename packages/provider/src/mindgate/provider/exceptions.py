"""网关异常体系

ConfigurationError 致命不重试；RateLimitExceeded 携带等待提示；
ProviderTransientError 由重试执行器内部重试；ProviderPermanentError 立即上抛。
响应解析失败不属于异常，降级为 text 格式的成功结果。
"""


class GatewayError(Exception):
    """网关基础异常"""

    code = "provider_error"

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过等待或重试恢复
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class ConfigurationError(GatewayError):
    """配置错误（未知 provider、缺少凭据等），不重试"""

    code = "configuration_error"

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)


class RateLimitExceeded(GatewayError):
    """本地配额耗尽，调用方应在 wait_hint 秒后再试"""

    code = "rate_limited"

    def __init__(self, message: str, wait_hint: float) -> None:
        """
        Args:
            message: 错误描述
            wait_hint: 建议等待秒数（到下一个分钟窗口的剩余时间）
        """
        super().__init__(message, recoverable=True)
        self.wait_hint = wait_hint


class ProviderTransientError(GatewayError):
    """上游临时错误（429 / 5xx / 网络 / 超时），可重试"""

    code = "provider_unavailable"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        """
        Args:
            message: 错误描述
            status_code: 上游 HTTP 状态码（网络错误时为 None）
            retry_after: 上游给出的等待提示（秒）
        """
        super().__init__(message, recoverable=True)
        self.status_code = status_code
        self.retry_after = retry_after


class ProviderPermanentError(GatewayError):
    """上游永久错误（其他 4xx、响应缺少必需字段），不重试"""

    code = "provider_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, recoverable=False)
        self.status_code = status_code
