"""客户端异常体系"""

from typing import Any


class ClientError(Exception):
    """客户端基础异常"""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ClientResponseError(ClientError):
    """网关返回非 2xx 响应"""

    def __init__(
        self,
        status: int,
        message: str,
        code: str | None = None,
        data: Any = None,
    ) -> None:
        """
        Args:
            status: HTTP 状态码
            message: 错误描述（取自响应体 error 字段）
            code: 网关错误码
            data: 完整响应体
        """
        super().__init__(message)
        self.status = status
        self.code = code
        self.data = data


class RateLimitedError(ClientResponseError):
    """被限流且未（或不再）自动重试"""

    def __init__(self, message: str, retry_after: float, data: Any = None) -> None:
        super().__init__(429, message, code="rate_limited", data=data)
        self.retry_after = retry_after


class AuthenticationError(ClientResponseError):
    """认证失败（401 / 403），需要刷新 token"""


class RequestTimeoutError(ClientError):
    """请求超时（不重试）"""


class NetworkError(ClientError):
    """网络错误，重试耗尽后抛出"""
