"""错误类型

Provider 错误分类：
- 可重试错误 (速率限制 / 过载 / 服务繁忙)
- 致命错误 (认证 / 计费 / 请求错误)
- 流中错误 (SSE error 事件、读取失败、流未完整结束)

重试策略只看错误文本，见 is_retryable_error。
"""

from __future__ import annotations

from typing import Optional

# 可重试错误的文本特征
RETRYABLE_MARKERS = ("rate limit", "429", "overloaded", "529", "503")


class XiaozhuaError(Exception):
    """根异常"""

    pass


class ConfigError(XiaozhuaError):
    """配置错误"""

    pass


class SessionError(XiaozhuaError):
    """会话文件读写错误"""

    pass


class ImageError(XiaozhuaError):
    """图片无法附加 (格式不支持或文件过大)"""

    pass


class LLMError(XiaozhuaError):
    """LLM Provider 错误基类"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RetryableError(LLMError):
    """可重试错误基类

    只表示错误的类别。Agent 是否重试由 is_retryable_error 按错误文本决定，
    例如 500 / 502 / 504 的 ServerError 不会被重试，503 会。
    """

    pass


class RateLimitError(RetryableError):
    """速率限制 (429)"""

    pass


class OverloadedError(RetryableError):
    """服务过载 (529)"""

    pass


class ServerError(RetryableError):
    """服务器错误 (5xx)，只有文本含 503 时才重试"""

    pass


class AuthenticationError(LLMError):
    """认证错误 (不可重试)"""

    pass


class BillingError(LLMError):
    """计费错误 (不可重试)"""

    pass


class APIError(LLMError):
    """其他 API / 请求错误"""

    pass


class StreamError(LLMError):
    """流式响应中途出错，不会自动重试"""

    pass


def is_retryable_error(error: BaseException) -> bool:
    """按错误文本判断是否可重试，不看异常类型"""
    text = str(error).lower()
    return any(marker in text for marker in RETRYABLE_MARKERS)


def error_for_status(message: str, status: int, body: str = "") -> LLMError:
    """按 HTTP 状态码构造对应的错误类型"""
    if status in (401, 403):
        return AuthenticationError(message, status_code=status, body=body)
    if status == 402:
        return BillingError(message, status_code=status, body=body)
    if status == 429:
        return RateLimitError(message, status_code=status, body=body)
    if status == 529:
        return OverloadedError(message, status_code=status, body=body)
    if status >= 500:
        return ServerError(message, status_code=status, body=body)
    return APIError(message, status_code=status, body=body)
