"""错误分类测试"""

import pytest

from xiaozhua.errors import (
    APIError,
    AuthenticationError,
    OverloadedError,
    RateLimitError,
    RetryableError,
    ServerError,
    error_for_status,
    is_retryable_error,
)


class TestErrorForStatus:
    """状态码到错误类型的映射"""

    @pytest.mark.parametrize(
        "status,error_type",
        [
            (401, AuthenticationError),
            (429, RateLimitError),
            (529, OverloadedError),
            (500, ServerError),
            (503, ServerError),
            (404, APIError),
        ],
    )
    def test_mapping(self, status, error_type):
        """测试类型、状态码和响应体"""
        error = error_for_status("failed", status, "body")
        assert type(error) is error_type
        assert error.status_code == status
        assert error.body == "body"


class TestIsRetryable:
    """按文本判断是否可重试"""

    @pytest.mark.parametrize(
        "message",
        [
            "Anthropic rate limit exceeded (429)",
            "OpenAI API error (429): slow down",
            "Anthropic API overloaded (529). Retry later.",
            "Ollama API error (503): busy",
            "Server is OVERLOADED",
        ],
    )
    def test_retryable(self, message):
        """测试可重试的文本特征，大小写无关"""
        assert is_retryable_error(APIError(message)) is True

    @pytest.mark.parametrize(
        "message",
        [
            "Anthropic auth error (401): bad key",
            "Anthropic API error (400): bad request",
            "Anthropic API error (500): internal",
            "Ollama API error (502): gateway",
        ],
    )
    def test_not_retryable(self, message):
        """测试其他错误不重试"""
        assert is_retryable_error(APIError(message)) is False

    def test_text_decides_not_type(self):
        """测试是否重试只看文本：500 的 ServerError 不重试，503 的重试"""
        assert isinstance(error_for_status("x", 500), RetryableError)
        assert is_retryable_error(error_for_status("Anthropic API error (500): x", 500)) is False
        assert is_retryable_error(error_for_status("Anthropic API error (503): x", 503)) is True
