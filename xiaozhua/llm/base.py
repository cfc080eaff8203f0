"""LLM Provider 基类"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..errors import APIError, LLMError, StreamError
from ..events import StreamEvent
from ..schema import ChatRequest

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0


class LLMProvider(ABC):
    """LLM Provider 抽象基类

    子类只负责三件事：构建请求体、分类 HTTP 错误、把响应字节流翻译成统一事件。
    发送请求、读取流、关闭连接都在这里完成。
    """

    name: str = "llm"
    display_name: str = "LLM"
    default_base_url: str = ""
    timeout: float = 300.0

    def __init__(
        self,
        api_key: str = "",
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or ""
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=CONNECT_TIMEOUT),
        )

    @abstractmethod
    def build_request_body(self, request: ChatRequest) -> Dict[str, Any]:
        """构建 Provider 专用的 JSON 请求体"""
        pass

    @abstractmethod
    def chat_url(self) -> str:
        """请求地址"""
        pass

    @abstractmethod
    def classify_error(self, status: int, body: str) -> LLMError:
        """把 HTTP 错误状态转换成类型化错误"""
        pass

    @abstractmethod
    def translate(self, byte_stream: AsyncIterator[bytes]) -> AsyncIterator[StreamEvent]:
        """把响应字节流翻译成统一事件流"""
        pass

    def headers(self) -> Dict[str, str]:
        return {"content-type": "application/json"}

    def request_failed(self, error: Exception) -> LLMError:
        return APIError(f"{self.display_name} request failed: {error}")

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """发送请求并返回事件流

        建立连接或收到错误状态码时直接抛出 (可以在外层重试)；
        流读取过程中的错误由返回的迭代器抛出 StreamError。
        """
        body = self.build_request_body(request)
        url = self.chat_url()
        logger.debug("POST %s model=%s messages=%d", url, request.model, len(request.messages))

        http_request = self._client.build_request("POST", url, json=body, headers=self.headers())
        try:
            response = await self._client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            raise self.request_failed(e) from e

        if response.status_code >= 400:
            try:
                raw = await response.aread()
            except httpx.HTTPError as e:
                raise self.request_failed(e) from e
            finally:
                await response.aclose()
            raise self.classify_error(response.status_code, raw.decode("utf-8", errors="replace"))

        return self._iter_events(response)

    async def _iter_events(self, response: httpx.Response) -> AsyncIterator[StreamEvent]:
        try:
            async for event in self.translate(response.aiter_bytes()):
                yield event
        except httpx.HTTPError as e:
            raise StreamError(f"{self.display_name} stream read failed: {e}") from e
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def parse_tool_input(raw: str) -> Any:
    """解析累积的工具参数 JSON

    空字符串视为无参数；无法解析时返回带 _parse_error 和 _raw_args 的对象。
    """
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse tool arguments: %s", e)
        return {"_parse_error": str(e), "_raw_args": raw}
