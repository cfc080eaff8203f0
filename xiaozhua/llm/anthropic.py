"""Anthropic Messages API (SSE)"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from ..errors import LLMError, StreamError, error_for_status
from ..events import (
    MessageEnd,
    StopReason,
    StreamEvent,
    TextDelta,
    ThinkingDelta,
    ToolUseEvent,
    UsageUpdate,
    parse_stop_reason,
)
from ..schema import (
    ChatRequest,
    ImageBlock,
    Message,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)
from .base import LLMProvider, parse_tool_input
from .sse import SSEEvent, iter_sse_events

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
CACHE_CONTROL = {"type": "ephemeral"}


class AnthropicStreamTranslator:
    """Anthropic SSE 事件 -> 统一事件

    状态：当前打开的内容块类型、正在累积的工具参数 JSON。
    message_delta 的用量先于 MessageEnd 发出，MessageEnd 只发一次。
    """

    def __init__(self):
        self._block_type: Optional[str] = None
        self._tool_id = ""
        self._tool_name = ""
        self._tool_json: List[str] = []
        self._ended = False

    def process(self, sse_event: SSEEvent) -> List[StreamEvent]:
        try:
            data = json.loads(sse_event.data)
        except json.JSONDecodeError:
            logger.warning("Skipping unparseable Anthropic event: %s", sse_event.data[:200])
            return []
        if not isinstance(data, dict):
            return []

        event_type = sse_event.event_type or data.get("type", "")
        handler = getattr(self, f"_on_{event_type}", None)
        if handler is None:
            # ping 等
            return []
        return handler(data)

    def _on_content_block_start(self, data: Dict[str, Any]) -> List[StreamEvent]:
        block = data.get("content_block") or {}
        block_type = block.get("type")
        self._block_type = block_type
        if block_type == "tool_use":
            self._tool_id = block.get("id", "")
            self._tool_name = block.get("name", "")
            self._tool_json = []
        return []

    def _on_content_block_delta(self, data: Dict[str, Any]) -> List[StreamEvent]:
        delta = data.get("delta") or {}
        delta_type = delta.get("type")
        if delta_type == "text_delta":
            text = delta.get("text", "")
            return [TextDelta(text=text)] if text else []
        if delta_type == "thinking_delta":
            thinking = delta.get("thinking", "")
            return [ThinkingDelta(text=thinking)] if thinking else []
        if delta_type == "input_json_delta":
            # 半截 JSON 不能解析，先累积
            self._tool_json.append(delta.get("partial_json", ""))
        return []

    def _on_content_block_stop(self, data: Dict[str, Any]) -> List[StreamEvent]:
        block_type, self._block_type = self._block_type, None
        if block_type != "tool_use":
            return []
        event = ToolUseEvent(
            id=self._tool_id,
            name=self._tool_name,
            input=parse_tool_input("".join(self._tool_json)),
        )
        self._tool_id = ""
        self._tool_name = ""
        self._tool_json = []
        return [event]

    def _on_message_start(self, data: Dict[str, Any]) -> List[StreamEvent]:
        usage = (data.get("message") or {}).get("usage") or {}
        update = UsageUpdate(
            input_tokens=usage.get("input_tokens") or 0,
            output_tokens=usage.get("output_tokens") or 0,
            cache_creation_input_tokens=usage.get("cache_creation_input_tokens") or 0,
            cache_read_input_tokens=usage.get("cache_read_input_tokens") or 0,
        )
        return [update] if update.has_tokens() else []

    def _on_message_delta(self, data: Dict[str, Any]) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        output_tokens = (data.get("usage") or {}).get("output_tokens") or 0
        if output_tokens > 0:
            events.append(UsageUpdate(output_tokens=output_tokens))
        stop_reason = (data.get("delta") or {}).get("stop_reason")
        if stop_reason and not self._ended:
            self._ended = True
            events.append(MessageEnd(stop_reason=parse_stop_reason(stop_reason)))
        return events

    def _on_message_stop(self, data: Dict[str, Any]) -> List[StreamEvent]:
        if self._ended:
            return []
        self._ended = True
        return [MessageEnd(stop_reason=StopReason.END_TURN)]

    def _on_error(self, data: Dict[str, Any]) -> List[StreamEvent]:
        message = (data.get("error") or {}).get("message") or "unknown error"
        raise StreamError(f"Anthropic stream error: {message}")


class AnthropicProvider(LLMProvider):
    """Anthropic Claude"""

    name = "anthropic"
    display_name = "Anthropic"
    default_base_url = "https://api.anthropic.com"

    def chat_url(self) -> str:
        return f"{self.base_url}/v1/messages"

    def headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def build_request_body(self, request: ChatRequest) -> Dict[str, Any]:
        messages = self._convert_messages(request.messages)
        tools = self._convert_tools(request.tools)

        body: Dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "stream": True,
        }

        if request.system_prompt:
            body["system"] = [
                {
                    "type": "text",
                    "text": request.system_prompt,
                    "cache_control": dict(CACHE_CONTROL),
                }
            ]

        if tools:
            body["tools"] = tools

        budget = request.thinking_budget or 0
        if budget > 0:
            # API 不允许 thinking 与 temperature 同时出现
            body["thinking"] = {"type": "enabled", "budget_tokens": budget}
            body["max_tokens"] = budget + request.max_tokens
        elif request.temperature is not None:
            body["temperature"] = request.temperature

        return body

    def classify_error(self, status: int, body: str) -> LLMError:
        if status in (401, 403):
            message = f"Anthropic auth error ({status}): {body}"
        elif status == 429:
            message = "Anthropic rate limit exceeded (429)"
        elif status == 529:
            message = "Anthropic API overloaded (529). Retry later."
        elif status == 402:
            message = f"Anthropic billing error (402): {body}"
        else:
            message = f"Anthropic API error ({status}): {body}"
        return error_for_status(message, status, body)

    async def translate(self, byte_stream: AsyncIterator[bytes]) -> AsyncIterator[StreamEvent]:
        translator = AnthropicStreamTranslator()
        async for sse_event in iter_sse_events(byte_stream):
            for event in translator.process(sse_event):
                yield event

    def _convert_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """转换消息格式，并在最后一条用户消息的最后一个块上打缓存断点"""
        result = [
            {"role": msg.role, "content": [self._convert_block(b) for b in msg.content]}
            for msg in messages
        ]

        for msg in reversed(result):
            if msg["role"] == "user" and msg["content"]:
                msg["content"][-1]["cache_control"] = dict(CACHE_CONTROL)
                break

        return result

    @staticmethod
    def _convert_block(block: Any) -> Dict[str, Any]:
        if isinstance(block, TextBlock):
            return {"type": "text", "text": block.text}
        if isinstance(block, ToolUseBlock):
            return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
        if isinstance(block, ToolResultBlock):
            converted: Dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": block.tool_use_id,
                "content": block.content,
            }
            if block.is_error:
                converted["is_error"] = True
            return converted
        if isinstance(block, ImageBlock):
            return {"type": "image", "source": block.source.model_dump()}
        raise TypeError(f"unsupported content block: {block!r}")

    @staticmethod
    def _convert_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
        result = [
            {"name": t.name, "description": t.description, "input_schema": t.input_schema}
            for t in tools
        ]
        if result:
            result[-1]["cache_control"] = dict(CACHE_CONTROL)
        return result
