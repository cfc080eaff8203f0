"""OpenAI 兼容 Chat Completions API (SSE)

OpenRouter / Together / Gemini 兼容端点也走这里。
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
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
)
from ..schema import ChatRequest, ImageBlock, Message, ToolDefinition
from .base import LLMProvider, parse_tool_input
from .sse import SSEEvent, iter_sse_events

logger = logging.getLogger(__name__)


def parse_finish_reason(reason: str) -> StopReason:
    if reason == "tool_calls":
        return StopReason.TOOL_USE
    if reason == "length":
        return StopReason.MAX_TOKENS
    return StopReason.END_TURN


@dataclass
class PendingToolCall:
    """按 index 累积的工具调用"""

    id: str = ""
    name: str = ""
    arguments: List[str] = field(default_factory=list)


class OpenAIStreamTranslator:
    """OpenAI SSE chunk -> 统一事件

    工具调用片段按数组 index 寻址，可能交错到达；
    finish_reason 为 tool_calls 时按 index 升序一次性发出。
    MessageEnd 推迟到 [DONE] (或流结束)，这样最后一个 usage chunk 会先于它发出。
    """

    def __init__(self):
        self._tool_calls: Dict[int, PendingToolCall] = {}
        self._stop_reason: Optional[StopReason] = None
        self._ended = False
        self.done = False

    def process(self, sse_event: SSEEvent) -> List[StreamEvent]:
        data = sse_event.data.strip()
        if data == "[DONE]":
            self.done = True
            return self.finish()

        try:
            chunk = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse OpenAI chunk: %s (%s)", data[:200], e)
            return []
        if not isinstance(chunk, dict):
            return []

        if chunk.get("error"):
            error = chunk["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise StreamError(f"OpenAI stream error: {message}")

        events: List[StreamEvent] = []

        for choice in chunk.get("choices") or []:
            delta = choice.get("delta") or {}

            reasoning = delta.get("reasoning_content")
            if reasoning:
                events.append(ThinkingDelta(text=reasoning))

            content = delta.get("content")
            if content:
                events.append(TextDelta(text=content))

            for tc in delta.get("tool_calls") or []:
                self._merge_tool_call(tc)

            finish_reason = choice.get("finish_reason")
            if finish_reason:
                reason = parse_finish_reason(finish_reason)
                if reason == StopReason.TOOL_USE:
                    events.extend(self._flush_tool_calls())
                self._stop_reason = reason

        usage = chunk.get("usage")
        if usage:
            prompt_tokens = usage.get("prompt_tokens") or 0
            completion_tokens = usage.get("completion_tokens") or 0
            if prompt_tokens > 0 or completion_tokens > 0:
                details = usage.get("prompt_tokens_details") or {}
                events.append(
                    UsageUpdate(
                        input_tokens=prompt_tokens,
                        output_tokens=completion_tokens,
                        cache_read_input_tokens=details.get("cached_tokens") or 0,
                    )
                )

        return events

    def finish(self) -> List[StreamEvent]:
        """发出推迟的 MessageEnd (只发一次)"""
        if self._ended or self._stop_reason is None:
            return []
        self._ended = True
        return [MessageEnd(stop_reason=self._stop_reason)]

    def _merge_tool_call(self, tc: Dict[str, Any]) -> None:
        index = tc.get("index", 0)
        pending = self._tool_calls.setdefault(index, PendingToolCall())
        if tc.get("id"):
            pending.id = tc["id"]
        function = tc.get("function") or {}
        if function.get("name"):
            pending.name = function["name"]
        if function.get("arguments"):
            pending.arguments.append(function["arguments"])

    def _flush_tool_calls(self) -> List[StreamEvent]:
        events: List[StreamEvent] = [
            ToolUseEvent(
                id=pending.id,
                name=pending.name,
                input=parse_tool_input("".join(pending.arguments)),
            )
            for _, pending in sorted(self._tool_calls.items())
        ]
        self._tool_calls.clear()
        return events


class OpenAIProvider(LLMProvider):
    """OpenAI 及兼容服务"""

    name = "openai"
    display_name = "OpenAI"
    default_base_url = "https://api.openai.com/v1"

    def chat_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def headers(self) -> Dict[str, str]:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"
        return headers

    def build_request_body(self, request: ChatRequest) -> Dict[str, Any]:
        messages: List[Dict[str, Any]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        for msg in request.messages:
            messages.extend(self._convert_message(msg))

        body: Dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.tools:
            body["tools"] = self._convert_tools(request.tools)
        return body

    def classify_error(self, status: int, body: str) -> LLMError:
        return error_for_status(f"OpenAI API error ({status}): {body}", status, body)

    async def translate(self, byte_stream: AsyncIterator[bytes]) -> AsyncIterator[StreamEvent]:
        translator = OpenAIStreamTranslator()
        async for sse_event in iter_sse_events(byte_stream):
            for event in translator.process(sse_event):
                yield event
            if translator.done:
                return
        for event in translator.finish():
            yield event

    @staticmethod
    def _convert_message(msg: Message) -> List[Dict[str, Any]]:
        if msg.role == "user":
            tool_results = msg.tool_results()
            if tool_results:
                # 每个结果一条 tool 消息
                return [
                    {"role": "tool", "tool_call_id": r.tool_use_id, "content": r.content}
                    for r in tool_results
                ]

            images = [b for b in msg.content if isinstance(b, ImageBlock)]
            if not images:
                return [{"role": "user", "content": msg.text()}]

            parts: List[Dict[str, Any]] = []
            text = msg.text()
            if text:
                parts.append({"type": "text", "text": text})
            for image in images:
                url = f"data:{image.source.media_type};base64,{image.source.data}"
                parts.append({"type": "image_url", "image_url": {"url": url}})
            return [{"role": "user", "content": parts}]

        result: Dict[str, Any] = {"role": "assistant"}
        text = msg.text()
        tool_calls = [
            {
                "id": tu.id,
                "type": "function",
                "function": {"name": tu.name, "arguments": json.dumps(tu.input)},
            }
            for tu in msg.tool_uses()
        ]
        if text or not tool_calls:
            result["content"] = text
        if tool_calls:
            result["tool_calls"] = tool_calls
        return [result]

    @staticmethod
    def _convert_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.input_schema,
                },
            }
            for t in tools
        ]
