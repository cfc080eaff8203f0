"""Ollama 原生 /api/chat (NDJSON)"""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator, Dict, List

from ..errors import APIError, LLMError, StreamError, error_for_status
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
from .ndjson import iter_ndjson

logger = logging.getLogger(__name__)

DEFAULT_NUM_CTX = 65536


def resolve_chat_url(base_url: str) -> str:
    """去掉末尾的 / 和 OpenAI 兼容的 /v1 后缀，拼上 /api/chat"""
    base = base_url.rstrip("/")
    if base.endswith("/v1"):
        base = base[: -len("/v1")]
    return f"{base}/api/chat"


class OllamaStreamTranslator:
    """Ollama NDJSON 记录 -> 统一事件

    工具调用可能出现在任意 done:false 的记录里，全部累积，
    直到 done:true 才一次性发出，随后是用量和 MessageEnd。
    """

    def __init__(self):
        self._tool_calls: List[Dict[str, Any]] = []
        self.finished = False

    def process(self, record: Dict[str, Any]) -> List[StreamEvent]:
        if record.get("error"):
            raise StreamError(f"Ollama stream error: {record['error']}")

        events: List[StreamEvent] = []
        message = record.get("message") or {}

        thinking = message.get("thinking")
        if thinking:
            events.append(ThinkingDelta(text=thinking))

        content = message.get("content")
        if content:
            events.append(TextDelta(text=content))

        for tc in message.get("tool_calls") or []:
            self._tool_calls.append(tc)

        if record.get("done"):
            events.extend(self._final_events(record))
            self.finished = True

        return events

    def _final_events(self, record: Dict[str, Any]) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        for tc in self._tool_calls:
            function = tc.get("function") or {}
            arguments = function.get("arguments", {})
            if isinstance(arguments, str):
                arguments = parse_tool_input(arguments)
            events.append(
                ToolUseEvent(
                    id=f"ollama_call_{uuid.uuid4().hex}",
                    name=function.get("name", ""),
                    input=arguments,
                )
            )

        prompt_tokens = record.get("prompt_eval_count") or 0
        eval_tokens = record.get("eval_count") or 0
        if prompt_tokens > 0 or eval_tokens > 0:
            events.append(UsageUpdate(input_tokens=prompt_tokens, output_tokens=eval_tokens))

        stop_reason = StopReason.TOOL_USE if self._tool_calls else StopReason.END_TURN
        self._tool_calls = []
        events.append(MessageEnd(stop_reason=stop_reason))
        return events


class OllamaProvider(LLMProvider):
    """本地 Ollama"""

    name = "ollama"
    display_name = "Ollama"
    default_base_url = "http://127.0.0.1:11434"
    timeout = 600.0

    def chat_url(self) -> str:
        return resolve_chat_url(self.base_url)

    def build_request_body(self, request: ChatRequest) -> Dict[str, Any]:
        messages: List[Dict[str, Any]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        for msg in request.messages:
            messages.extend(self._convert_message(msg))

        options: Dict[str, Any] = {"num_ctx": DEFAULT_NUM_CTX}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        options["num_predict"] = request.max_tokens

        body: Dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "stream": True,
            "options": options,
        }
        if request.tools:
            body["tools"] = self._convert_tools(request.tools)
        return body

    def classify_error(self, status: int, body: str) -> LLMError:
        return error_for_status(f"Ollama API error ({status}): {body}", status, body)

    def request_failed(self, error: Exception) -> LLMError:
        return APIError(f"Ollama request failed: {error}")

    async def translate(self, byte_stream: AsyncIterator[bytes]) -> AsyncIterator[StreamEvent]:
        translator = OllamaStreamTranslator()
        async for record in iter_ndjson(byte_stream):
            for event in translator.process(record):
                yield event
            if translator.finished:
                return
        raise StreamError("Ollama stream ended without final response")

    @staticmethod
    def _convert_message(msg: Message) -> List[Dict[str, Any]]:
        if msg.role == "user":
            tool_results = msg.tool_results()
            if tool_results:
                # Ollama 没有 tool_call_id，按顺序对应
                return [{"role": "tool", "content": r.content} for r in tool_results]
            converted: Dict[str, Any] = {"role": "user", "content": msg.text()}
            images = [b.source.data for b in msg.content if isinstance(b, ImageBlock)]
            if images:
                converted["images"] = images
            return [converted]

        converted = {"role": "assistant", "content": msg.text()}
        tool_calls = [
            {"function": {"name": tu.name, "arguments": tu.input}} for tu in msg.tool_uses()
        ]
        if tool_calls:
            converted["tool_calls"] = tool_calls
        return [converted]

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
