"""
小爪 Agent 核心

一轮对话的状态机：
压缩(可选) -> 请求 -> 流式接收 -> 判断 -> 执行工具 -> 回到请求 ... -> 完成

1. 流获取带重试 - 只重试可重试错误，指数退避
2. 流式接收 - 文本实时输出，思考走旁路，工具调用先缓冲
3. 工具顺序执行 - 结果按调用顺序写回
4. 取消安全 - 中断时回滚未完成的工具调用
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional

from .config import Config
from .context import CompactResult, maybe_compact
from .errors import LLMError, is_retryable_error
from .events import (
    MessageEnd,
    StopReason,
    StreamEvent,
    TextDelta,
    ThinkingDelta,
    ToolUseEvent,
    UsageUpdate,
)
from .llm.base import LLMProvider
from .llm.models import max_output_tokens
from .prompt import build_system_prompt, estimate_tool_definitions_tokens
from .schema import (
    AgentResult,
    ChatRequest,
    Message,
    TextBlock,
    ToolResult,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)
from .session import Session
from .tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

MAX_AGENT_TURNS = 20
MAX_RETRIES = 2
STREAM_EVENT_TIMEOUT = 300.0


def truncate_preview(s: str, max_len: int = 200) -> str:
    """单行预览，超长时截断并加省略号"""
    single_line = s.replace("\n", " ")
    if len(single_line) <= max_len:
        return single_line
    return single_line[:max_len] + "…"


class AgentCallbacks:
    """Agent 输出回调，默认全部为空操作"""

    def on_text(self, text: str) -> None:
        pass

    def on_text_end(self) -> None:
        pass

    def on_thinking(self, text: str) -> None:
        pass

    def on_tool_call(self, tool_id: str, name: str, arguments: Any) -> None:
        pass

    def on_tool_result(self, name: str, result: ToolResult, elapsed: float) -> None:
        pass

    def on_retry(self, attempt: int, max_retries: int, error: Exception, delay: float) -> None:
        pass

    def on_compact(self, result: CompactResult) -> None:
        pass


@dataclass
class _TurnOutput:
    text: str
    tool_calls: List[ToolUseEvent]
    stop_reason: StopReason


class Agent:
    """Agent 主循环"""

    def __init__(
        self,
        provider: LLMProvider,
        session: Session,
        tools: ToolRegistry,
        config: Config,
        display: Optional[AgentCallbacks] = None,
        retry_base_delay: float = 1.0,
        stream_timeout: float = STREAM_EVENT_TIMEOUT,
    ):
        self.provider = provider
        self.session = session
        self.tools = tools
        self.config = config
        self.display = display or AgentCallbacks()
        self.retry_base_delay = retry_base_delay
        self.stream_timeout = stream_timeout

    async def run(self) -> AgentResult:
        """运行到模型不再调用工具或达到轮数上限

        被取消时回滚未完成的工具调用，然后继续抛出 CancelledError。
        """
        try:
            return await self._run_loop()
        except asyncio.CancelledError:
            self._cleanup_incomplete_messages()
            raise

    async def _run_loop(self) -> AgentResult:
        total_tool_calls = 0
        usage = Usage()

        for turn in range(MAX_AGENT_TURNS):
            tool_defs = self.tools.definitions()
            system_prompt = build_system_prompt(self.config, tool_defs)

            compacted = await maybe_compact(
                self.provider,
                self.session.messages,
                self.config.model,
                system_prompt,
                estimate_tool_definitions_tokens(tool_defs),
            )
            if compacted is not None:
                messages, stats = compacted
                self.session.replace_messages(messages)
                self.display.on_compact(stats)

            request = self._build_request(system_prompt, tool_defs)
            logger.debug(
                "Turn %d | model=%s | max_tokens=%d | messages=%d | tools=%d | thinking=%s",
                turn + 1,
                request.model,
                request.max_tokens,
                len(request.messages),
                len(request.tools),
                request.thinking_budget,
            )

            stream = await self._acquire_stream(request)
            output = await self._consume_stream(stream, usage)

            content: List[Any] = []
            if output.text:
                content.append(TextBlock(text=output.text))
            for tc in output.tool_calls:
                content.append(ToolUseBlock(id=tc.id, name=tc.name, input=tc.input))
            self.session.add_assistant_message(content)

            if not output.tool_calls or output.stop_reason != StopReason.TOOL_USE:
                return AgentResult(text=output.text, tool_calls=total_tool_calls, usage=usage)

            for tc in output.tool_calls:
                total_tool_calls += 1
                result = await self._execute_tool(tc)
                self.session.push_message(
                    Message(
                        role="user",
                        content=[
                            ToolResultBlock(
                                tool_use_id=tc.id,
                                content=result.content,
                                is_error=result.is_error,
                            )
                        ],
                    )
                )

        logger.warning("Reached max agent turns (%d)", MAX_AGENT_TURNS)
        return AgentResult(text="", tool_calls=total_tool_calls, usage=usage)

    def _build_request(self, system_prompt: str, tool_defs: list) -> ChatRequest:
        return ChatRequest(
            messages=list(self.session.messages),
            system_prompt=system_prompt,
            tools=tool_defs,
            model=self.config.model,
            max_tokens=self.config.max_tokens or max_output_tokens(self.config.model),
            temperature=self.config.temperature,
            thinking_budget=self.config.thinking_budget,
        )

    async def _acquire_stream(self, request: ChatRequest):
        """获取事件流，可重试错误按 1s, 2s ... 退避"""
        for attempt in range(MAX_RETRIES + 1):
            try:
                return await self.provider.chat_stream(request)
            except LLMError as e:
                if attempt >= MAX_RETRIES or not is_retryable_error(e):
                    raise
                delay = self.retry_base_delay * (1 << attempt)
                logger.warning(
                    "Retryable error (attempt %d/%d): %s. Retrying in %ss",
                    attempt + 1,
                    MAX_RETRIES,
                    e,
                    delay,
                )
                self.display.on_retry(attempt + 1, MAX_RETRIES, e, delay)
                await asyncio.sleep(delay)
        raise LLMError("stream request failed after retries")

    async def _consume_stream(self, stream, usage: Usage) -> _TurnOutput:
        text_parts: List[str] = []
        tool_calls: List[ToolUseEvent] = []
        stop_reason = StopReason.END_TURN

        try:
            while True:
                try:
                    event: StreamEvent = await asyncio.wait_for(
                        stream.__anext__(), timeout=self.stream_timeout
                    )
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    logger.warning("Stream timed out after %ss", self.stream_timeout)
                    break

                if isinstance(event, TextDelta):
                    text_parts.append(event.text)
                    self.display.on_text(event.text)
                elif isinstance(event, ThinkingDelta):
                    self.display.on_thinking(event.text)
                elif isinstance(event, ToolUseEvent):
                    tool_calls.append(event)
                    self.display.on_tool_call(event.id, event.name, event.input)
                elif isinstance(event, UsageUpdate):
                    usage.add(
                        Usage(
                            input_tokens=event.input_tokens,
                            output_tokens=event.output_tokens,
                            cache_creation_input_tokens=event.cache_creation_input_tokens,
                            cache_read_input_tokens=event.cache_read_input_tokens,
                        )
                    )
                elif isinstance(event, MessageEnd):
                    stop_reason = event.stop_reason
                    break
        finally:
            await stream.aclose()
            if text_parts:
                self.display.on_text_end()

        return _TurnOutput(text="".join(text_parts), tool_calls=tool_calls, stop_reason=stop_reason)

    async def _execute_tool(self, tc: ToolUseEvent) -> ToolResult:
        logger.info("Executing tool %s (%s)", tc.name, tc.id)
        start = time.monotonic()
        try:
            result = await self.tools.execute(tc.name, tc.input)
        except Exception as e:
            logger.warning("Tool %s failed: %s", tc.name, e)
            result = ToolResult(content=f"Error: {e}", is_error=True)
        self.display.on_tool_result(tc.name, result, time.monotonic() - start)
        return result

    def _cleanup_incomplete_messages(self) -> None:
        """删除最后一条带工具调用、但结果不完整的 assistant 消息及其后的消息"""
        messages = self.session.messages
        last_assistant_idx = -1
        for i in range(len(messages) - 1, -1, -1):
            if messages[i].role == "assistant":
                last_assistant_idx = i
                break
        if last_assistant_idx < 0:
            return

        tool_use_ids = {tu.id for tu in messages[last_assistant_idx].tool_uses()}
        if not tool_use_ids:
            return

        result_ids = {
            r.tool_use_id
            for msg in messages[last_assistant_idx + 1 :]
            for r in msg.tool_results()
        }
        if tool_use_ids != result_ids:
            logger.info("Rolling back incomplete tool calls after cancellation")
            self.session.truncate(last_assistant_idx)
