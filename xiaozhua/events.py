"""统一事件

所有 Provider 的流式响应最终都转换成这里的事件序列：
零个或多个 TextDelta / ThinkingDelta / ToolUseEvent，穿插零个或多个 UsageUpdate，
最后恰好一个 MessageEnd。流中出错时迭代器直接抛出 LLMError。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class StopReason(str, Enum):
    """模型停止原因"""

    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"


class AgentEventType(Enum):
    """事件类型"""

    TEXT_DELTA = "text_delta"
    THINKING_DELTA = "thinking_delta"
    TOOL_USE = "tool_use"
    MESSAGE_END = "message_end"
    USAGE_UPDATE = "usage_update"


@dataclass
class AgentEvent:
    """事件基类"""

    type: AgentEventType


@dataclass
class TextDelta(AgentEvent):
    """文本增量"""

    type: AgentEventType = field(default=AgentEventType.TEXT_DELTA, init=False)
    text: str = ""


@dataclass
class ThinkingDelta(AgentEvent):
    """思考增量"""

    type: AgentEventType = field(default=AgentEventType.THINKING_DELTA, init=False)
    text: str = ""


@dataclass
class ToolUseEvent(AgentEvent):
    """完整的工具调用"""

    type: AgentEventType = field(default=AgentEventType.TOOL_USE, init=False)
    id: str = ""
    name: str = ""
    input: Any = field(default_factory=dict)


@dataclass
class MessageEnd(AgentEvent):
    """消息结束"""

    type: AgentEventType = field(default=AgentEventType.MESSAGE_END, init=False)
    stop_reason: StopReason = StopReason.END_TURN


@dataclass
class UsageUpdate(AgentEvent):
    """Token 用量增量"""

    type: AgentEventType = field(default=AgentEventType.USAGE_UPDATE, init=False)
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    def has_tokens(self) -> bool:
        return (
            self.input_tokens > 0
            or self.output_tokens > 0
            or self.cache_creation_input_tokens > 0
            or self.cache_read_input_tokens > 0
        )


StreamEvent = Union[TextDelta, ThinkingDelta, ToolUseEvent, MessageEnd, UsageUpdate]


def parse_stop_reason(reason: Optional[str]) -> StopReason:
    """Anthropic / 通用停止原因映射，未知值视为 end_turn"""
    if reason == "tool_use":
        return StopReason.TOOL_USE
    if reason == "max_tokens":
        return StopReason.MAX_TOKENS
    return StopReason.END_TURN
