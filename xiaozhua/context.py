"""
上下文窗口管理

1. Token 估算 - 约 4 字节 1 个 token
2. 自动压缩 - 接近上下文上限时把中间的历史交给模型摘要
3. 失败降级 - 摘要失败时直接丢弃中间部分，不阻塞对话
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import LLMError
from .events import MessageEnd, TextDelta
from .llm.base import LLMProvider
from .llm.models import context_limit
from .schema import (
    ChatRequest,
    ImageBlock,
    Message,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4
KEEP_RECENT_MESSAGES = 6
COMPACTION_THRESHOLD_PERCENT = 80
TOOL_RESULT_PREVIEW_CHARS = 500
SUMMARY_MAX_TOKENS = 1024

SUMMARY_SYSTEM_PROMPT = "You are a conversation summarizer. Produce a concise summary."
SUMMARY_PREFIX = "[Conversation summary -- earlier messages were compacted to save context]"


def _compact_json(value) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def estimate_tokens(text: str) -> int:
    """估算文本 token 数：UTF-8 字节数 / 4，向上取整"""
    return -(-len(text.encode("utf-8")) // CHARS_PER_TOKEN)


def estimate_message_tokens(msg: Message) -> int:
    """估算单条消息 token 数，含固定的角色开销"""
    total = MESSAGE_OVERHEAD_TOKENS
    for block in msg.content:
        if isinstance(block, TextBlock):
            total += estimate_tokens(block.text)
        elif isinstance(block, ToolUseBlock):
            total += (
                estimate_tokens(block.id)
                + estimate_tokens(block.name)
                + estimate_tokens(_compact_json(block.input))
            )
        elif isinstance(block, ToolResultBlock):
            total += estimate_tokens(block.tool_use_id) + estimate_tokens(block.content)
        elif isinstance(block, ImageBlock):
            total += len(block.source.data) // 750 + 100
    return total


def estimate_messages_tokens(messages: List[Message]) -> int:
    return sum(estimate_message_tokens(m) for m in messages)


def context_limit_for_model(model: str) -> int:
    return context_limit(model)


def render_transcript(messages: List[Message]) -> str:
    """把消息渲染成纯文本对话记录，供摘要使用"""
    lines = []
    for msg in messages:
        label = "User" if msg.role == "user" else "Assistant"
        for block in msg.content:
            if isinstance(block, TextBlock):
                lines.append(f"{label}: {block.text}")
            elif isinstance(block, ToolUseBlock):
                lines.append(f"{label}: [called tool '{block.name}' with {_compact_json(block.input)}]")
            elif isinstance(block, ToolResultBlock):
                preview = block.content[:TOOL_RESULT_PREVIEW_CHARS]
                lines.append(f"{label}: [tool result: {preview}]")
            elif isinstance(block, ImageBlock):
                lines.append(f"{label}: [image]")
    return "".join(line + "\n" for line in lines)


async def summarize_transcript(provider: LLMProvider, transcript: str, model: str) -> str:
    """请求模型摘要对话记录，空摘要视为失败"""
    prompt = (
        "Summarize the following conversation excerpt concisely. "
        "Preserve key facts, decisions, file paths, code snippets, and tool results "
        "that would be needed to continue the conversation. "
        f"Be brief but complete.\n\n---\n{transcript}\n---"
    )
    request = ChatRequest(
        messages=[Message.user(prompt)],
        system_prompt=SUMMARY_SYSTEM_PROMPT,
        tools=[],
        model=model,
        max_tokens=SUMMARY_MAX_TOKENS,
        temperature=0.0,
    )

    stream = await provider.chat_stream(request)
    parts: List[str] = []
    try:
        async for event in stream:
            if isinstance(event, TextDelta):
                parts.append(event.text)
            elif isinstance(event, MessageEnd):
                break
    finally:
        await stream.aclose()

    summary = "".join(parts)
    if not summary:
        raise LLMError("LLM returned empty summary")
    return summary


async def compact_messages(
    provider: LLMProvider,
    messages: List[Message],
    model: str,
    system_prompt: str = "",
) -> List[Message]:
    """压缩消息：[第一条, 摘要, 最近 N 条]

    摘要失败时退化为 [第一条, 最近 N 条]。消息太少时原样返回。
    """
    if len(messages) <= KEEP_RECENT_MESSAGES + 1:
        return list(messages)

    first = messages[0]
    split = len(messages) - KEEP_RECENT_MESSAGES
    # 保留的部分不能以工具结果开头，否则对应的 tool_use 会被摘要掉
    while split > 1 and messages[split].role == "user" and messages[split].tool_results():
        split -= 1
    middle = messages[1:split]
    recent = messages[split:]
    if not middle:
        return list(messages)

    transcript = render_transcript(middle)
    try:
        summary = await summarize_transcript(provider, transcript, model)
    except Exception as e:
        logger.warning("Compaction summary failed (%s), keeping recent messages only", e)
        return [first, *recent]

    summary_msg = Message.user(f"{SUMMARY_PREFIX}\n\n{summary}")
    return [first, summary_msg, *recent]


@dataclass
class CompactResult:
    """压缩统计"""

    messages_before: int
    messages_after: int
    tokens_before: int
    tokens_after: int


async def maybe_compact(
    provider: LLMProvider,
    messages: List[Message],
    model: str,
    system_prompt: str,
    tool_def_tokens: int = 0,
) -> Optional[Tuple[List[Message], CompactResult]]:
    """超过上下文上限的 80% 时压缩，否则返回 None"""
    limit = context_limit_for_model(model)
    threshold = limit * COMPACTION_THRESHOLD_PERCENT // 100

    message_tokens = estimate_messages_tokens(messages)
    total = estimate_tokens(system_prompt) + message_tokens + tool_def_tokens
    if total <= threshold:
        return None

    logger.warning(
        "Estimated %d tokens (~%d%% of %d context limit for %s), compacting conversation",
        total,
        total * 100 // limit,
        limit,
        model,
    )

    compacted = await compact_messages(provider, messages, model, system_prompt)
    result = CompactResult(
        messages_before=len(messages),
        messages_after=len(compacted),
        tokens_before=message_tokens,
        tokens_after=estimate_messages_tokens(compacted),
    )
    logger.info(
        "Compacted: %d -> %d messages (%d -> ~%d tokens)",
        result.messages_before,
        result.messages_after,
        result.tokens_before,
        result.tokens_after,
    )
    return compacted, result
