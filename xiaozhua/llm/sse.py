"""SSE (Server-Sent Events) 增量解析

网络读取可能在任意位置切分，包括 UTF-8 多字节字符中间。
解析器缓存原始字节，只在遇到换行时才解码整行。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, List, Optional


@dataclass
class SSEEvent:
    """一个 SSE 事件"""

    event_type: Optional[str]
    data: str


class SSEParser:
    """按块喂入字节，产出完整事件"""

    def __init__(self):
        self._buffer = bytearray()
        self._event_type: Optional[str] = None
        self._data_lines: List[str] = []

    def feed(self, chunk: bytes) -> List[SSEEvent]:
        """喂入一块字节，返回已完成的事件"""
        self._buffer.extend(chunk)
        events: List[SSEEvent] = []

        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            raw = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            line = raw.decode("utf-8", errors="replace")
            if line.endswith("\r"):
                line = line[:-1]
            event = self._process_line(line)
            if event is not None:
                events.append(event)

        return events

    def finish(self) -> List[SSEEvent]:
        """流结束：处理残留的半行并刷新未完成的事件"""
        events: List[SSEEvent] = []
        if self._buffer:
            line = bytes(self._buffer).decode("utf-8", errors="replace").rstrip("\r")
            self._buffer.clear()
            event = self._process_line(line)
            if event is not None:
                events.append(event)

        event = self._flush()
        if event is not None:
            events.append(event)
        return events

    def _process_line(self, line: str) -> Optional[SSEEvent]:
        if not line:
            return self._flush()

        # 注释
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event_type = value
        elif field == "data":
            self._data_lines.append(value)
        # id / retry 以及未知字段忽略
        return None

    def _flush(self) -> Optional[SSEEvent]:
        if not self._data_lines:
            self._event_type = None
            return None
        event = SSEEvent(event_type=self._event_type, data="\n".join(self._data_lines))
        self._event_type = None
        self._data_lines = []
        return event


async def iter_sse_events(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[SSEEvent]:
    """把字节流惰性地转换成 SSE 事件流"""
    parser = SSEParser()
    async for chunk in byte_stream:
        for event in parser.feed(chunk):
            yield event
    for event in parser.finish():
        yield event
