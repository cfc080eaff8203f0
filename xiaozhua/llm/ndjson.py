"""NDJSON 增量解析 (Ollama)

每行一个完整的 JSON 对象。坏行记录警告后跳过。
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

logger = logging.getLogger(__name__)


class NDJSONParser:
    """按块喂入字节，产出解析好的 JSON 对象"""

    def __init__(self):
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> List[Dict[str, Any]]:
        self._buffer.extend(chunk)
        records: List[Dict[str, Any]] = []

        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            raw = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            record = self._parse_line(raw)
            if record is not None:
                records.append(record)

        return records

    def finish(self) -> List[Dict[str, Any]]:
        """流结束时处理缓冲区里没有换行结尾的最后一行"""
        if not self._buffer:
            return []
        raw = bytes(self._buffer)
        self._buffer.clear()
        record = self._parse_line(raw)
        return [record] if record is not None else []

    def _parse_line(self, raw: bytes) -> Optional[Dict[str, Any]]:
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            return None
        try:
            value = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning("Skipping malformed NDJSON line: %s (%s)", line[:200], e)
            return None
        if not isinstance(value, dict):
            logger.warning("Skipping non-object NDJSON line: %s", line[:200])
            return None
        return value


async def iter_ndjson(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[Dict[str, Any]]:
    """把字节流惰性地转换成 JSON 对象流"""
    parser = NDJSONParser()
    async for chunk in byte_stream:
        for record in parser.feed(chunk):
            yield record
    for record in parser.finish():
        yield record
