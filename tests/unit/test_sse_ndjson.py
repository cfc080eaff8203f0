"""SSE / NDJSON 增量解析测试"""

import logging

import pytest

from xiaozhua.llm.ndjson import NDJSONParser, iter_ndjson
from xiaozhua.llm.sse import SSEEvent, SSEParser, iter_sse_events

SAMPLE_STREAM = (
    "event: message_start\n"
    'data: {"type":"message_start"}\n'
    "\n"
    ": keep-alive comment\n"
    "event: content_block_delta\n"
    'data: {"text":"你好，世界"}\n'
    "\n"
    "data: line one\n"
    "data: line two\n"
    "\n"
).encode("utf-8")


def parse_in_chunks(data: bytes, size: int):
    parser = SSEParser()
    events = []
    for i in range(0, len(data), size):
        events.extend(parser.feed(data[i : i + size]))
    events.extend(parser.finish())
    return events


async def _aiter(chunks):
    for chunk in chunks:
        yield chunk


class TestSSEParser:
    """SSEParser 测试"""

    def test_parse_complete_stream(self):
        """测试一次性喂入完整流"""
        events = parse_in_chunks(SAMPLE_STREAM, len(SAMPLE_STREAM))
        assert events == [
            SSEEvent(event_type="message_start", data='{"type":"message_start"}'),
            SSEEvent(event_type="content_block_delta", data='{"text":"你好，世界"}'),
            SSEEvent(event_type=None, data="line one\nline two"),
        ]

    def test_chunking_does_not_change_result(self):
        """测试任意切分方式得到相同的事件 (含多字节字符被切开)"""
        expected = parse_in_chunks(SAMPLE_STREAM, len(SAMPLE_STREAM))
        for size in (1, 2, 3, 5, 7, 64):
            assert parse_in_chunks(SAMPLE_STREAM, size) == expected

    def test_multibyte_split_across_chunks(self):
        """测试 UTF-8 字符跨块"""
        data = "data: 中文\n\n".encode("utf-8")
        split = data.index("中".encode("utf-8")) + 1
        parser = SSEParser()
        assert parser.feed(data[:split]) == []
        events = parser.feed(data[split:])
        assert events == [SSEEvent(event_type=None, data="中文")]

    def test_crlf_line_endings(self):
        """测试 CRLF 行尾"""
        parser = SSEParser()
        events = parser.feed(b"event: ping\r\ndata: {}\r\n\r\n")
        assert events == [SSEEvent(event_type="ping", data="{}")]

    def test_event_without_data_is_dropped(self):
        """测试只有 event 没有 data 时不产出事件，且类型不会泄漏到下一个事件"""
        parser = SSEParser()
        events = parser.feed(b"event: ping\n\ndata: x\n\n")
        assert events == [SSEEvent(event_type=None, data="x")]

    def test_field_without_colon(self):
        """测试没有冒号的字段视为空值"""
        parser = SSEParser()
        events = parser.feed(b"data\n\n")
        assert events == [SSEEvent(event_type=None, data="")]

    def test_only_one_leading_space_removed(self):
        """测试只去掉冒号后的一个空格"""
        parser = SSEParser()
        events = parser.feed(b"data:  two spaces\n\n")
        assert events[0].data == " two spaces"

    def test_ignored_fields(self):
        """测试 id / retry / 未知字段被忽略"""
        parser = SSEParser()
        events = parser.feed(b"id: 1\nretry: 100\nfoo: bar\ndata: ok\n\n")
        assert events == [SSEEvent(event_type=None, data="ok")]

    def test_finish_flushes_pending_event(self):
        """测试流结束时刷新没有空行结尾的事件"""
        parser = SSEParser()
        assert parser.feed(b"data: tail") == []
        assert parser.finish() == [SSEEvent(event_type=None, data="tail")]

    @pytest.mark.asyncio
    async def test_iter_sse_events(self):
        """测试异步迭代"""
        events = [e async for e in iter_sse_events(_aiter([b"data: a\n", b"\ndata: b\n\n"]))]
        assert [e.data for e in events] == ["a", "b"]


class TestNDJSONParser:
    """NDJSONParser 测试"""

    def test_records_split_across_chunks(self):
        """测试跨块的行"""
        parser = NDJSONParser()
        assert parser.feed(b'{"a": 1}\n{"b"') == [{"a": 1}]
        assert parser.feed(b': 2}\n') == [{"b": 2}]

    def test_blank_lines_skipped(self):
        """测试空行被跳过"""
        parser = NDJSONParser()
        assert parser.feed(b'\n\n{"a": 1}\n  \n') == [{"a": 1}]

    def test_malformed_line_skipped(self, caplog):
        """测试坏行记录警告后跳过"""
        parser = NDJSONParser()
        with caplog.at_level(logging.WARNING):
            records = parser.feed(b'{"a": 1}\nnot json\n{"b": 2}\n')
        assert records == [{"a": 1}, {"b": 2}]
        assert "malformed NDJSON" in caplog.text

    def test_finish_parses_last_line(self):
        """测试没有换行结尾的最后一行"""
        parser = NDJSONParser()
        assert parser.feed(b'{"done": true}') == []
        assert parser.finish() == [{"done": True}]
        assert parser.finish() == []

    @pytest.mark.asyncio
    async def test_iter_ndjson_multibyte(self):
        """测试多字节字符跨块"""
        data = '{"text": "你好"}\n'.encode("utf-8")
        chunks = [data[i : i + 1] for i in range(len(data))]
        records = [r async for r in iter_ndjson(_aiter(chunks))]
        assert records == [{"text": "你好"}]
