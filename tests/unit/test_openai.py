"""OpenAI 兼容 Provider 测试"""

import json

import httpx
import pytest

from xiaozhua.errors import AuthenticationError, RateLimitError, ServerError, StreamError
from xiaozhua.events import (
    MessageEnd,
    StopReason,
    TextDelta,
    ThinkingDelta,
    ToolUseEvent,
    UsageUpdate,
)
from xiaozhua.llm.openai import OpenAIProvider, OpenAIStreamTranslator, parse_finish_reason
from xiaozhua.llm.sse import SSEEvent
from xiaozhua.schema import (
    ChatRequest,
    ImageBlock,
    ImageSource,
    Message,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)


def chunk(payload):
    return SSEEvent(event_type=None, data=json.dumps(payload))


def delta_chunk(delta=None, finish_reason=None):
    return chunk({"choices": [{"index": 0, "delta": delta or {}, "finish_reason": finish_reason}]})


def make_request(**kwargs):
    defaults = dict(messages=[Message.user("hi")], model="gpt-4o", max_tokens=512)
    defaults.update(kwargs)
    return ChatRequest(**defaults)


class TestOpenAIStreamTranslator:
    """OpenAI chunk 翻译测试"""

    def test_text_then_done(self):
        """测试文本流，MessageEnd 推迟到 [DONE] 且在 usage 之后"""
        translator = OpenAIStreamTranslator()
        events = []
        events += translator.process(delta_chunk({"content": "Hel"}))
        events += translator.process(delta_chunk({"content": "lo"}))
        events += translator.process(delta_chunk(finish_reason="stop"))
        events += translator.process(chunk({"choices": [], "usage": {
            "prompt_tokens": 10,
            "completion_tokens": 2,
            "prompt_tokens_details": {"cached_tokens": 4},
        }}))
        events += translator.process(SSEEvent(event_type=None, data="[DONE]"))

        assert events == [
            TextDelta(text="Hel"),
            TextDelta(text="lo"),
            UsageUpdate(input_tokens=10, output_tokens=2, cache_read_input_tokens=4),
            MessageEnd(stop_reason=StopReason.END_TURN),
        ]
        assert translator.done is True

    def test_interleaved_tool_calls_flushed_in_index_order(self):
        """测试交错到达的工具调用按 index 升序发出"""
        translator = OpenAIStreamTranslator()
        events = []
        events += translator.process(delta_chunk({"tool_calls": [
            {"index": 1, "id": "call_b", "function": {"name": "glob", "arguments": ""}},
        ]}))
        events += translator.process(delta_chunk({"tool_calls": [
            {"index": 0, "id": "call_a", "function": {"name": "read", "arguments": '{"file_'}},
        ]}))
        events += translator.process(delta_chunk({"tool_calls": [
            {"index": 1, "function": {"arguments": '{"pattern": "*.py"}'}},
            {"index": 0, "function": {"arguments": 'path": "a"}'}},
        ]}))
        assert events == []

        events += translator.process(delta_chunk(finish_reason="tool_calls"))
        events += translator.finish()

        assert events == [
            ToolUseEvent(id="call_a", name="read", input={"file_path": "a"}),
            ToolUseEvent(id="call_b", name="glob", input={"pattern": "*.py"}),
            MessageEnd(stop_reason=StopReason.TOOL_USE),
        ]

    def test_tool_calls_not_flushed_for_other_finish_reason(self):
        """测试 finish_reason 不是 tool_calls 时不发出工具调用"""
        translator = OpenAIStreamTranslator()
        translator.process(delta_chunk({"tool_calls": [
            {"index": 0, "id": "c", "function": {"name": "read", "arguments": "{}"}},
        ]}))
        events = translator.process(delta_chunk(finish_reason="length"))
        events += translator.finish()
        assert events == [MessageEnd(stop_reason=StopReason.MAX_TOKENS)]

    def test_reasoning_content(self):
        """测试 reasoning_content 转为思考增量"""
        translator = OpenAIStreamTranslator()
        events = translator.process(delta_chunk({"reasoning_content": "step 1"}))
        assert events == [ThinkingDelta(text="step 1")]

    def test_unparseable_chunk_skipped(self):
        """测试无法解析的 chunk 被跳过"""
        translator = OpenAIStreamTranslator()
        assert translator.process(SSEEvent(event_type=None, data="{broken")) == []

    def test_error_chunk_raises(self):
        """测试错误 chunk 抛出 StreamError"""
        translator = OpenAIStreamTranslator()
        with pytest.raises(StreamError, match="quota exceeded"):
            translator.process(chunk({"error": {"message": "quota exceeded"}}))

    def test_finish_without_stop_reason_is_empty(self):
        """测试没有 finish_reason 时 finish 不产出事件"""
        assert OpenAIStreamTranslator().finish() == []

    @pytest.mark.parametrize(
        "reason,expected",
        [
            ("stop", StopReason.END_TURN),
            ("tool_calls", StopReason.TOOL_USE),
            ("length", StopReason.MAX_TOKENS),
            ("content_filter", StopReason.END_TURN),
        ],
    )
    def test_parse_finish_reason(self, reason, expected):
        """测试 finish_reason 映射"""
        assert parse_finish_reason(reason) == expected


class TestOpenAIRequestBody:
    """OpenAI 请求体测试"""

    def test_system_message_first(self):
        """测试系统提示词作为第一条消息，且请求流式用量"""
        body = OpenAIProvider(api_key="k").build_request_body(
            make_request(system_prompt="sys", temperature=0.3)
        )
        assert body["messages"][0] == {"role": "system", "content": "sys"}
        assert body["messages"][1] == {"role": "user", "content": "hi"}
        assert body["stream_options"] == {"include_usage": True}
        assert body["temperature"] == 0.3
        assert "tools" not in body

    def test_tool_results_become_tool_messages(self):
        """测试每个工具结果一条 tool 消息，工具调用参数为 JSON 字符串"""
        messages = [
            Message.user("go"),
            Message.assistant([
                ToolUseBlock(id="c1", name="read", input={"file_path": "a"}),
                ToolUseBlock(id="c2", name="read", input={"file_path": "b"}),
            ]),
            Message(role="user", content=[
                ToolResultBlock(tool_use_id="c1", content="A"),
                ToolResultBlock(tool_use_id="c2", content="B"),
            ]),
        ]
        body = OpenAIProvider(api_key="k").build_request_body(make_request(messages=messages))
        assistant = body["messages"][1]
        assert "content" not in assistant
        assert assistant["tool_calls"][0] == {
            "id": "c1",
            "type": "function",
            "function": {"name": "read", "arguments": '{"file_path": "a"}'},
        }
        assert body["messages"][2:] == [
            {"role": "tool", "tool_call_id": "c1", "content": "A"},
            {"role": "tool", "tool_call_id": "c2", "content": "B"},
        ]

    def test_image_becomes_data_url(self):
        """测试图片转为 data URL"""
        message = Message(role="user", content=[
            TextBlock(text="what is this"),
            ImageBlock(source=ImageSource(media_type="image/png", data="AAAA")),
        ])
        body = OpenAIProvider(api_key="k").build_request_body(make_request(messages=[message]))
        parts = body["messages"][0]["content"]
        assert parts[0] == {"type": "text", "text": "what is this"}
        assert parts[1] == {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}}

    def test_tools_as_functions(self):
        """测试工具定义转为 function 格式"""
        tools = [ToolDefinition(name="bash", description="run", input_schema={"type": "object"})]
        body = OpenAIProvider(api_key="k").build_request_body(make_request(tools=tools))
        assert body["tools"] == [{
            "type": "function",
            "function": {"name": "bash", "description": "run", "parameters": {"type": "object"}},
        }]

    def test_authorization_header(self):
        """测试只有设置了 key 才发送 Authorization"""
        assert OpenAIProvider(api_key="sk").headers()["authorization"] == "Bearer sk"
        assert "authorization" not in OpenAIProvider(api_key="").headers()

    def test_chat_url(self):
        """测试请求地址"""
        provider = OpenAIProvider(api_key="k", base_url="https://openrouter.ai/api/v1/")
        assert provider.chat_url() == "https://openrouter.ai/api/v1/chat/completions"


class TestOpenAIProvider:
    """通过 MockTransport 的端到端测试"""

    @pytest.mark.asyncio
    async def test_chat_stream(self):
        """测试完整响应流"""
        body = (
            'data: {"choices":[{"index":0,"delta":{"content":"Hi"},"finish_reason":null}]}\n\n'
            'data: {"choices":[{"index":0,"delta":{},"finish_reason":"stop"}]}\n\n'
            'data: {"choices":[],"usage":{"prompt_tokens":5,"completion_tokens":1}}\n\n'
            "data: [DONE]\n\n"
        ).encode()

        def handler(request):
            assert request.url.path == "/v1/chat/completions"
            return httpx.Response(200, content=body)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = OpenAIProvider(api_key="k", client=client)
        stream = await provider.chat_stream(make_request())
        events = [e async for e in stream]
        await client.aclose()

        assert events == [
            TextDelta(text="Hi"),
            UsageUpdate(input_tokens=5, output_tokens=1),
            MessageEnd(stop_reason=StopReason.END_TURN),
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error_type",
        [(429, RateLimitError), (401, AuthenticationError), (503, ServerError)],
    )
    async def test_error_status(self, status, error_type):
        """测试错误状态码分类"""

        def handler(request):
            return httpx.Response(status, text="bad")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = OpenAIProvider(api_key="k", client=client)
        with pytest.raises(error_type, match=f"OpenAI API error \\({status}\\): bad"):
            await provider.chat_stream(make_request())
        await client.aclose()
