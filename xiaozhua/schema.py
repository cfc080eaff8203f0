"""数据模型定义"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class TextBlock(BaseModel):
    """文本块"""
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """工具调用块"""
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Any = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    """工具结果块"""
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str = ""
    is_error: bool = False


class ImageSource(BaseModel):
    """图片数据 (base64)"""
    type: str = "base64"
    media_type: str
    data: str


class ImageBlock(BaseModel):
    """图片块"""
    type: Literal["image"] = "image"
    source: ImageSource


ContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ToolResultBlock, ImageBlock],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """消息"""
    role: Literal["user", "assistant"]
    content: List[ContentBlock] = Field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", content=[TextBlock(text=text)])

    @classmethod
    def assistant(cls, blocks: List[Any]) -> "Message":
        return cls(role="assistant", content=list(blocks))

    @classmethod
    def tool_result(cls, tool_use_id: str, content: str, is_error: bool = False) -> "Message":
        return cls(
            role="user",
            content=[ToolResultBlock(tool_use_id=tool_use_id, content=content, is_error=is_error)],
        )

    def text(self) -> str:
        """拼接所有文本块"""
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    def tool_uses(self) -> List[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    def tool_results(self) -> List[ToolResultBlock]:
        return [b for b in self.content if isinstance(b, ToolResultBlock)]


class ToolDefinition(BaseModel):
    """工具定义 (JSON Schema)"""
    name: str
    description: str
    input_schema: Dict[str, Any]


class ToolResult(BaseModel):
    """工具执行结果"""
    content: str = ""
    is_error: bool = False


class Usage(BaseModel):
    """Token 使用统计"""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    def add(self, other: "Usage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ChatRequest(BaseModel):
    """单次请求快照，每轮重新构建"""
    model_config = ConfigDict(frozen=True)

    messages: List[Message]
    system_prompt: str = ""
    tools: List[ToolDefinition] = Field(default_factory=list)
    model: str
    max_tokens: int
    temperature: Optional[float] = None
    thinking_budget: Optional[int] = None


class AgentResult(BaseModel):
    """一次 Agent 运行的结果"""
    text: str = ""
    tool_calls: int = 0
    usage: Usage = Field(default_factory=Usage)
