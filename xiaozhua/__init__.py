"""
小爪 (XiaoZhua) - 终端里的 AI 编程助手

流式调用 Anthropic / OpenAI 兼容 / Ollama 模型，
在本地执行工具调用，会话保存为 JSON 文件。
"""

__version__ = "0.1.0"

from .agent import Agent, AgentCallbacks
from .config import Config
from .errors import ConfigError, LLMError, XiaozhuaError
from .llm import LLMProvider, create_provider
from .schema import AgentResult, Message, ToolResult, Usage
from .session import Session, SessionManager
from .tools import ToolRegistry, create_default_tools

__all__ = [
    "__version__",
    "Agent",
    "AgentCallbacks",
    "AgentResult",
    "Config",
    "ConfigError",
    "LLMError",
    "LLMProvider",
    "Message",
    "Session",
    "SessionManager",
    "ToolRegistry",
    "ToolResult",
    "Usage",
    "XiaozhuaError",
    "create_default_tools",
    "create_provider",
]
