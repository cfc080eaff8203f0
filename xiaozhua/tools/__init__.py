"""工具模块"""

from ..schema import ToolResult
from .base import Tool
from .bash_tool import BashTool
from .file_tools import EditTool, GlobTool, GrepTool, ReadTool, WriteTool
from .policy import ToolPolicy, is_command_allowed
from .registry import ToolRegistry, create_default_tools
from .web_tool import WebFetchTool

__all__ = [
    "Tool",
    "ToolResult",
    "BashTool",
    "ReadTool",
    "WriteTool",
    "EditTool",
    "GlobTool",
    "GrepTool",
    "WebFetchTool",
    "ToolPolicy",
    "ToolRegistry",
    "create_default_tools",
    "is_command_allowed",
]
