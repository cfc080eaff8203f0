"""工具注册表：策略检查、分发、结果截断"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from ..schema import ToolDefinition, ToolResult
from .base import Tool
from .bash_tool import BashTool
from .file_tools import EditTool, GlobTool, GrepTool, ReadTool, WriteTool
from .policy import ToolPolicy, is_command_allowed
from .web_tool import WebFetchTool

if TYPE_CHECKING:
    from ..config import ExecConfig

logger = logging.getLogger(__name__)

MAX_RESULT_CHARS = 30_000

# 工具不允许访问的敏感路径片段
DENIED_PATHS = (
    "/etc/shadow",
    "/etc/gshadow",
    "/etc/master.passwd",
    "/.ssh/",
    "/.gnupg/",
    "/.aws/credentials",
    "/.config/gcloud/",
    "/.docker/config.json",
)

FILE_TOOLS = ("read", "write", "edit")


def create_default_tools(workspace_dir: str = ".") -> List[Tool]:
    """内置工具，按发送给模型的顺序"""
    return [
        BashTool(),
        ReadTool(workspace_dir),
        WriteTool(workspace_dir),
        EditTool(workspace_dir),
        GlobTool(workspace_dir),
        GrepTool(workspace_dir),
        WebFetchTool(),
    ]


def validate_file_path(path: str) -> Optional[str]:
    """命中敏感路径时返回错误信息"""
    normalized = os.path.normpath(os.path.expanduser(path))
    for denied in DENIED_PATHS:
        if denied in normalized:
            return f"Access denied: path matches sensitive pattern '{denied}'"
    return None


def truncate_result(result: ToolResult) -> ToolResult:
    """超长结果保留前 2/3 和后 1/3"""
    total = len(result.content)
    if total <= MAX_RESULT_CHARS:
        return result

    keep_start = MAX_RESULT_CHARS * 2 // 3
    keep_end = MAX_RESULT_CHARS // 3 - 60
    omitted = total - keep_start - keep_end
    content = (
        f"{result.content[:keep_start]}\n\n... [truncated {omitted} characters] ...\n\n"
        f"{result.content[total - keep_end:]}"
    )
    return ToolResult(content=content, is_error=result.is_error)


class ToolRegistry:
    """工具执行器"""

    def __init__(
        self,
        tools: Optional[Iterable[Tool]] = None,
        policy: Optional[ToolPolicy] = None,
        exec_config: Optional["ExecConfig"] = None,
    ):
        if tools is None:
            tools = create_default_tools()
        self._tools: Dict[str, Tool] = {tool.name: tool for tool in tools}
        self.policy = policy or ToolPolicy()
        self.exec_security = exec_config.security if exec_config else "full"
        self.exec_allowlist = list(exec_config.allowlist) if exec_config else []

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def definitions(self) -> List[ToolDefinition]:
        """策略允许的工具定义"""
        return self.policy.filter_definitions(t.to_definition() for t in self._tools.values())

    async def execute(self, name: str, args: Any) -> ToolResult:
        if not self.policy.is_allowed(name):
            return ToolResult(
                content=f"Tool '{name}' is not allowed by the current policy.", is_error=True
            )

        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(content=f"Unknown tool: '{name}'", is_error=True)

        if not isinstance(args, dict):
            return ToolResult(
                content=f"Invalid arguments for tool '{name}': expected a JSON object",
                is_error=True,
            )
        if "_parse_error" in args:
            return ToolResult(
                content=f"Invalid JSON arguments for tool '{name}': {args['_parse_error']}",
                is_error=True,
            )

        denied = self._check_access(name, args)
        if denied:
            return ToolResult(content=denied, is_error=True)

        missing = [p for p in tool.required_parameters if args.get(p) is None]
        if missing:
            return ToolResult(
                content=f"Missing required parameter(s) for tool '{name}': {', '.join(missing)}",
                is_error=True,
            )

        known = tool.known_parameters
        kwargs = {k: v for k, v in args.items() if k in known}
        ignored = set(args) - known
        if ignored:
            logger.debug("Ignoring unknown arguments for %s: %s", name, sorted(ignored))

        result = await tool.execute(**kwargs)
        return truncate_result(result)

    def _check_access(self, name: str, args: Dict[str, Any]) -> Optional[str]:
        if name == "bash":
            command = args.get("command")
            if isinstance(command, str) and not is_command_allowed(
                command, self.exec_allowlist, self.exec_security
            ):
                return (
                    f"Command not allowed by exec policy (security={self.exec_security!r}): "
                    f"{command[:200]}"
                )
        elif name in FILE_TOOLS:
            path = args.get("file_path")
            if isinstance(path, str):
                return validate_file_path(path)
        return None
