"""Bash 命令执行工具"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Optional

from ..schema import ToolResult
from .base import Tool

DEFAULT_TIMEOUT_MS = 120_000
MAX_TIMEOUT_MS = 600_000
MAX_OUTPUT_CHARS = 30_000


def resolve_shell() -> str:
    """$SHELL 存在则用它，否则 /bin/bash，最后 /bin/sh"""
    shell = os.environ.get("SHELL")
    if shell and os.path.exists(shell):
        return shell
    if os.path.exists("/bin/bash"):
        return "/bin/bash"
    return "/bin/sh"


def format_output(stdout: str, stderr: str, exit_code: int) -> str:
    """合并 stdout、stderr 和退出码"""
    parts = []
    if stdout:
        parts.append(stdout)
    if stderr:
        parts.append(f"STDERR:\n{stderr}")
    if exit_code != 0:
        parts.append(f"Exit code: {exit_code}")
    if not parts:
        return "(no output)"
    return "\n".join(parts)


def truncate_output(output: str) -> str:
    """超长输出保留头尾各一半"""
    if len(output) <= MAX_OUTPUT_CHARS:
        return output
    keep = MAX_OUTPUT_CHARS - 60
    half = keep // 2
    return (
        f"{output[:half]}\n\n... [truncated {len(output) - keep} chars] ...\n\n"
        f"{output[len(output) - half:]}"
    )


class BashTool(Tool):
    """执行 Shell 命令"""

    def __init__(self, shell: Optional[str] = None):
        self.shell = shell or resolve_shell()

    @property
    def name(self) -> str:
        return "bash"

    @property
    def description(self) -> str:
        return "Execute a bash command. Capture stdout and stderr."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "required": ["command"],
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The bash command to execute",
                },
                "timeout": {
                    "type": "integer",
                    "description": "Timeout in milliseconds (max 600000)",
                },
            },
        }

    async def execute(self, command: str, timeout: Optional[int] = None) -> ToolResult:
        timeout_ms = min(int(timeout), MAX_TIMEOUT_MS) if timeout else DEFAULT_TIMEOUT_MS

        try:
            process = await asyncio.create_subprocess_exec(
                self.shell,
                "-c",
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return ToolResult(content=f"failed to spawn command: {e}", is_error=True)

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return ToolResult(content=f"Command timed out after {timeout_ms}ms", is_error=True)
        except asyncio.CancelledError:
            process.kill()
            raise

        exit_code = process.returncode if process.returncode is not None else -1
        content = format_output(
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            exit_code,
        )
        return ToolResult(content=truncate_output(content), is_error=exit_code != 0)
