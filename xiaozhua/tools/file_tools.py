"""文件操作工具: read / write / edit / glob / grep"""

from __future__ import annotations

import asyncio
import glob as globlib
import logging
import os
import uuid
from pathlib import Path
from typing import Any, List, Optional, Tuple

from ..schema import ToolResult
from .base import Tool

logger = logging.getLogger(__name__)

DEFAULT_READ_LIMIT = 2000
MAX_GLOB_RESULTS = 10_000


def split_lines(content: str) -> List[str]:
    """按 \\n 分行，去掉行尾 \\r，末尾换行不产生空行"""
    if not content:
        return []
    lines = content.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def atomic_write(path: Path, content: str) -> None:
    """先写临时文件再 rename"""
    temp_path = path.parent / f".{path.name}.{uuid.uuid4().hex[:8]}.tmp"
    temp_path.write_text(content, encoding="utf-8")
    try:
        os.replace(temp_path, path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise


class _WorkspaceTool(Tool):
    """相对路径按工作目录解析"""

    def __init__(self, workspace_dir: str = "."):
        self.workspace_dir = Path(workspace_dir).absolute()

    def resolve(self, path: str) -> Path:
        file_path = Path(path).expanduser()
        if not file_path.is_absolute():
            file_path = self.workspace_dir / file_path
        return file_path


class ReadTool(_WorkspaceTool):
    """读取文件工具"""

    @property
    def name(self) -> str:
        return "read"

    @property
    def description(self) -> str:
        return "Read a file from the filesystem with line numbers."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "required": ["file_path"],
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": "Absolute path to the file to read",
                },
                "offset": {
                    "type": "integer",
                    "description": "Line number to start reading from (1-based)",
                },
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of lines to read",
                },
            },
        }

    async def execute(
        self, file_path: str, offset: Optional[int] = None, limit: Optional[int] = None
    ) -> ToolResult:
        try:
            content = self.resolve(file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ToolResult(content=f"Failed to read {file_path}: {e}", is_error=True)

        lines = split_lines(content)
        start = max(int(offset) - 1, 0) if offset else 0
        count = int(limit) if limit is not None else DEFAULT_READ_LIMIT
        selected = lines[start : start + count]

        # cat -n 风格
        output = "".join(f"{start + i + 1:>6}\t{line}\n" for i, line in enumerate(selected))
        return ToolResult(content=output or "(empty file)")


class WriteTool(_WorkspaceTool):
    """写入文件工具"""

    @property
    def name(self) -> str:
        return "write"

    @property
    def description(self) -> str:
        return "Write content to a file, creating parent directories if needed."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "required": ["file_path", "content"],
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": "Absolute path to the file to write",
                },
                "content": {
                    "type": "string",
                    "description": "Content to write to the file",
                },
            },
        }

    async def execute(self, file_path: str, content: str) -> ToolResult:
        target = self.resolve(file_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return ToolResult(
                content=f"Failed to create directory {target.parent}: {e}", is_error=True
            )
        try:
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            return ToolResult(content=f"Failed to write {file_path}: {e}", is_error=True)
        return ToolResult(content=f"Successfully wrote to {file_path}")


class EditTool(_WorkspaceTool):
    """编辑文件工具：精确替换"""

    @property
    def name(self) -> str:
        return "edit"

    @property
    def description(self) -> str:
        return "Perform exact string replacement in a file."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "required": ["file_path", "old_string", "new_string"],
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": "Absolute path to the file to modify",
                },
                "old_string": {
                    "type": "string",
                    "description": "The exact text to replace",
                },
                "new_string": {
                    "type": "string",
                    "description": "The replacement text",
                },
                "replace_all": {
                    "type": "boolean",
                    "description": "Replace all occurrences (default: false)",
                },
            },
        }

    async def execute(
        self, file_path: str, old_string: str, new_string: str, replace_all: bool = False
    ) -> ToolResult:
        if old_string == new_string:
            return ToolResult(content="old_string and new_string are identical.", is_error=True)

        target = self.resolve(file_path)
        try:
            content = target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ToolResult(content=f"Failed to read {file_path}: {e}", is_error=True)

        occurrences = content.count(old_string) if old_string else 0
        if occurrences == 0:
            return ToolResult(
                content=f"Error: old_string not found in {file_path}. Ensure it matches exactly.",
                is_error=True,
            )
        if not replace_all and occurrences > 1:
            return ToolResult(
                content=(
                    f"Error: old_string found {occurrences} times in {file_path}. "
                    "Provide more context to make it unique, or use replace_all."
                ),
                is_error=True,
            )

        if replace_all:
            new_content = content.replace(old_string, new_string)
        else:
            new_content = content.replace(old_string, new_string, 1)

        try:
            atomic_write(target, new_content)
        except OSError as e:
            return ToolResult(content=f"Failed to write {file_path}: {e}", is_error=True)

        replaced = occurrences if replace_all else 1
        return ToolResult(content=f"Replaced {replaced} occurrence(s) in {file_path}")


class GlobTool(_WorkspaceTool):
    """按 glob 模式查找文件"""

    @property
    def name(self) -> str:
        return "glob"

    @property
    def description(self) -> str:
        return "Find files matching a glob pattern."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "required": ["pattern"],
            "properties": {
                "pattern": {
                    "type": "string",
                    "description": "Glob pattern (e.g. '**/*.py')",
                },
                "path": {
                    "type": "string",
                    "description": "Directory to search in (defaults to cwd)",
                },
            },
        }

    async def execute(self, pattern: str, path: Optional[str] = None) -> ToolResult:
        base_dir = self.resolve(path) if path else self.workspace_dir
        full_pattern = str(base_dir / pattern)

        # 文件系统遍历放到线程里
        results, truncated = await asyncio.to_thread(self._collect, full_pattern)

        content = "\n".join(results) if results else "No files found matching the pattern."
        if truncated:
            content += f"\n\n[truncated: showing first {MAX_GLOB_RESULTS} results]"
        return ToolResult(content=content)

    @staticmethod
    def _collect(full_pattern: str) -> Tuple[List[str], bool]:
        results: List[str] = []
        for match in globlib.iglob(full_pattern, recursive=True):
            if len(results) >= MAX_GLOB_RESULTS:
                return sorted(results), True
            results.append(match)
        return sorted(results), False


class GrepTool(_WorkspaceTool):
    """正则搜索文件内容 (rg，找不到时退回 grep)"""

    @property
    def name(self) -> str:
        return "grep"

    @property
    def description(self) -> str:
        return "Search file contents using regular expressions."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "required": ["pattern"],
            "properties": {
                "pattern": {
                    "type": "string",
                    "description": "Regex pattern to search for",
                },
                "path": {
                    "type": "string",
                    "description": "File or directory to search in",
                },
                "include": {
                    "type": "string",
                    "description": "File pattern filter (e.g. '*.py')",
                },
            },
        }

    async def execute(
        self, pattern: str, path: Optional[str] = None, include: Optional[str] = None
    ) -> ToolResult:
        search_path = str(self.resolve(path)) if path else str(self.workspace_dir)
        try:
            output = await self._run_grep(pattern, search_path, include)
        except OSError as e:
            return ToolResult(content=f"grep failed: {e}", is_error=True)
        return ToolResult(content=output or "No matches found.")

    async def _run_grep(self, pattern: str, path: str, include: Optional[str]) -> str:
        rg_args = ["--no-heading", "-n", pattern, path]
        if include:
            rg_args.insert(0, f"--glob={include}")
        try:
            return await self._run("rg", rg_args)
        except FileNotFoundError:
            logger.debug("rg not found, falling back to grep")

        grep_args = ["-rn"]
        if include:
            grep_args.append(f"--include={include}")
        grep_args.extend([pattern, path])
        try:
            return await self._run("grep", grep_args)
        except FileNotFoundError as e:
            raise OSError(f"neither rg nor grep available: {e}") from e

    @staticmethod
    async def _run(program: str, args: List[str]) -> str:
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await process.communicate()
        return stdout.decode("utf-8", errors="replace")
