"""
系统提示词构建

依次拼接：
1. 基础提示词 (配置或默认)
2. 可用工具列表
3. 项目说明 (当前目录的 CLAUDE.md)
4. 记忆 (MEMORY.md)
5. 工作区信息 (目录、日期、Git 分支)
"""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from .memory import read_memory_file
from .schema import ToolDefinition

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an AI assistant with access to tools for reading files, "
    "writing code, and running commands."
)
PROJECT_INSTRUCTIONS_FILE = "CLAUDE.md"
MEMORY_FILE = "MEMORY.md"


def build_system_prompt(
    config: "Config",
    tools: List[ToolDefinition],
    cwd: Optional[Path] = None,
    memory_dir: Optional[Path] = None,
) -> str:
    cwd = Path(cwd) if cwd else Path.cwd()
    parts = [config.system_prompt or DEFAULT_SYSTEM_PROMPT]

    if tools:
        section = "\n\n## Available Tools\n"
        for tool in tools:
            section += f"\n- **{tool.name}**: {tool.description}"
        parts.append(section)

    instructions = _read_text(cwd / PROJECT_INSTRUCTIONS_FILE)
    if instructions and instructions.strip():
        parts.append(f"\n\n## Project Instructions\n\n{instructions.strip()}")

    try:
        memory = read_memory_file(MEMORY_FILE, memory_dir)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read memory file: %s", e)
        memory = None
    if memory and memory.strip():
        parts.append(f"\n\n## Memory\n\n{memory.strip()}")

    meta = "\n\n## Workspace\n"
    meta += f"\n- Working directory: {cwd}"
    meta += f"\n- Date: {date.today().strftime('%Y-%m-%d')}"
    branch = detect_git_branch(cwd)
    if branch:
        meta += f"\n- Git branch: {branch}"
    parts.append(meta)

    return "".join(parts)


def estimate_tool_definitions_tokens(tools: List[ToolDefinition]) -> int:
    size = sum(
        len(t.name.encode("utf-8"))
        + len(t.description.encode("utf-8"))
        + len(json.dumps(t.input_schema, ensure_ascii=False, separators=(",", ":")).encode("utf-8"))
        for t in tools
    )
    return (size + 3) // 4


def detect_git_branch(cwd: Optional[Path] = None) -> Optional[str]:
    """从当前目录向上查找 .git/HEAD"""
    directory = Path(cwd) if cwd else Path.cwd()
    for candidate in (directory, *directory.parents):
        head = candidate / ".git" / "HEAD"
        if head.exists():
            return parse_git_head(head)
    return None


def parse_git_head(path: Path) -> Optional[str]:
    content = _read_text(path)
    if content is None:
        return None
    trimmed = content.strip()
    if trimmed.startswith("ref: "):
        ref = trimmed[len("ref: ") :]
        if ref.startswith("refs/heads/"):
            return ref[len("refs/heads/") :]
        return ref
    # detached HEAD
    return trimmed[:12]


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
