"""工具策略

按 profile 决定可用工具，按 exec 安全级别决定 bash 命令是否放行：
- full: 全部工具
- coding: 文件系统 + bash + web_fetch
- minimal: 只读工具
- none: 不提供工具
"""

from __future__ import annotations

import os
from typing import FrozenSet, Iterable, List, Optional

from ..schema import ToolDefinition

PROFILES = ("full", "coding", "minimal", "none")
EXEC_SECURITY_LEVELS = ("full", "deny", "allowlist")

PROFILE_TOOLS: dict[str, Optional[FrozenSet[str]]] = {
    "full": None,  # None 表示不限制
    "coding": frozenset({"bash", "read", "write", "edit", "glob", "grep", "web_fetch"}),
    "minimal": frozenset({"read", "glob", "grep"}),
    "none": frozenset(),
}

# allowlist 模式下出现即拒绝的 shell 链接/注入片段
SHELL_CHAIN_MARKERS = (";", "&&", "|", "`", "$(", "\n", "\r", "<<", "<(", ">(")


class ToolPolicy:
    """工具策略"""

    def __init__(self, profile: str = "full"):
        self.profile = profile

    @property
    def allowed_tools(self) -> Optional[FrozenSet[str]]:
        # 未知 profile 视为 full
        return PROFILE_TOOLS.get(self.profile)

    def is_allowed(self, name: str) -> bool:
        allowed = self.allowed_tools
        return allowed is None or name in allowed

    def filter_definitions(self, definitions: Iterable[ToolDefinition]) -> List[ToolDefinition]:
        return [d for d in definitions if self.is_allowed(d.name)]


def has_shell_chaining(command: str) -> bool:
    return any(marker in command for marker in SHELL_CHAIN_MARKERS)


def is_command_allowed(command: str, allowlist: List[str], security: str) -> bool:
    """检查 bash 命令是否被 exec 策略放行

    allowlist 模式下：以空格结尾的条目是前缀匹配 (如 "git ")，
    否则只匹配命令名 (取路径 basename)。含 shell 链接符的命令一律拒绝。
    """
    if security == "full":
        return True
    if security != "allowlist":
        return False
    if has_shell_chaining(command):
        return False

    trimmed = command.strip()
    tokens = trimmed.split()
    first_token = tokens[0] if tokens else ""
    bin_name = (os.path.basename(first_token) or first_token).lower()
    lowered = trimmed.lower()

    for pattern in allowlist:
        p = pattern.lower()
        if p.endswith(" "):
            if lowered.startswith(p):
                return True
        elif bin_name == p:
            return True
    return False
