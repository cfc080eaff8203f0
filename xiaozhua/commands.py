"""斜杠命令 - 约定优于配置

- 以 cmd_ 前缀的方法自动注册为命令
- 支持命令别名和前缀匹配
- execute 返回 (是否继续, 输出文本)
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional

from .config import Config
from .context import compact_messages, context_limit_for_model, estimate_messages_tokens
from .llm.base import LLMProvider
from .llm.models import (
    MODEL_ALIASES,
    estimate_cost,
    format_cost,
    get_model_info,
    resolve_model_alias,
)
from .prompt import detect_git_branch
from .schema import Usage
from .session import Session

if TYPE_CHECKING:
    from .display import Display

logger = logging.getLogger(__name__)

THINKING_BUDGETS = {
    "off": None,
    "none": None,
    "low": 1024,
    "medium": 4096,
    "med": 4096,
    "high": 16384,
}

ALIAS_HINT = "sonnet, opus, haiku, gpt4o, gpt4o-mini"


def thinking_level_to_budget(level: str) -> Optional[int]:
    return THINKING_BUDGETS.get(level.lower())


def budget_to_thinking_level(budget: Optional[int]) -> str:
    if not budget:
        return "off"
    if budget <= 1024:
        return "low"
    if budget <= 4096:
        return "medium"
    return "high"


@dataclass
class ReplState:
    """REPL 共享状态"""

    config: Config
    session: Session
    provider: LLMProvider
    total_usage: Usage = field(default_factory=Usage)


class Commands:
    """命令管理器"""

    ALIASES = {
        "h": "help",
        "?": "help",
        "q": "quit",
        "exit": "quit",
    }

    def __init__(self, state: ReplState, display: Optional["Display"] = None):
        self.state = state
        self.display = display
        self._commands = self._discover_commands()

    def _discover_commands(self) -> dict[str, Callable]:
        """发现所有 cmd_ 前缀的方法"""
        commands = {}
        for name in dir(self):
            if name.startswith("cmd_"):
                commands[name[4:]] = getattr(self, name)
        return commands

    def list_commands(self) -> list[tuple[str, str]]:
        """列出所有命令及其描述（取 docstring 第一行）"""
        result = []
        for name in sorted(self._commands):
            doc = self._commands[name].__doc__ or ""
            result.append((name, doc.strip().split("\n")[0]))
        return result

    def get_command(self, name: str) -> Optional[Callable]:
        """获取命令（支持别名和前缀匹配）"""
        name = self.ALIASES.get(name, name)
        if name in self._commands:
            return self._commands[name]

        matches = [cmd for cmd in self._commands if cmd.startswith(name)]
        if len(matches) == 1:
            return self._commands[matches[0]]
        return None

    def get_completions(self, name: str) -> list[str]:
        """命令参数的补全候选"""
        if name in ("model", "new"):
            return sorted(MODEL_ALIASES)
        if name == "think":
            return ["off", "low", "medium", "high"]
        if name == "verbose":
            return ["on", "off"]
        return []

    async def execute(self, command_line: str) -> tuple[bool, str]:
        """执行命令

        Returns:
            (should_continue, message): 是否继续循环，输出文本
        """
        parts = command_line.strip().lstrip("/").split(maxsplit=1)
        cmd_name = parts[0].lower() if parts else ""
        args = parts[1].strip() if len(parts) > 1 else ""

        cmd_func = self.get_command(cmd_name) if cmd_name else None
        if cmd_func is None:
            return True, f"Unknown command: /{cmd_name}. Type /help for available commands."

        result = cmd_func(args)
        if inspect.iscoroutine(result):
            result = await result
        return result

    # ==================== 命令实现 ====================

    def cmd_help(self, args: str) -> tuple[bool, str]:
        """Show this help"""
        lines = [
            "Commands:",
            "  /help, /h                Show this help",
            "  /new [model]             Reset session, optionally switch model",
            "  /reset                   Clear all messages in the session",
            "  /status                  Show session status and statistics",
            "  /compact [instructions]  Compact context (summarize old messages)",
            "  /model [name]            Show or switch model (supports aliases)",
            "  /usage                   Show token usage and estimated cost",
            "  /think [level]           Set thinking mode: off, low, medium, high",
            "  /verbose [on|off]        Toggle verbose mode",
            "  /info                    Show current provider and model",
            "  exit, quit               Exit the REPL",
            "  Ctrl+D                   Exit (EOF)",
            "",
            f"Model aliases: {ALIAS_HINT}",
        ]
        return True, "\n".join(lines)

    def cmd_quit(self, args: str) -> tuple[bool, str]:
        """Exit the REPL"""
        return False, ""

    def cmd_new(self, args: str) -> tuple[bool, str]:
        """Reset session, optionally switch model"""
        lines = []
        if args:
            self.state.config.model = resolve_model_alias(args)
            lines.append(f"Model switched to: {self.state.config.model}")
        self.state.session.clear_messages()
        lines.append("Session reset. Starting fresh.")
        return True, "\n".join(lines)

    def cmd_reset(self, args: str) -> tuple[bool, str]:
        """Clear all messages in the session"""
        self.state.session.clear_messages()
        return True, "Session reset."

    def cmd_status(self, args: str) -> tuple[bool, str]:
        """Show session status and statistics"""
        config = self.state.config
        messages = self.state.session.messages
        est_tokens = estimate_messages_tokens(messages)
        limit = context_limit_for_model(config.model)
        percent = est_tokens / limit * 100 if limit > 0 else 0.0

        lines = [
            "Session Status",
            f"  Provider:          {config.provider}",
            f"  Model:             {config.model}",
            f"  Messages:          {len(messages)}",
            f"  Est. tokens:       {est_tokens} / {limit} ({percent:.1f}%)",
            f"  Session file:      {self.state.session.path}",
            f"  Thinking:          {budget_to_thinking_level(config.thinking_budget)}",
            f"  Verbose:           {'on' if config.verbose else 'off'}",
        ]
        branch = detect_git_branch()
        if branch:
            lines.append(f"  Git branch:        {branch}")
        return True, "\n".join(lines)

    async def cmd_compact(self, args: str) -> tuple[bool, str]:
        """Compact context (summarize old messages)"""
        if self.display is not None:
            self.display.info("Compacting context...")

        if args:
            system_prompt = f"You are an AI assistant. Additional instructions: {args}"
        else:
            system_prompt = "You are an AI assistant."

        session = self.state.session
        before_count = len(session.messages)
        before_tokens = estimate_messages_tokens(session.messages)

        compacted = await compact_messages(
            self.state.provider, session.messages, self.state.config.model, system_prompt
        )
        session.replace_messages(compacted)
        session.save()

        after_tokens = estimate_messages_tokens(compacted)
        return True, (
            f"Compacted: {before_count} -> {len(compacted)} messages, "
            f"~{before_tokens} -> ~{after_tokens} tokens"
        )

    def cmd_model(self, args: str) -> tuple[bool, str]:
        """Show or switch model (supports aliases)"""
        config = self.state.config
        if not args:
            return True, f"Current model: {config.model}\nAliases: {ALIAS_HINT}"
        config.model = resolve_model_alias(args)
        return True, f"Model switched to: {config.model}"

    def cmd_usage(self, args: str) -> tuple[bool, str]:
        """Show token usage and estimated cost"""
        model = self.state.config.model
        usage = self.state.total_usage
        lines = [
            "Session Usage",
            f"  Model:             {model}",
            f"  Input tokens:      {usage.input_tokens}",
            f"  Output tokens:     {usage.output_tokens}",
        ]
        if usage.cache_creation_input_tokens > 0 or usage.cache_read_input_tokens > 0:
            lines.append(f"  Cache write:       {usage.cache_creation_input_tokens}")
            lines.append(f"  Cache read:        {usage.cache_read_input_tokens}")
        lines.append(f"  Total tokens:      {usage.total_tokens}")

        cost = estimate_cost(model, usage.input_tokens, usage.output_tokens)
        if cost is None:
            lines.append("  Est. cost:         (unknown model pricing)")
        else:
            lines.append(f"  Est. cost:         {format_cost(cost)}")
            info = get_model_info(model)
            if info:
                lines.append(
                    f"  (${info.input_price_per_mtok}/M in, ${info.output_price_per_mtok}/M out)"
                )
        return True, "\n".join(lines)

    def cmd_think(self, args: str) -> tuple[bool, str]:
        """Set thinking mode: off, low, medium, high"""
        config = self.state.config
        if args:
            level = args.lower()
            if level not in THINKING_BUDGETS:
                return True, f"Unknown thinking level: '{args}'. Use: off, low, medium, high"
            config.thinking_budget = thinking_level_to_budget(level)
            header = f"Thinking mode set to: {budget_to_thinking_level(config.thinking_budget)}"
        else:
            header = f"Thinking mode: {budget_to_thinking_level(config.thinking_budget)}"

        if config.thinking_budget:
            return True, f"{header}\nBudget: {config.thinking_budget} tokens"
        return True, header

    def cmd_verbose(self, args: str) -> tuple[bool, str]:
        """Toggle verbose mode"""
        config = self.state.config
        value = args.lower()
        if not value:
            config.verbose = not config.verbose
        elif value in ("on", "true", "1", "yes"):
            config.verbose = True
        elif value in ("off", "false", "0", "no"):
            config.verbose = False
        else:
            return True, f"Unknown value: '{args}'. Use: on, off"

        if self.display is not None:
            self.display.verbose = config.verbose
        return True, f"Verbose mode: {'on' if config.verbose else 'off'}"

    def cmd_info(self, args: str) -> tuple[bool, str]:
        """Show current provider and model"""
        config = self.state.config
        lines = [f"Provider: {config.provider}", f"Model: {config.model}"]
        if config.base_url:
            lines.append(f"Base URL: {config.base_url}")
        if config.max_tokens:
            lines.append(f"Max tokens: {config.max_tokens}")
        return True, "\n".join(lines)
