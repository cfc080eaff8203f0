"""交互输入

- 斜杠命令补全
- 历史记录 (~/.xiaozhua/history)
- Ctrl+L 清屏
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings

from .config import home_dir

if TYPE_CHECKING:
    from .commands import Commands

PROMPT = "> "


def history_path() -> Path:
    return home_dir() / "history"


class CommandCompleter(Completer):
    """斜杠命令补全器"""

    def __init__(self, commands: "Commands"):
        self.commands = commands

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor
        if not text.startswith("/"):
            return

        cmd_name, sep, arg_text = text[1:].partition(" ")
        if not sep:
            for name, desc in self.commands.list_commands():
                if name.startswith(cmd_name):
                    yield Completion(
                        name,
                        start_position=-len(cmd_name),
                        display=f"/{name}",
                        display_meta=desc[:30],
                    )
            return

        # 参数补全只看第一个参数
        if " " in arg_text:
            return
        for value in self.commands.get_completions(cmd_name.lower()):
            if value.startswith(arg_text):
                yield Completion(value, start_position=-len(arg_text))


class EnhancedInput:
    """基于 prompt_toolkit 的输入处理器"""

    def __init__(
        self,
        commands: Optional["Commands"] = None,
        history_file: Optional[Path] = None,
    ):
        if history_file is None:
            history_file = history_path()
        history_file.parent.mkdir(parents=True, exist_ok=True)

        self.bindings = KeyBindings()
        self._setup_keybindings()

        self.session: PromptSession = PromptSession(
            history=FileHistory(str(history_file)),
            auto_suggest=AutoSuggestFromHistory(),
            completer=CommandCompleter(commands) if commands else None,
            key_bindings=self.bindings,
            multiline=False,
            enable_history_search=True,
        )

    def _setup_keybindings(self):
        @self.bindings.add("c-l")
        def clear_screen(event):
            """Ctrl+L 清屏"""
            event.app.renderer.clear()

    async def prompt_async(self, message: str = PROMPT) -> str:
        """读取一行输入，Ctrl+C 抛出 KeyboardInterrupt，Ctrl+D 抛出 EOFError"""
        return await self.session.prompt_async(message)
