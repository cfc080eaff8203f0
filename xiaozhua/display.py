"""终端显示

回复文本流式写到 stdout；思考、工具调用、用量和提示写到 stderr，
这样管道里只拿到模型的回答。
"""

from __future__ import annotations

import json
from typing import Any, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .agent import AgentCallbacks, truncate_preview
from .context import CompactResult
from .schema import ToolResult


class Display(AgentCallbacks):
    """rich 终端显示"""

    def __init__(
        self,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
        verbose: bool = False,
    ):
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)
        self.verbose = verbose

    # Agent 回调

    def on_text(self, text: str) -> None:
        self.console.print(text, end="", markup=False, highlight=False, soft_wrap=True)

    def on_text_end(self) -> None:
        self.console.print()

    def on_thinking(self, text: str) -> None:
        self.err_console.print(
            Text(text, style="dim italic"), end="", highlight=False, soft_wrap=True
        )

    def on_tool_call(self, tool_id: str, name: str, arguments: Any) -> None:
        line = Text("\n⚙ Tool: ", style="cyan")
        line.append(name, style="bold cyan")
        line.append(f" ({tool_id})", style="dim")
        self.err_console.print(line)
        if self.verbose:
            args = json.dumps(arguments, ensure_ascii=False)
            self.err_console.print(Text(f"  {truncate_preview(args)}", style="dim"))
        self.err_console.print(Text(f"  Running {name}…", style="dim"))

    def on_tool_result(self, name: str, result: ToolResult, elapsed: float) -> None:
        preview = truncate_preview(result.content)
        if result.is_error:
            line = Text("  ✗ ", style="red")
            line.append(preview, style="red")
        else:
            line = Text("  ✓ ", style="green")
            if self.verbose:
                line.append(f"({elapsed * 1000:.1f}ms) ", style="dim")
            line.append(preview, style="dim")
        self.err_console.print(line)

    def on_retry(self, attempt: int, max_retries: int, error: Exception, delay: float) -> None:
        self.warning(f"Retryable error (attempt {attempt}/{max_retries}): {error}. Retrying in {delay:g}s…")

    def on_compact(self, result: CompactResult) -> None:
        self.warning(
            f"Compacted: {result.messages_before} -> {result.messages_after} messages "
            f"({result.tokens_before} -> ~{result.tokens_after} tokens)"
        )

    # 通用输出

    def print(self, text: str = "", style: Optional[str] = None) -> None:
        self.console.print(text, style=style, markup=False, highlight=False)

    def markdown(self, text: str) -> None:
        self.console.print(Markdown(text))

    def success(self, message: str) -> None:
        self.err_console.print(Text(message, style="green"))

    def error(self, message: str) -> None:
        self.err_console.print(Text(f"Error: {message}", style="red"))

    def warning(self, message: str) -> None:
        self.err_console.print(Text(message, style="yellow"))

    def info(self, message: str) -> None:
        self.err_console.print(Text(message, style="dim"))

    def panel(self, content: str, title: str = "", style: str = "cyan") -> None:
        self.console.print(Panel(content, title=title, border_style=style, expand=False))

    def table(self, title: str, columns: list[str], rows: list[list[str]]) -> None:
        table = Table(title=title)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*row)
        self.console.print(table)
