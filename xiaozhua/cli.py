"""
小爪 CLI 入口

- chat: 交互式 REPL 或单次执行
- sessions list: 列出会话
- providers list: 列出支持的 Provider
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .agent import Agent
from .commands import Commands, ReplState
from .config import Config
from .display import Display
from .errors import ConfigError, XiaozhuaError
from .images import build_user_message
from .input import EnhancedInput
from .llm.models import estimate_cost, format_cost, resolve_model_alias
from .llm.providers import PROVIDER_CONFIGS, create_provider
from .schema import AgentResult
from .session import SessionManager
from .tools.policy import ToolPolicy
from .tools.registry import ToolRegistry, create_default_tools

logger = logging.getLogger(__name__)

LOG_ENV_VAR = "XIAOZHUA_LOG"
EXIT_INTERRUPTED = 130
SUBCOMMANDS = ("chat", "sessions", "providers")


def setup_logging(verbose: bool = False) -> None:
    """日志统一输出到 stderr"""
    level_name = os.environ.get(LOG_ENV_VAR, "").upper()
    if level_name:
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            level = logging.WARNING
    else:
        level = logging.DEBUG if verbose else logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # httpx 的 INFO 日志会打印每个请求
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def format_usage_line(result: AgentResult, model: str) -> Optional[str]:
    """一轮结束后的用量行，没有工具调用也没有用量时返回 None"""
    usage = result.usage
    if result.tool_calls == 0 and usage.input_tokens == 0:
        return None

    plural = "" if result.tool_calls == 1 else "s"
    cost = estimate_cost(model, usage.input_tokens, usage.output_tokens)
    cost_str = f" ~{format_cost(cost)}" if cost is not None else ""
    return (
        f"({result.tool_calls} tool call{plural}, "
        f"{usage.input_tokens} in / {usage.output_tokens} out tokens{cost_str})"
    )


def apply_overrides(config: Config, args: argparse.Namespace) -> None:
    """命令行参数覆盖配置文件"""
    if args.provider:
        config.provider = args.provider
    if args.model:
        config.model = args.model
    if args.api_key:
        config.api_key = args.api_key
    if args.base_url:
        config.base_url = args.base_url
    if args.system_prompt:
        config.system_prompt = args.system_prompt
    if args.max_tokens is not None:
        config.max_tokens = args.max_tokens
    if args.verbose:
        config.verbose = True
    config.model = resolve_model_alias(config.model)


async def run_turn(agent: Agent, display: Display) -> Optional[AgentResult]:
    """把一轮 Agent 运行放进任务

    第一次 Ctrl+C 取消任务并返回 None，任务还在收尾时再按一次直接退出。
    """
    loop = asyncio.get_running_loop()
    task = asyncio.create_task(agent.run())
    interrupts = 0

    def on_sigint():
        nonlocal interrupts
        interrupts += 1
        if interrupts > 1:
            raise SystemExit(EXIT_INTERRUPTED)
        display.warning("\nInterrupted. Press Ctrl+C again to force quit.")
        task.cancel()

    loop.add_signal_handler(signal.SIGINT, on_sigint)
    try:
        return await task
    except asyncio.CancelledError:
        if interrupts and task.cancelled():
            return None
        raise
    finally:
        loop.remove_signal_handler(signal.SIGINT)


async def run_prompt(agent: Agent, state: ReplState, display: Display, text: str) -> bool:
    """执行一条用户输入，返回是否成功"""
    message, attached = build_user_message(text)
    for path in attached:
        display.info(f"Attached image: {path}")
    state.session.push_message(message)

    ok = True
    try:
        result = await run_turn(agent, display)
    except XiaozhuaError as e:
        display.error(str(e))
        ok = False
    else:
        if result is not None:
            state.total_usage.add(result.usage)
            line = format_usage_line(result, state.config.model)
            if line:
                display.info(line)

    try:
        state.session.save()
    except XiaozhuaError as e:
        display.error(f"Failed to save session: {e}")
    return ok


async def interactive_loop(agent: Agent, state: ReplState, display: Display) -> None:
    """交互循环"""
    commands = Commands(state, display=display)
    enhanced_input = EnhancedInput(commands=commands)

    display.info(f"xiaozhua v{__version__} ({state.config.provider}:{state.config.model})")
    display.info('Type "exit" or Ctrl+D to quit. Type /help for commands.')

    while True:
        try:
            line = await enhanced_input.prompt_async()
        except KeyboardInterrupt:
            continue
        except EOFError:
            display.print()
            break

        line = line.strip()
        if not line:
            continue
        if line in ("exit", "quit"):
            break

        if line.startswith("/"):
            try:
                should_continue, message = await commands.execute(line)
            except XiaozhuaError as e:
                display.error(str(e))
                continue
            if message:
                display.print(message)
            if not should_continue:
                break
            continue

        await run_prompt(agent, state, display, line)


async def chat_async(args: argparse.Namespace) -> int:
    """chat 子命令"""
    try:
        config = Config.load()
        apply_overrides(config, args)
        config.validate()
        config.resolve_api_key()
    except ConfigError as e:
        Console(stderr=True).print(f"[red]Config error:[/red] {e}", highlight=False)
        return 1

    setup_logging(config.verbose)

    interactive = args.interactive or args.prompt is None
    display = Display(verbose=config.verbose)

    session_mgr = SessionManager(config.sessions_path())
    try:
        session = session_mgr.load_or_create(args.session)
    except (XiaozhuaError, ValueError) as e:
        display.error(str(e))
        return 1

    if args.no_tools:
        config.tools.profile = "none"
    tools = ToolRegistry(
        create_default_tools(os.getcwd()),
        policy=ToolPolicy(config.tools.profile),
        exec_config=config.tools.exec,
    )

    provider = create_provider(config)
    state = ReplState(config=config, session=session, provider=provider)
    agent = Agent(provider, session, tools, config, display=display)
    logger.debug(
        "Session '%s' with %d messages, provider=%s model=%s",
        session.name,
        len(session),
        config.provider,
        config.model,
    )

    try:
        if args.prompt is not None:
            ok = await run_prompt(agent, state, display, args.prompt)
            if not ok and not interactive:
                return 1
        if interactive:
            await interactive_loop(agent, state, display)
    finally:
        await provider.aclose()
    return 0


def cmd_sessions(args: argparse.Namespace) -> int:
    """sessions list 子命令"""
    display = Display()
    try:
        config = Config.load()
    except ConfigError as e:
        display.error(str(e))
        return 1

    sessions = SessionManager(config.sessions_path()).list_sessions()
    if not sessions:
        display.info("No sessions found.")
        return 0

    rows = [
        [s.name, s.updated_at.strftime("%Y-%m-%d %H:%M:%S"), f"{s.size} B"]
        for s in sessions
    ]
    display.table("Sessions", ["Name", "Updated", "Size"], rows)
    return 0


def cmd_providers(args: argparse.Namespace) -> int:
    """providers list 子命令"""
    rows = [
        [p.name, p.display_name, p.api_base, p.api_key_env or "-"]
        for p in PROVIDER_CONFIGS.values()
    ]
    Display().table("Providers", ["Name", "Display name", "API base", "API key env"], rows)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xiaozhua",
        description="小爪 - 终端里的 AI 编程助手",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  xiaozhua                          # 启动交互式 REPL
  xiaozhua chat "解释这个项目"       # 单次执行
  xiaozhua chat -s work -m opus     # 指定会话和模型
  xiaozhua sessions list            # 列出会话
        """,
    )
    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"xiaozhua v{__version__}",
    )
    subparsers = parser.add_subparsers(dest="command")

    chat = subparsers.add_parser("chat", help="与模型对话")
    chat.add_argument("prompt", nargs="?", help="单次执行的提示词，省略时进入交互模式")
    chat.add_argument("-s", "--session", default="default", help="会话名 (默认: default)")
    chat.add_argument("-i", "--interactive", action="store_true", help="执行提示词后进入交互模式")
    chat.add_argument("-m", "--model", help="模型名或别名")
    chat.add_argument("-p", "--provider", help="Provider 名称")
    chat.add_argument("--api-key", help="API key")
    chat.add_argument("--system-prompt", help="覆盖系统提示词")
    chat.add_argument("--base-url", help="API 地址")
    chat.add_argument("--no-tools", action="store_true", help="禁用所有工具")
    chat.add_argument("--max-tokens", type=int, help="单次回复的最大 token 数")
    chat.add_argument("-v", "--verbose", action="store_true", help="显示调试信息")

    sessions = subparsers.add_parser("sessions", help="会话管理")
    sessions.add_argument("action", choices=["list"])

    providers = subparsers.add_parser("providers", help="Provider 信息")
    providers.add_argument("action", choices=["list"])

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """主入口"""
    argv = list(sys.argv[1:] if argv is None else argv)
    # 没有子命令时默认 chat
    if not argv or (argv[0] not in SUBCOMMANDS and argv[0] not in ("-h", "--help", "-V", "--version")):
        argv.insert(0, "chat")

    args = build_parser().parse_args(argv)

    if args.command == "sessions":
        setup_logging()
        sys.exit(cmd_sessions(args))
    if args.command == "providers":
        sys.exit(cmd_providers(args))

    sys.exit(asyncio.run(chat_async(args)))


if __name__ == "__main__":
    main()
