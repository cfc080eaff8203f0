"""CLI 测试"""

import io

import pytest
from prompt_toolkit.document import Document
from rich.console import Console

from xiaozhua import cli
from xiaozhua.agent import Agent
from xiaozhua.commands import Commands, ReplState
from xiaozhua.config import Config
from xiaozhua.display import Display
from xiaozhua.errors import AuthenticationError
from xiaozhua.events import MessageEnd, StopReason, TextDelta, UsageUpdate
from xiaozhua.input import CommandCompleter, history_path
from xiaozhua.schema import AgentResult, Usage
from xiaozhua.session import Session
from xiaozhua.tools.registry import ToolRegistry


def make_display():
    out, err = io.StringIO(), io.StringIO()
    display = Display(console=Console(file=out), err_console=Console(file=err))
    return display, out, err


class TestFormatUsageLine:
    """用量行测试"""

    def test_nothing_to_report(self):
        """测试没有工具调用也没有用量"""
        assert cli.format_usage_line(AgentResult(), "gpt-4o") is None

    def test_single_call_unknown_model(self):
        """测试单数形式，未知模型不显示费用"""
        result = AgentResult(tool_calls=1, usage=Usage(input_tokens=10, output_tokens=2))
        assert cli.format_usage_line(result, "mystery") == "(1 tool call, 10 in / 2 out tokens)"

    def test_with_cost(self):
        """测试已知模型显示费用"""
        result = AgentResult(tool_calls=0, usage=Usage(input_tokens=1_000_000, output_tokens=0))
        assert cli.format_usage_line(result, "gpt-4o") == (
            "(0 tool calls, 1000000 in / 0 out tokens ~$2.50)"
        )


class TestArguments:
    """参数解析与配置覆盖测试"""

    def test_chat_defaults(self):
        """测试 chat 默认参数"""
        args = cli.build_parser().parse_args(["chat"])
        assert args.prompt is None
        assert args.session == "default"
        assert args.interactive is False
        assert args.no_tools is False

    def test_overrides(self):
        """测试命令行覆盖配置，模型别名被解析"""
        args = cli.build_parser().parse_args([
            "chat", "hello", "-m", "haiku", "-p", "openai", "--api-key", "k",
            "--base-url", "http://x/v1", "--system-prompt", "Be brief.", "--max-tokens", "100", "-v",
        ])
        config = Config()
        cli.apply_overrides(config, args)
        assert args.prompt == "hello"
        assert config.model == "claude-haiku-3-20250307"
        assert config.provider == "openai"
        assert config.api_key == "k"
        assert config.base_url == "http://x/v1"
        assert config.system_prompt == "Be brief."
        assert config.max_tokens == 100
        assert config.verbose is True

    def test_no_overrides_keep_config(self):
        """测试未指定的参数不覆盖配置"""
        args = cli.build_parser().parse_args(["chat"])
        config = Config(provider="ollama", model="sonnet", verbose=False)
        cli.apply_overrides(config, args)
        assert config.provider == "ollama"
        assert config.model == "claude-sonnet-4-20250514"

    def test_default_subcommand_is_chat(self, monkeypatch):
        """测试没有子命令时默认 chat"""
        seen = []

        async def fake_chat(args):
            seen.append(args)
            return 0

        monkeypatch.setattr(cli, "chat_async", fake_chat)
        with pytest.raises(SystemExit) as exc:
            cli.main(["explain this", "-s", "work"])
        assert exc.value.code == 0
        assert seen[0].command == "chat"
        assert seen[0].prompt == "explain this"
        assert seen[0].session == "work"

    def test_version(self, capsys):
        """测试 --version"""
        with pytest.raises(SystemExit):
            cli.main(["--version"])
        assert "xiaozhua v" in capsys.readouterr().out


class TestSubcommands:
    """子命令测试"""

    def test_providers_list(self, capsys):
        """测试列出 Provider"""
        with pytest.raises(SystemExit) as exc:
            cli.main(["providers", "list"])
        assert exc.value.code == 0
        out = capsys.readouterr().out
        assert "Providers" in out
        assert "ollama" in out

    def test_sessions_empty(self, capsys, monkeypatch, tmp_path):
        """测试没有会话"""
        config_path = tmp_path / "config.yaml"
        config_path.write_text(f"sessions_dir: {tmp_path / 'sessions'}\n")
        monkeypatch.setenv("XIAOZHUA_CONFIG", str(config_path))
        assert cli.cmd_sessions(None) == 0
        assert "No sessions found." in capsys.readouterr().err

    def test_sessions_listed(self, capsys, monkeypatch, tmp_path):
        """测试列出会话"""
        sessions_dir = tmp_path / "sessions"
        config_path = tmp_path / "config.yaml"
        config_path.write_text(f"sessions_dir: {sessions_dir}\n")
        monkeypatch.setenv("XIAOZHUA_CONFIG", str(config_path))
        session = Session(sessions_dir / "work.json")
        session.add_user_message("hi")
        session.save()

        assert cli.cmd_sessions(None) == 0
        assert "work" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_chat_config_error(self, monkeypatch, tmp_path):
        """测试配置错误时退出码为 1"""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("temperature: 5\n")
        monkeypatch.setenv("XIAOZHUA_CONFIG", str(config_path))
        args = cli.build_parser().parse_args(["chat", "hi"])
        assert await cli.chat_async(args) == 1


class TestRunPrompt:
    """单条输入执行测试"""

    @pytest.mark.asyncio
    async def test_run_prompt(self, tmp_path, scripted_provider, test_config):
        """测试执行一轮、累计用量并保存会话"""
        provider = scripted_provider([[
            TextDelta(text="Hello!"),
            UsageUpdate(input_tokens=12, output_tokens=3),
            MessageEnd(stop_reason=StopReason.END_TURN),
        ]])
        session = Session(tmp_path / "s.json")
        display, out, err = make_display()
        state = ReplState(config=test_config, session=session, provider=provider)
        agent = Agent(provider, session, ToolRegistry([]), test_config, display=display)

        ok = await cli.run_prompt(agent, state, display, "hi there")

        assert ok is True
        assert "Hello!" in out.getvalue()
        assert "(0 tool calls, 12 in / 3 out tokens)" in err.getvalue()
        assert state.total_usage.input_tokens == 12
        assert [m.role for m in Session.load(session.path).messages] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_run_prompt_error(self, tmp_path, scripted_provider, test_config):
        """测试 API 错误显示后仍保存用户消息"""
        provider = scripted_provider([AuthenticationError("bad key")])
        session = Session(tmp_path / "s.json")
        display, _, err = make_display()
        state = ReplState(config=test_config, session=session, provider=provider)
        agent = Agent(provider, session, ToolRegistry([]), test_config, display=display)

        ok = await cli.run_prompt(agent, state, display, "hi")

        assert ok is False
        assert "Error: bad key" in err.getvalue()
        assert len(Session.load(session.path).messages) == 1


class TestInput:
    """输入补全测试"""

    def test_history_path(self, isolated_home):
        """测试历史文件位置"""
        assert history_path() == isolated_home / ".xiaozhua" / "history"

    def test_completer(self, tmp_path, scripted_provider):
        """测试斜杠命令补全"""
        state = ReplState(config=Config(), session=Session(tmp_path / "s.json"),
                          provider=scripted_provider())
        completer = CommandCompleter(Commands(state))

        names = [c.text for c in completer.get_completions(Document("/th"), None)]
        assert names == ["think"]

        assert list(completer.get_completions(Document("hello"), None)) == []

        values = [c.text for c in completer.get_completions(Document("/think m"), None)]
        assert values == ["medium"]
        values = [c.text for c in completer.get_completions(Document("/verbose "), None)]
        assert values == ["on", "off"]
        assert list(completer.get_completions(Document("/think low extra"), None)) == []
