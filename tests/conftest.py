"""pytest 配置"""

import asyncio
import sys
from pathlib import Path

import pytest

# 添加项目根目录到 Python 路径
ROOT_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT_DIR))

from xiaozhua.config import Config  # noqa: E402
from xiaozhua.schema import ToolResult  # noqa: E402
from xiaozhua.tools.base import Tool  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """HOME 指向临时目录，避免读到真实的 ~/.xiaozhua"""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("XIAOZHUA_CONFIG", raising=False)
    monkeypatch.delenv("XIAOZHUA_LOG", raising=False)
    return home


@pytest.fixture
def workspace_dir(tmp_path):
    """创建临时工作目录"""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return str(workspace)


@pytest.fixture
def sample_python_file(workspace_dir):
    """创建示例 Python 文件"""
    file_path = Path(workspace_dir) / "sample.py"
    file_path.write_text(
        'def hello(name: str) -> str:\n'
        '    """Say hello."""\n'
        '    return f"Hello, {name}!"\n'
        '\n'
        'def add(a: int, b: int) -> int:\n'
        '    return a + b\n'
    )
    return str(file_path)


@pytest.fixture
def test_config():
    """测试用配置"""
    return Config(provider="anthropic", model="test-model", api_key="test-key")


class ScriptedProvider:
    """按脚本回放事件流的 Provider

    turns 的每一项是一轮请求的响应：
    - 事件列表：依次产出，列表中的异常在迭代到时抛出
    - 异常：在获取流时直接抛出
    """

    def __init__(self, turns=None):
        self.turns = list(turns or [])
        self.requests = []
        self.closed_streams = 0

    async def chat_stream(self, request):
        self.requests.append(request)
        if not self.turns:
            raise AssertionError("unexpected chat_stream call")
        turn = self.turns.pop(0)
        if isinstance(turn, BaseException):
            raise turn
        return self._stream(turn)

    async def _stream(self, events):
        try:
            for event in events:
                if isinstance(event, BaseException):
                    raise event
                yield event
        finally:
            self.closed_streams += 1

    async def aclose(self):
        pass


@pytest.fixture
def scripted_provider():
    """工厂：scripted_provider([...]) 创建脚本化 Provider"""
    return ScriptedProvider


class EchoTool(Tool):
    """回显参数的测试工具"""

    def __init__(self):
        self.calls = []

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo the given text."

    @property
    def parameters(self):
        return {
            "type": "object",
            "required": ["text"],
            "properties": {"text": {"type": "string"}},
        }

    async def execute(self, text: str) -> ToolResult:
        self.calls.append(text)
        return ToolResult(content=f"echo: {text}")


class FailingTool(Tool):
    """执行时抛异常的测试工具"""

    @property
    def name(self) -> str:
        return "fail"

    @property
    def description(self) -> str:
        return "Always raises."

    @property
    def parameters(self):
        return {"type": "object", "properties": {}}

    async def execute(self) -> ToolResult:
        raise RuntimeError("boom")


class BlockingTool(Tool):
    """一直阻塞直到被取消的测试工具"""

    def __init__(self):
        self.started = asyncio.Event()

    @property
    def name(self) -> str:
        return "block"

    @property
    def description(self) -> str:
        return "Blocks forever."

    @property
    def parameters(self):
        return {"type": "object", "properties": {}}

    async def execute(self) -> ToolResult:
        self.started.set()
        await asyncio.sleep(3600)
        return ToolResult(content="unreachable")
