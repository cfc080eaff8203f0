"""配置测试"""

import pytest

from xiaozhua.config import (
    Config,
    default_config_path,
    extract_env_ref,
    home_dir,
    substitute_env_vars,
)
from xiaozhua.errors import ConfigError


class TestEnvSubstitution:
    """环境变量替换测试"""

    def test_extract_env_ref(self):
        """测试整体引用识别"""
        assert extract_env_ref("${FOO}") == "FOO"
        assert extract_env_ref("  ${FOO}  ") == "FOO"
        assert extract_env_ref("prefix-${FOO}") is None
        assert extract_env_ref("${}") is None
        assert extract_env_ref("plain") is None

    def test_substitute(self, monkeypatch):
        """测试嵌入替换和未设置变量"""
        monkeypatch.setenv("XZ_A", "one")
        monkeypatch.delenv("XZ_MISSING", raising=False)
        assert substitute_env_vars("${XZ_A}") == "one"
        assert substitute_env_vars("x-${XZ_A}-y") == "x-one-y"
        assert substitute_env_vars("${XZ_MISSING}") == ""
        assert substitute_env_vars("a${XZ_MISSING}b") == "ab"
        assert substitute_env_vars("no vars") == "no vars"

    def test_unclosed_reference_kept(self):
        """测试未闭合的引用原样保留"""
        assert substitute_env_vars("abc${FOO") == "abc${FOO"


class TestConfigLoad:
    """Config 加载测试"""

    def test_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        """测试文件不存在时使用默认值，key 取自 ANTHROPIC_API_KEY"""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        config = Config.load(tmp_path / "missing.yaml")
        assert config.provider == "anthropic"
        assert config.model == "claude-sonnet-4-20250514"
        assert config.api_key == "sk-env"
        assert config.tools.profile == "full"

    def test_from_yaml(self, tmp_path, monkeypatch):
        """测试从 YAML 加载"""
        monkeypatch.setenv("XZ_KEY", "secret")
        path = tmp_path / "config.yaml"
        path.write_text(
            "provider: openai\n"
            "model: gpt-4o\n"
            "api_key: ${XZ_KEY}\n"
            "temperature: 0.3\n"
            "max_tokens: 2048\n"
            "tools:\n"
            "  profile: coding\n"
            "  exec:\n"
            "    security: allowlist\n"
            "    allowlist: [ls, 'git ']\n"
        )
        config = Config.load(path)
        assert config.provider == "openai"
        assert config.model == "gpt-4o"
        assert config.api_key == "secret"
        assert config.temperature == 0.3
        assert config.max_tokens == 2048
        assert config.tools.profile == "coding"
        assert config.tools.exec.security == "allowlist"
        assert config.tools.exec.allowlist == ["ls", "git "]

    def test_empty_yaml(self, tmp_path):
        """测试空文件得到默认配置"""
        path = tmp_path / "config.yaml"
        path.write_text("")
        config = Config.from_yaml(path)
        assert config.provider == "anthropic"
        assert config.api_key is None

    def test_invalid_yaml(self, tmp_path):
        """测试 YAML 语法错误"""
        path = tmp_path / "config.yaml"
        path.write_text("provider: [unclosed\n")
        with pytest.raises(ConfigError, match="parsing config"):
            Config.from_yaml(path)

    def test_non_mapping(self):
        """测试顶层不是映射"""
        with pytest.raises(ConfigError):
            Config.from_dict(["a", "b"])

    def test_default_config_path(self, isolated_home, monkeypatch, tmp_path):
        """测试默认路径和 XIAOZHUA_CONFIG"""
        assert default_config_path() == isolated_home / ".xiaozhua" / "config.yaml"
        monkeypatch.setenv("XIAOZHUA_CONFIG", str(tmp_path / "other.yaml"))
        assert default_config_path() == tmp_path / "other.yaml"


class TestConfigValidate:
    """Config.validate 测试"""

    def test_valid(self):
        """测试默认配置合法"""
        Config().validate()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"provider": ""},
            {"model": ""},
            {"temperature": 2.5},
            {"temperature": -0.1},
            {"max_tokens": 0},
        ],
    )
    def test_invalid_fields(self, kwargs):
        """测试非法字段"""
        with pytest.raises(ConfigError):
            Config(**kwargs).validate()

    def test_temperature_bounds(self):
        """测试温度边界值合法"""
        Config(temperature=0.0).validate()
        Config(temperature=2.0).validate()

    def test_invalid_profile(self):
        """测试非法工具 profile"""
        config = Config()
        config.tools.profile = "everything"
        with pytest.raises(ConfigError, match="tools.profile"):
            config.validate()

    def test_invalid_security(self):
        """测试非法 exec 安全级别"""
        config = Config()
        config.tools.exec.security = "maybe"
        with pytest.raises(ConfigError, match="tools.exec.security"):
            config.validate()


class TestResolveApiKey:
    """API key 解析测试"""

    def test_configured_key(self):
        """测试配置中已有 key"""
        assert Config(api_key="k").resolve_api_key() == "k"

    def test_from_environment(self, monkeypatch):
        """测试从 Provider 对应的环境变量读取"""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
        config = Config(provider="openai", api_key="")
        assert config.resolve_api_key() == "sk-openai"
        assert config.api_key == "sk-openai"

    def test_missing_key(self, monkeypatch):
        """测试缺少 key 时报错并提示环境变量"""
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        with pytest.raises(ConfigError, match="GOOGLE_API_KEY"):
            Config(provider="gemini").resolve_api_key()

    def test_ollama_needs_no_key(self):
        """测试 Ollama 不需要 key"""
        assert Config(provider="ollama").resolve_api_key() is None


class TestPaths:
    """路径测试"""

    def test_sessions_path_default(self, isolated_home):
        """测试默认会话目录"""
        assert Config().sessions_path() == home_dir() / "sessions"
        assert home_dir() == isolated_home / ".xiaozhua"

    def test_sessions_path_configured(self, tmp_path):
        """测试配置的会话目录"""
        assert Config(sessions_dir=str(tmp_path)).sessions_path() == tmp_path
