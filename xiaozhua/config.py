"""配置管理"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError
from .llm.providers import api_key_env_for, get_provider_config
from .tools.policy import EXEC_SECURITY_LEVELS, PROFILES

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "anthropic"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
CONFIG_ENV_VAR = "XIAOZHUA_CONFIG"


def home_dir() -> Path:
    """~/.xiaozhua"""
    return Path.home() / ".xiaozhua"


def default_config_path() -> Path:
    env_path = os.environ.get(CONFIG_ENV_VAR, "")
    if env_path:
        return Path(env_path)
    return home_dir() / "config.yaml"


def extract_env_ref(value: str) -> Optional[str]:
    """整个值是 ${VAR} 时返回 VAR"""
    trimmed = value.strip()
    if trimmed.startswith("${") and trimmed.endswith("}") and len(trimmed) > 3:
        inner = trimmed[2:-1]
        if "{" not in inner and "}" not in inner:
            return inner
    return None


def substitute_env_vars(value: str) -> str:
    """替换 ${VAR}，未设置的变量替换为空串"""
    ref = extract_env_ref(value)
    if ref is not None and ref in os.environ:
        return os.environ[ref]

    result = value
    while True:
        start = result.find("${")
        if start < 0:
            break
        end = result.find("}", start + 2)
        if end < 0:
            break
        var_name = result[start + 2 : end]
        result = result[:start] + os.environ.get(var_name, "") + result[end + 1 :]
    return result


@dataclass
class ExecConfig:
    """bash 执行策略"""

    security: str = "full"
    allowlist: List[str] = field(default_factory=list)


@dataclass
class ToolsConfig:
    """工具配置"""

    profile: str = "full"
    exec: ExecConfig = field(default_factory=ExecConfig)


@dataclass
class Config:
    """主配置"""

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    sessions_dir: Optional[str] = None
    system_prompt: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    thinking_budget: Optional[int] = None
    verbose: bool = False

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "Config":
        """加载配置，文件不存在时使用默认值"""
        path = Path(config_path) if config_path else default_config_path()

        if not path.exists():
            logger.debug("No config file at %s, using defaults", path)
            config = cls(api_key="${ANTHROPIC_API_KEY}")
        else:
            logger.info("Loading config from %s", path)
            config = cls.from_yaml(path)

        if config.api_key is not None:
            config.api_key = substitute_env_vars(config.api_key)
        return config

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "Config":
        """从 YAML 文件加载配置"""
        config_path = Path(config_path)
        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"reading config from {config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"parsing config from {config_path}: {e}") from e

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        if not isinstance(data, dict):
            raise ConfigError("config must be a mapping")

        tools_data = data.get("tools") or {}
        exec_data = tools_data.get("exec") or {}
        tools_config = ToolsConfig(
            profile=tools_data.get("profile", "full"),
            exec=ExecConfig(
                security=exec_data.get("security", "full"),
                allowlist=list(exec_data.get("allowlist") or []),
            ),
        )

        return cls(
            provider=data.get("provider", DEFAULT_PROVIDER),
            model=data.get("model", DEFAULT_MODEL),
            api_key=data.get("api_key"),
            base_url=data.get("base_url"),
            tools=tools_config,
            sessions_dir=data.get("sessions_dir"),
            system_prompt=data.get("system_prompt"),
            max_tokens=data.get("max_tokens"),
            temperature=data.get("temperature"),
            thinking_budget=data.get("thinking_budget"),
            verbose=bool(data.get("verbose", False)),
        )

    def validate(self) -> None:
        """校验配置，不合法时抛出 ConfigError"""
        if not self.provider:
            raise ConfigError("provider must not be empty")
        if not self.model:
            raise ConfigError("model must not be empty")
        if self.temperature is not None and not 0.0 <= self.temperature <= 2.0:
            raise ConfigError(f"temperature must be between 0.0 and 2.0, got {self.temperature}")
        if self.max_tokens is not None and self.max_tokens == 0:
            raise ConfigError("max_tokens must be greater than 0")
        if self.tools.profile not in PROFILES:
            raise ConfigError(
                f"tools.profile must be one of {', '.join(PROFILES)}, got '{self.tools.profile}'"
            )
        if self.tools.exec.security not in EXEC_SECURITY_LEVELS:
            raise ConfigError(
                f"tools.exec.security must be one of {', '.join(EXEC_SECURITY_LEVELS)}, "
                f"got '{self.tools.exec.security}'"
            )

    def resolve_api_key(self) -> Optional[str]:
        """配置里没有 key 时从 Provider 对应的环境变量读取"""
        if self.api_key:
            return self.api_key

        env_var = api_key_env_for(self.provider)
        if env_var is None:
            return None

        key = os.environ.get(env_var, "")
        if not key:
            raise ConfigError(
                f"No API key for provider '{self.provider}': set api_key in the config file "
                f"or the {env_var} environment variable"
            )
        self.api_key = key
        return key

    @property
    def provider_display_name(self) -> str:
        provider_config = get_provider_config(self.provider)
        return provider_config.display_name if provider_config else self.provider

    def sessions_path(self) -> Path:
        if self.sessions_dir:
            return Path(self.sessions_dir).expanduser()
        return home_dir() / "sessions"
