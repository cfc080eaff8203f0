"""
LLM Provider 配置和工厂

支持的 Provider:
- Anthropic Claude (Messages API)
- OpenAI 及兼容服务 (OpenRouter / Together / Google Gemini)
- Ollama (本地, 原生 /api/chat)

未知名称按 OpenAI 兼容处理。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Type

from .anthropic import AnthropicProvider
from .base import LLMProvider
from .ollama import OllamaProvider
from .openai import OpenAIProvider

if TYPE_CHECKING:
    from ..config import Config

logger = logging.getLogger(__name__)


class ProviderProtocol(str, Enum):
    """线路协议"""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OLLAMA = "ollama"


PROTOCOL_CLASSES: Dict[ProviderProtocol, Type[LLMProvider]] = {
    ProviderProtocol.ANTHROPIC: AnthropicProvider,
    ProviderProtocol.OPENAI: OpenAIProvider,
    ProviderProtocol.OLLAMA: OllamaProvider,
}


@dataclass
class ProviderConfig:
    """Provider 配置"""

    name: str
    display_name: str
    protocol: ProviderProtocol
    api_base: str
    api_key_env: Optional[str]  # 环境变量名，None 表示不需要
    description: str = ""

    @property
    def requires_api_key(self) -> bool:
        return self.api_key_env is not None


PROVIDER_CONFIGS: Dict[str, ProviderConfig] = {
    "anthropic": ProviderConfig(
        name="anthropic",
        display_name="Anthropic Claude",
        protocol=ProviderProtocol.ANTHROPIC,
        api_base="https://api.anthropic.com",
        api_key_env="ANTHROPIC_API_KEY",
        description="Claude 系列模型",
    ),
    "openai": ProviderConfig(
        name="openai",
        display_name="OpenAI",
        protocol=ProviderProtocol.OPENAI,
        api_base="https://api.openai.com/v1",
        api_key_env="OPENAI_API_KEY",
        description="GPT 系列模型",
    ),
    "openrouter": ProviderConfig(
        name="openrouter",
        display_name="OpenRouter",
        protocol=ProviderProtocol.OPENAI,
        api_base="https://openrouter.ai/api/v1",
        api_key_env="OPENAI_API_KEY",
        description="OpenAI 兼容的多模型路由",
    ),
    "together": ProviderConfig(
        name="together",
        display_name="Together AI",
        protocol=ProviderProtocol.OPENAI,
        api_base="https://api.together.xyz/v1",
        api_key_env="OPENAI_API_KEY",
        description="OpenAI 兼容的开源模型托管",
    ),
    "google": ProviderConfig(
        name="google",
        display_name="Google Gemini",
        protocol=ProviderProtocol.OPENAI,
        api_base="https://generativelanguage.googleapis.com/v1beta/openai",
        api_key_env="GOOGLE_API_KEY",
        description="Gemini 的 OpenAI 兼容端点",
    ),
    "gemini": ProviderConfig(
        name="gemini",
        display_name="Google Gemini",
        protocol=ProviderProtocol.OPENAI,
        api_base="https://generativelanguage.googleapis.com/v1beta/openai",
        api_key_env="GOOGLE_API_KEY",
        description="Gemini 的 OpenAI 兼容端点",
    ),
    "ollama": ProviderConfig(
        name="ollama",
        display_name="Ollama (Local)",
        protocol=ProviderProtocol.OLLAMA,
        api_base="http://127.0.0.1:11434",
        api_key_env=None,
        description="本地运行的开源模型",
    ),
}


def get_provider_config(name: str) -> Optional[ProviderConfig]:
    """获取 Provider 配置"""
    return PROVIDER_CONFIGS.get(name.lower())


def list_providers() -> List[str]:
    """列出所有支持的 Provider"""
    return list(PROVIDER_CONFIGS.keys())


def api_key_env_for(name: str) -> Optional[str]:
    """Provider 对应的 API key 环境变量，未知 Provider 按 OpenAI 兼容处理"""
    provider_config = get_provider_config(name)
    if provider_config is None:
        return "OPENAI_API_KEY"
    return provider_config.api_key_env


def create_provider(config: "Config", **kwargs) -> LLMProvider:
    """根据配置创建 Provider"""
    provider_config = get_provider_config(config.provider)
    if provider_config is None:
        logger.warning(
            "Unknown provider '%s', using OpenAI-compatible client", config.provider
        )
        return OpenAIProvider(api_key=config.api_key or "", base_url=config.base_url, **kwargs)

    provider_cls = PROTOCOL_CLASSES[provider_config.protocol]
    return provider_cls(
        api_key=config.api_key or "",
        base_url=config.base_url or provider_config.api_base,
        **kwargs,
    )
