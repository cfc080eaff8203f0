"""LLM 模块"""

from .anthropic import AnthropicProvider, AnthropicStreamTranslator
from .base import LLMProvider, parse_tool_input
from .models import (
    ModelInfo,
    context_limit,
    estimate_cost,
    format_cost,
    get_model_info,
    max_output_tokens,
    resolve_model_alias,
)
from .ndjson import NDJSONParser, iter_ndjson
from .ollama import OllamaProvider, OllamaStreamTranslator, resolve_chat_url
from .openai import OpenAIProvider, OpenAIStreamTranslator
from .providers import (
    PROVIDER_CONFIGS,
    ProviderConfig,
    ProviderProtocol,
    create_provider,
    get_provider_config,
    list_providers,
)
from .sse import SSEEvent, SSEParser, iter_sse_events

__all__ = [
    # Base
    "LLMProvider",
    "parse_tool_input",
    # Providers
    "AnthropicProvider",
    "OpenAIProvider",
    "OllamaProvider",
    "ProviderConfig",
    "ProviderProtocol",
    "PROVIDER_CONFIGS",
    "create_provider",
    "get_provider_config",
    "list_providers",
    # Translators
    "AnthropicStreamTranslator",
    "OpenAIStreamTranslator",
    "OllamaStreamTranslator",
    "resolve_chat_url",
    # Parsers
    "SSEEvent",
    "SSEParser",
    "iter_sse_events",
    "NDJSONParser",
    "iter_ndjson",
    # Models
    "ModelInfo",
    "resolve_model_alias",
    "get_model_info",
    "context_limit",
    "max_output_tokens",
    "estimate_cost",
    "format_cost",
]
