"""模型注册表：别名、上下文窗口、价格"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

DEFAULT_CONTEXT_LIMIT = 128_000
DEFAULT_MAX_OUTPUT_TOKENS = 4096


@dataclass(frozen=True)
class ModelInfo:
    """已知模型的静态信息"""

    id: str
    provider: str
    context_window: int
    max_output: int
    input_price_per_mtok: float  # 美元 / 百万输入 token
    output_price_per_mtok: float  # 美元 / 百万输出 token
    supports_thinking: bool = False
    supports_images: bool = False


MODEL_ALIASES: Dict[str, str] = {
    "sonnet": "claude-sonnet-4-20250514",
    "claude-sonnet": "claude-sonnet-4-20250514",
    "opus": "claude-opus-4-20250514",
    "claude-opus": "claude-opus-4-20250514",
    "haiku": "claude-haiku-3-20250307",
    "claude-haiku": "claude-haiku-3-20250307",
    "gpt4o": "gpt-4o",
    "gpt4o-mini": "gpt-4o-mini",
    "gpt4-turbo": "gpt-4-turbo",
}

MODELS: List[ModelInfo] = [
    ModelInfo(
        id="claude-sonnet-4-20250514",
        provider="anthropic",
        context_window=200_000,
        max_output=16_000,
        input_price_per_mtok=3.0,
        output_price_per_mtok=15.0,
        supports_thinking=True,
        supports_images=True,
    ),
    ModelInfo(
        id="claude-opus-4-20250514",
        provider="anthropic",
        context_window=200_000,
        max_output=32_000,
        input_price_per_mtok=15.0,
        output_price_per_mtok=75.0,
        supports_thinking=True,
        supports_images=True,
    ),
    ModelInfo(
        id="claude-haiku-3-20250307",
        provider="anthropic",
        context_window=200_000,
        max_output=4_000,
        input_price_per_mtok=0.25,
        output_price_per_mtok=1.25,
        supports_images=True,
    ),
    ModelInfo(
        id="gpt-4o",
        provider="openai",
        context_window=128_000,
        max_output=16_000,
        input_price_per_mtok=2.50,
        output_price_per_mtok=10.0,
        supports_images=True,
    ),
    ModelInfo(
        id="gpt-4o-mini",
        provider="openai",
        context_window=128_000,
        max_output=16_000,
        input_price_per_mtok=0.15,
        output_price_per_mtok=0.60,
        supports_images=True,
    ),
    ModelInfo(
        id="gpt-4-turbo",
        provider="openai",
        context_window=128_000,
        max_output=4_000,
        input_price_per_mtok=10.0,
        output_price_per_mtok=30.0,
        supports_images=True,
    ),
]

_MODELS_BY_ID: Dict[str, ModelInfo] = {m.id: m for m in MODELS}


def resolve_model_alias(name: str) -> str:
    """别名 -> 完整模型 ID，未知名称原样返回"""
    return MODEL_ALIASES.get(name, name)


def get_model_info(model: str) -> Optional[ModelInfo]:
    return _MODELS_BY_ID.get(resolve_model_alias(model))


def list_models() -> List[ModelInfo]:
    return list(MODELS)


def context_limit(model: str) -> int:
    info = get_model_info(model)
    return info.context_window if info else DEFAULT_CONTEXT_LIMIT


def max_output_tokens(model: str) -> int:
    info = get_model_info(model)
    return info.max_output if info else DEFAULT_MAX_OUTPUT_TOKENS


def supports_thinking(model: str) -> bool:
    info = get_model_info(model)
    return info.supports_thinking if info else False


def supports_images(model: str) -> bool:
    info = get_model_info(model)
    return info.supports_images if info else False


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> Optional[float]:
    """估算费用 (美元)，未知模型返回 None"""
    info = get_model_info(model)
    if info is None:
        return None
    return (
        input_tokens / 1_000_000 * info.input_price_per_mtok
        + output_tokens / 1_000_000 * info.output_price_per_mtok
    )


def format_cost(cost: float) -> str:
    if cost < 0.01:
        return f"${cost:.4f}"
    return f"${cost:.2f}"
