"""工具基类"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..schema import ToolDefinition, ToolResult


class Tool(ABC):
    """工具抽象基类"""

    @property
    @abstractmethod
    def name(self) -> str:
        """工具名称"""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """工具描述"""
        pass

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """参数 JSON Schema"""
        pass

    @abstractmethod
    async def execute(self, **kwargs) -> ToolResult:
        """执行工具"""
        pass

    def to_definition(self) -> ToolDefinition:
        """转换为发送给模型的工具定义"""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.parameters,
        )

    @property
    def required_parameters(self) -> list[str]:
        return list(self.parameters.get("required", []))

    @property
    def known_parameters(self) -> set[str]:
        return set(self.parameters.get("properties", {}).keys())
