import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from voice_dispatch.core.errors import ConfigurationError
from voice_dispatch.tools.base import ToolDefinition

logger = logging.getLogger(__name__)

ToolSelector = Callable[[Mapping[str, Any]], Iterable[ToolDefinition]]


class ToolRegistry:
    """Registry of tool definitions, optionally narrowed per request by a selector."""

    def __init__(self, selector: ToolSelector | None = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._selector = selector

    def register(self, tool: ToolDefinition) -> None:
        """Register a tool. Raises ConfigurationError if name already taken."""
        if not isinstance(tool, ToolDefinition):
            raise ConfigurationError(f"Expected a ToolDefinition, got {type(tool).__name__}")
        if tool.name in self._tools:
            raise ConfigurationError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.info(f"Registered tool: {tool.name}")

    def register_all(self, tools: Iterable[ToolDefinition]) -> None:
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def resolve(
        self,
        context: Mapping[str, Any],
        selector: ToolSelector | None = None,
    ) -> list[ToolDefinition]:
        """
        Return the tools available for one request.
        A per-call selector takes precedence over the registry's own; with
        neither, every registered tool is available.
        """
        selector = selector or self._selector
        if selector is None:
            return self.list_tools()

        selected = selector(context)
        if selected is None or isinstance(selected, (str, bytes, Mapping)) or not isinstance(selected, Iterable):
            raise ConfigurationError(
                f"Tool selector must return an iterable of ToolDefinition, got {type(selected).__name__}"
            )

        tools: list[ToolDefinition] = []
        seen: set[str] = set()
        for item in selected:
            if not isinstance(item, ToolDefinition):
                raise ConfigurationError(
                    f"Tool selector returned {type(item).__name__}, expected ToolDefinition"
                )
            if item.name in seen:
                raise ConfigurationError(f"Tool selector returned duplicate tool name: {item.name}")
            seen.add(item.name)
            tools.append(item)
        return tools

    @staticmethod
    def find(name: str, available_tools: Sequence[ToolDefinition]) -> ToolDefinition | None:
        """Look up a tool by name in a resolved set. Returns None when absent."""
        for tool in available_tools:
            if tool.name == name:
                return tool
        return None

    @staticmethod
    def to_function_schemas(tools: Iterable[ToolDefinition]) -> list[dict[str, Any]]:
        return [tool.to_function_schema() for tool in tools]
