import inspect
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from voice_dispatch.core.errors import ArgumentError, DispatchControl, SchemaError
from voice_dispatch.core.result import ToolCallRequest, ToolResult
from voice_dispatch.tools.schema import ToolSchema

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Any]

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_-]*$")


def derive_tool_name(identifier: str) -> str:
    """CreateTaskTool -> create_task, web_search_tool -> web_search."""
    snake = _CAMEL_BOUNDARY.sub("_", identifier.strip()).replace("-", "_").lower()
    snake = re.sub(r"_+", "_", snake).strip("_")
    if snake.endswith("_tool") and snake != "_tool":
        snake = snake[: -len("_tool")]
    return snake


def _handler_identifier(handler: ToolHandler) -> str:
    if inspect.isfunction(handler) or inspect.ismethod(handler):
        return handler.__name__
    return type(handler).__name__


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    schema: ToolSchema = field(default_factory=ToolSchema)
    handler: ToolHandler | None = None

    def __post_init__(self) -> None:
        if not self.name or not _NAME_PATTERN.match(self.name):
            raise SchemaError(f"Invalid tool name: {self.name!r}")
        if self.handler is None or not callable(self.handler):
            raise SchemaError(f"Tool '{self.name}' has no callable handler")
        if "context" in self.schema:
            raise SchemaError(f"Tool '{self.name}': 'context' is reserved and cannot be a parameter")
        self.schema.freeze()

    def to_function_schema(self) -> dict[str, Any]:
        """Generic function-calling format (OpenAI style `parameters`)."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.schema.to_wire_schema(),
        }

    def to_anthropic_tool(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.schema.to_wire_schema(),
        }

    async def invoke(self, raw_arguments: Mapping[str, Any] | None, context: Mapping[str, Any]) -> str:
        """Coerce arguments and run the handler. Failures come back as an error string."""
        content, _is_error = await self._execute(raw_arguments, context)
        return content

    async def call(self, request: ToolCallRequest, context: Mapping[str, Any]) -> ToolResult:
        content, is_error = await self._execute(request.arguments, context)
        return ToolResult(
            call_id=request.call_id,
            tool_name=self.name,
            content=content,
            is_error=is_error,
        )

    async def _execute(
        self, raw_arguments: Mapping[str, Any] | None, context: Mapping[str, Any]
    ) -> tuple[str, bool]:
        try:
            arguments = self.schema.coerce_arguments(raw_arguments)
        except ArgumentError as e:
            logger.warning(f"Tool '{self.name}' rejected arguments {raw_arguments!r}: {e}")
            return f"Error: Invalid arguments for tool '{self.name}': {e}", True

        try:
            result = self.handler(**arguments, context=context)
            if inspect.isawaitable(result):
                result = await result
        except DispatchControl:
            raise
        except Exception as e:
            logger.exception(f"Tool '{self.name}' raised unexpected error")
            return f"Error executing tool '{self.name}': {e}", True

        if result is None:
            return "", False
        return result if isinstance(result, str) else str(result), False


def define_tool(
    handler: ToolHandler,
    description: str,
    schema: ToolSchema | None = None,
    name: str | None = None,
) -> ToolDefinition:
    """Build a ToolDefinition, deriving the name from the handler when not given."""
    return ToolDefinition(
        name=name or derive_tool_name(_handler_identifier(handler)),
        description=description,
        schema=schema if schema is not None else ToolSchema(),
        handler=handler,
    )


def tool(
    description: str,
    schema: ToolSchema | None = None,
    *,
    name: str | None = None,
) -> Callable[[ToolHandler], ToolDefinition]:
    """
    Decorator form of define_tool:

        @tool("Create a new todo item", ToolSchema().string("title"))
        async def create_todo(title: str, context: Mapping[str, Any]) -> str:
            ...
    """

    def decorator(handler: ToolHandler) -> ToolDefinition:
        return define_tool(handler, description, schema, name)

    return decorator
