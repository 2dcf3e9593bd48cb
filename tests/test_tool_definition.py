import asyncio
from typing import Any

import pytest

from voice_dispatch.core.errors import DispatchCancelled, SchemaError
from voice_dispatch.core.result import ToolCallRequest
from voice_dispatch.tools.base import ToolDefinition, define_tool, derive_tool_name, tool
from voice_dispatch.tools.schema import ToolSchema


def todo_schema() -> ToolSchema:
    return (
        ToolSchema()
        .string("title", "The todo title")
        .string("priority", enum=["low", "medium", "high"], default="medium")
    )


class CreateTodoTool:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    def __call__(self, title: str, priority: str, context: dict[str, Any]) -> str:
        self.calls.append({"title": title, "priority": priority, "context": context})
        return f"Created: {title} ({priority}) for {context.get('user')}"


@pytest.mark.parametrize(
    "identifier, expected",
    [
        ("CreateTaskTool", "create_task"),
        ("WebSearchTool", "web_search"),
        ("HTTPFetchTool", "http_fetch"),
        ("device_control", "device_control"),
        ("update_task_tool", "update_task"),
        ("Calculator", "calculator"),
    ],
)
def test_derive_tool_name(identifier, expected):
    assert derive_tool_name(identifier) == expected


def test_name_derived_from_function():
    async def create_task(title: str, context: dict) -> str:
        return title

    definition = define_tool(create_task, "Create a task", ToolSchema().string("title"))
    assert definition.name == "create_task"


def test_name_derived_from_callable_class():
    definition = define_tool(CreateTodoTool(), "Create a todo", todo_schema())
    assert definition.name == "create_todo"


def test_explicit_name_wins():
    definition = define_tool(CreateTodoTool(), "Create a todo", todo_schema(), name="add_todo")
    assert definition.name == "add_todo"


def test_decorator():
    @tool("Say hello")
    def greet_tool(context: dict) -> str:
        return "hello"

    assert isinstance(greet_tool, ToolDefinition)
    assert greet_tool.name == "greet"
    assert greet_tool.schema.to_wire_schema()["properties"] == {}


def test_schema_frozen_after_definition():
    schema = todo_schema()
    define_tool(CreateTodoTool(), "Create a todo", schema)
    with pytest.raises(SchemaError, match="frozen"):
        schema.string("extra")


def test_context_is_reserved():
    with pytest.raises(SchemaError, match="reserved"):
        define_tool(CreateTodoTool(), "Create a todo", ToolSchema().object("context"))


def test_handler_required():
    with pytest.raises(SchemaError, match="no callable handler"):
        ToolDefinition(name="broken", description="No handler")


def test_invalid_name():
    with pytest.raises(SchemaError, match="Invalid tool name"):
        define_tool(CreateTodoTool(), "Create a todo", name="has spaces")


def test_to_function_schema():
    definition = define_tool(CreateTodoTool(), "Create a todo", todo_schema())
    function = definition.to_function_schema()
    assert function["name"] == "create_todo"
    assert function["description"] == "Create a todo"
    assert function["parameters"]["type"] == "object"
    assert function["parameters"]["required"] == ["title"]
    assert list(function["parameters"]["properties"]) == ["title", "priority"]


def test_anthropic_format_shares_the_schema():
    definition = define_tool(CreateTodoTool(), "Create a todo", todo_schema())
    anthropic = definition.to_anthropic_tool()
    assert anthropic["input_schema"] == definition.to_function_schema()["parameters"]
    assert "parameters" not in anthropic


@pytest.mark.asyncio
async def test_invoke_injects_context_and_defaults():
    handler = CreateTodoTool()
    definition = define_tool(handler, "Create a todo", todo_schema())

    result = await definition.invoke({"title": "Buy milk"}, {"user": "ana"})

    assert result == "Created: Buy milk (medium) for ana"
    assert handler.calls == [{"title": "Buy milk", "priority": "medium", "context": {"user": "ana"}}]


@pytest.mark.asyncio
async def test_invoke_async_handler():
    async def lookup(key: str, context: dict) -> str:
        await asyncio.sleep(0)
        return f"value of {key}"

    definition = define_tool(lookup, "Look up a key", ToolSchema().string("key"))
    assert await definition.invoke({"key": "a"}, {}) == "value of a"


@pytest.mark.asyncio
async def test_invoke_stringifies_results():
    definition = define_tool(lambda context: 42, "Answer", name="answer")
    assert await definition.invoke({}, {}) == "42"


@pytest.mark.asyncio
async def test_invoke_handler_error_becomes_result():
    def explode(context: dict) -> str:
        raise RuntimeError("database is down")

    definition = define_tool(explode, "Always fails")
    result = await definition.invoke({}, {})
    assert result == "Error executing tool 'explode': database is down"


@pytest.mark.asyncio
async def test_invoke_argument_error_becomes_result():
    handler = CreateTodoTool()
    definition = define_tool(handler, "Create a todo", todo_schema())

    result = await definition.invoke({"title": "x", "priority": "urgent"}, {})

    assert result.startswith("Error: Invalid arguments for tool 'create_todo'")
    assert "priority" in result
    assert handler.calls == []


@pytest.mark.asyncio
async def test_call_marks_errors():
    definition = define_tool(CreateTodoTool(), "Create a todo", todo_schema())

    ok = await definition.call(ToolCallRequest("c1", "create_todo", {"title": "x"}), {})
    bad = await definition.call(ToolCallRequest("c2", "create_todo", {}), {})

    assert ok.call_id == "c1" and not ok.is_error
    assert bad.call_id == "c2" and bad.is_error
    assert "Missing required argument 'title'" in bad.content


@pytest.mark.asyncio
async def test_control_exceptions_propagate():
    def stop(context: dict) -> str:
        raise DispatchCancelled("client went away")

    definition = define_tool(stop, "Stops the dispatch")
    with pytest.raises(DispatchCancelled):
        await definition.invoke({}, {})


@pytest.mark.asyncio
async def test_task_cancellation_propagates():
    async def slow(context: dict) -> str:
        raise asyncio.CancelledError()

    definition = define_tool(slow, "Cancelled mid-flight")
    with pytest.raises(asyncio.CancelledError):
        await definition.invoke({}, {})
