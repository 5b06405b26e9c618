import base64
import math
import re
from typing import Any

import mcp.types as types
import pydantic
import pytest

from decoratedmcp import (
    Dispatcher,
    OperationRegistry,
    PromptError,
    PromptNotFoundError,
    ResourceError,
    ResourceNotFoundError,
    ToolNotFoundError,
    prompt,
    resource,
    to_text,
    tool,
)


class Point(pydantic.BaseModel):
    x: int
    y: int


def _text(result: types.CallToolResult) -> str:
    [content] = result.content
    assert isinstance(content, types.TextContent)
    return content.text


@pytest.mark.asyncio
async def test_call_tool_with_inferred_schema(registry: OperationRegistry) -> None:
    class Calculator:
        """Arithmetic tools."""

        """
        Add two numbers together.
        @param a First number
        @param b Second number
        """
        @tool
        async def add(self, args: dict[str, float]) -> float:
            return args["a"] + args["b"]

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Calculator())
    result = await dispatcher.call_tool("add", {"a": 2, "b": 3})
    assert not result.isError
    assert _text(result) == "5"


@pytest.mark.asyncio
async def test_call_tool_with_model_schema(registry: OperationRegistry) -> None:
    class Geometry:
        @tool(parameters=Point)
        def describe(self, point: Point) -> dict[str, Any]:
            assert isinstance(point, Point)
            return {"x": point.x, "y": point.y}

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Geometry())
    result = await dispatcher.call_tool("describe", {"x": 1, "y": "2"})
    assert _text(result) == '{"x":1,"y":2}'


@pytest.mark.asyncio
async def test_call_tool_validation_failure_is_error_result(registry: OperationRegistry) -> None:
    calls: list[Any] = []

    class Geometry:
        @tool(parameters=Point)
        def describe(self, point: Point) -> str:
            calls.append(point)
            return "ok"

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Geometry())
    result = await dispatcher.call_tool("describe", {"x": "not a number"})
    assert result.isError
    assert _text(result).startswith("Error: ")
    assert calls == []


@pytest.mark.asyncio
async def test_call_tool_method_failure_is_error_result(registry: OperationRegistry) -> None:
    class Failing:
        @tool
        def fail(self, args: Any) -> None:
            raise ValueError("boom")

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Failing())
    result = await dispatcher.call_tool("fail", {})
    assert result.isError
    assert _text(result) == "Error: boom"


@pytest.mark.asyncio
async def test_call_tool_with_sync_method(registry: OperationRegistry) -> None:
    class Echo:
        @tool
        def echo(self, args: Any) -> Any:
            return args

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Echo())
    assert _text(await dispatcher.call_tool("echo", {"text": "hi"})) == '{"text":"hi"}'


@pytest.mark.asyncio
async def test_call_tool_falls_back_to_extra_fields(registry: OperationRegistry) -> None:
    class Echo:
        @tool
        def echo(self, args: Any) -> Any:
            return args

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Echo())
    for arguments in (None, {}):
        result = await dispatcher.call_tool("echo", arguments, {"name": "echo", "foo": 1, "bar": 2})
        assert _text(result) == '{"foo":1,"bar":2}'
    result = await dispatcher.call_tool("echo", {"given": True}, {"foo": 1})
    assert _text(result) == '{"given":true}'


@pytest.mark.asyncio
async def test_call_unknown_tool(registry: OperationRegistry) -> None:
    dispatcher = Dispatcher(registry)
    with pytest.raises(ToolNotFoundError, match="Tool missing not found"):
        await dispatcher.call_tool("missing", {})


@pytest.mark.asyncio
async def test_unbound_owner_is_not_invocable(registry: OperationRegistry) -> None:
    class Unbound:
        @tool
        def ping(self, args: Any) -> str:
            return "pong"

    dispatcher = Dispatcher(registry)
    assert [t.name for t in dispatcher.list_tools()] == ["ping"]
    with pytest.raises(ToolNotFoundError):
        await dispatcher.call_tool("ping", {})


@pytest.mark.asyncio
async def test_operations_of_all_bound_owners_stay_reachable(registry: OperationRegistry) -> None:
    class First:
        @tool
        def one(self, args: Any) -> str:
            return "one"

    class Second:
        @tool
        def two(self, args: Any) -> str:
            return "two"

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(First())
    dispatcher.bind_instance(Second())
    assert _text(await dispatcher.call_tool("one", {})) == "one"
    assert _text(await dispatcher.call_tool("two", {})) == "two"


@pytest.mark.asyncio
async def test_last_registered_name_wins(registry: OperationRegistry) -> None:
    class First:
        @tool(name="shared")
        def shared(self, args: Any) -> str:
            return "first"

    class Second:
        @tool(name="shared")
        def shared(self, args: Any) -> str:
            return "second"

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Second())
    dispatcher.bind_instance(First())
    assert _text(await dispatcher.call_tool("shared", {})) == "second"


@pytest.mark.asyncio
async def test_rebinding_replaces_instance(registry: OperationRegistry) -> None:
    class Counter:
        def __init__(self, value: int) -> None:
            self.value = value

        @tool
        def current(self, args: Any) -> int:
            return self.value

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Counter(1))
    dispatcher.bind_instance(Counter(2))
    assert _text(await dispatcher.call_tool("current", {})) == "2"
    assert len(dispatcher.list_tools()) == 1


@pytest.mark.asyncio
async def test_bind_registers_declarations_of_subclass(registry: OperationRegistry) -> None:
    class Base:
        @tool
        def hello(self, args: Any) -> str:
            return f"hello from {type(self).__name__}"

    class Child(Base):
        pass

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Child())
    assert _text(await dispatcher.call_tool("hello", {})) == "hello from Child"


@pytest.mark.asyncio
async def test_deferred_declarations_registered_by_binding(registry: OperationRegistry) -> None:
    class Lazy:
        @tool(deferred=True)
        def lazy(self, args: Any) -> str:
            return "lazy"

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Lazy())
    dispatcher.bind_instance(Lazy())
    assert [t.name for t in dispatcher.list_tools()] == ["lazy"]
    assert _text(await dispatcher.call_tool("lazy", {})) == "lazy"


@pytest.mark.asyncio
async def test_get_prompt(registry: OperationRegistry) -> None:
    class Library:
        """Prompt templates."""

        """
        Greet someone by name.
        @param name Name to greet
        """
        @prompt
        def greeting(self, args: dict[str, str]) -> str:
            return f"Hello, {args['name']}!"

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Library())
    result = await dispatcher.get_prompt("greeting", {"name": "Ada"})
    assert result.description == "Greet someone by name."
    [message] = result.messages
    assert message.role == "user"
    assert isinstance(message.content, types.TextContent)
    assert message.content.text == "Hello, Ada!"


@pytest.mark.asyncio
async def test_get_prompt_without_schema_or_arguments(registry: OperationRegistry) -> None:
    received: list[Any] = []

    class Library:
        @prompt
        def plain(self, args: Any) -> dict[str, int]:
            received.append(args)
            return {"count": 1}

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Library())
    result = await dispatcher.get_prompt("plain", {"ignored": "value"})
    assert received == [{}]
    assert isinstance(result.messages[0].content, types.TextContent)
    assert result.messages[0].content.text == '{"count":1}'


@pytest.mark.asyncio
async def test_get_prompt_failures(registry: OperationRegistry) -> None:
    class Library:
        @prompt(arguments={"name": str})
        def strict(self, args: dict[str, str]) -> str:
            return args["name"]

        @prompt
        def broken(self, args: Any) -> str:
            raise RuntimeError("template missing")

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Library())
    with pytest.raises(PromptNotFoundError, match="Prompt missing not found"):
        await dispatcher.get_prompt("missing", None)
    with pytest.raises(PromptError, match="Error in prompt strict"):
        await dispatcher.get_prompt("strict", {"name": ["not", "a", "string"]})
    with pytest.raises(PromptError, match="Error in prompt broken: template missing"):
        await dispatcher.get_prompt("broken", None)


@pytest.mark.asyncio
async def test_read_resource(registry: OperationRegistry) -> None:
    class Files:
        @resource(re.compile(r"file://(.+)"))
        async def read(self, request: dict[str, str]) -> str:
            return f"contents of {request['uri']}"

        @resource("config://app", mime_type="application/json")
        def config(self, request: dict[str, str]) -> dict[str, bool]:
            return {"debug": False}

        @resource("data://logo")
        def logo(self, request: dict[str, str]) -> bytes:
            return b"\x89PNG"

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Files())

    [contents] = (await dispatcher.read_resource("file:///tmp/notes.txt")).contents
    assert isinstance(contents, types.TextResourceContents)
    assert contents.text == "contents of file:///tmp/notes.txt"
    assert contents.mimeType == "text/plain"

    [contents] = (await dispatcher.read_resource("config://app")).contents
    assert isinstance(contents, types.TextResourceContents)
    assert contents.text == '{"debug":false}'
    assert contents.mimeType == "application/json"

    [contents] = (await dispatcher.read_resource("data://logo")).contents
    assert isinstance(contents, types.BlobResourceContents)
    assert base64.b64decode(contents.blob) == b"\x89PNG"


@pytest.mark.asyncio
async def test_read_resource_failures(registry: OperationRegistry) -> None:
    class Files:
        @resource("config://broken")
        def broken(self, request: dict[str, str]) -> str:
            raise OSError("disk unavailable")

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Files())
    with pytest.raises(ResourceNotFoundError, match="Resource config://missing not found"):
        await dispatcher.read_resource("config://missing")
    with pytest.raises(ResourceError, match="Error reading resource config://broken: disk unavailable"):
        await dispatcher.read_resource("config://broken")


def test_listings(registry: OperationRegistry) -> None:
    class Mixed:
        """Mixed operations."""

        """
        Search documents.
        @param query Query text
        @param limit Maximum number of results
        """
        @tool
        def search(self, args: dict[str, Any]) -> list[str]:
            return []

        @tool(name="noop", description="")
        def noop(self, args: Any) -> None:
            return None

        """
        Review code.
        @param code Code to review
        """
        @prompt
        def review(self, args: dict[str, str]) -> str:
            return args["code"]

        @prompt
        def bare(self, args: Any) -> str:
            return ""

        @resource("config://app", name="app-config", description="Settings")
        def config(self, request: dict[str, str]) -> str:
            return ""

        @resource(re.compile(r"file://(.+)"), name="files")
        def files(self, request: dict[str, str]) -> str:
            return ""

    dispatcher = Dispatcher(registry)

    search, noop = dispatcher.list_tools()
    assert search.name == "search"
    assert search.description == "Search documents."
    assert search.inputSchema["properties"]["limit"]["type"] == "number"
    assert noop.description == ""
    assert noop.inputSchema == {"type": "object"}

    review, bare = dispatcher.list_prompts()
    assert review.description == "Review code."
    assert review.arguments == [types.PromptArgument(name="code", description="Code to review", required=True)]
    assert bare.arguments is None

    [config] = dispatcher.list_resources()
    assert str(config.uri) == "config://app"
    assert config.name == "app-config"
    assert config.mimeType == "text/plain"

    [files] = dispatcher.list_resource_templates()
    assert files.uriTemplate == r"file://(.+)"
    assert files.name == "files"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("plain", "plain"),
        ("", ""),
        (None, "null"),
        (True, "true"),
        (False, "false"),
        (5, "5"),
        (5.0, "5"),
        (-0.5, "-0.5"),
        (0.1, "0.1"),
        (1e21, "1e+21"),
        (math.nan, "NaN"),
        (math.inf, "Infinity"),
        (-math.inf, "-Infinity"),
        ({"a": [1, 2]}, '{"a":[1,2]}'),
        ([1, "two"], '[1,"two"]'),
        (Point(x=1, y=2), '{"x":1,"y":2}'),
    ],
)
def test_to_text(value: Any, expected: str) -> None:
    assert to_text(value) == expected


def test_to_text_falls_back_to_str() -> None:
    class Opaque:
        def __str__(self) -> str:
            return "opaque"

    assert to_text(Opaque()) == "opaque"


def test_listing_follows_registration_order(registry: OperationRegistry) -> None:
    class First:
        @tool
        def one(self, args: Any) -> str:
            return "one"

    class Second:
        @tool
        def two(self, args: Any) -> str:
            return "two"

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Second())
    dispatcher.bind_instance(First())
    assert [t.name for t in dispatcher.list_tools()] == ["one", "two"]


@pytest.mark.asyncio
async def test_subclass_instance_serves_inherited_and_overridden_deferred_tools(registry: OperationRegistry) -> None:
    class Base:
        @tool(deferred=True)
        def shared(self, args: Any) -> str:
            return "base"

        @tool(deferred=True)
        def inherited(self, args: Any) -> str:
            return "inherited"

    class Child(Base):
        @tool(deferred=True, name="child_shared", description="child")
        def shared(self, args: Any) -> str:
            return "child"

    dispatcher = Dispatcher(registry)
    dispatcher.bind_instance(Child())
    assert _text(await dispatcher.call_tool("child_shared", {})) == "child"
    assert _text(await dispatcher.call_tool("inherited", {})) == "inherited"
    with pytest.raises(ToolNotFoundError):
        await dispatcher.call_tool("shared", {})


def test_listing_resources_with_normalized_uris(registry: OperationRegistry) -> None:
    class Site:
        @resource("https://example.com", name="home")
        def home(self, request: dict[str, str]) -> str:
            return ""

        @resource("config://app", name="config")
        def config(self, request: dict[str, str]) -> str:
            return ""

    dispatcher = Dispatcher(registry)
    assert [(r.name, str(r.uri)) for r in dispatcher.list_resources()] == [
        ("home", "https://example.com/"),
        ("config", "config://app"),
    ]
