"""
Dispatch Façade

This module binds registered descriptors to live instances and answers MCP requests with them.

Every request is matched against the whole registry, so operations stay reachable no matter which instance was bound
last. An operation is invoked on the instance bound for its owning class; operations of classes without a bound
instance cannot be invoked.
"""

import base64
import inspect
import logging
import math
from collections.abc import Callable
from typing import Any

import mcp.types as types
from pydantic_core import to_json

from .decorators import attached_declarations
from .errors import PromptError, PromptNotFoundError, ResourceError, ResourceNotFoundError, ToolNotFoundError
from .registry import (
    OperationKind,
    OperationRegistry,
    PromptDescriptor,
    ResourceDescriptor,
    ToolDescriptor,
)
from .schema import Schema

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Routes MCP requests to the methods of bound instances.

    The dispatcher owns the binding of owner classes to instances. Only one instance per class is bound: binding
    another instance of the same class replaces it for all of that class's operations.
    """

    _registry: OperationRegistry
    """Registry the descriptors are read from"""

    _instances: dict[type, Any]
    """Bound instance per owner class, in binding order"""

    def __init__(self, registry: OperationRegistry) -> None:
        self._registry = registry
        self._instances = {}

    @property
    def registry(self) -> OperationRegistry:
        return self._registry

    def bind_instance(self, instance: Any) -> None:
        """
        Bind an instance so the operations declared by its class can be invoked.

        The declarations attached to the class and its bases that the registry does not hold for this class yet are
        resolved and registered now. This covers declarations whose hook never ran for this class, such as methods
        assigned after the class was created or operations inherited from a base class. Registration is idempotent,
        so declarations already registered for the class are left untouched.

        Args:
            instance: An instance of a class with decorated methods
        """
        owner = type(instance)
        for method_name, declaration in attached_declarations(owner):
            declaration.register_all(owner, method_name, self._registry)
        self._instances[owner] = instance
        if logger.isEnabledFor(logging.DEBUG):
            counts = {kind.value: len(self._registry.get(kind, owner)) for kind in OperationKind}
            logger.debug(f"Bound {owner.__qualname__} instance: {counts}", extra={"owner": owner.__qualname__})

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None,
        extra: dict[str, Any] | None = None,
    ) -> types.CallToolResult:
        """
        Invoke a tool.

        Validation and invocation failures are returned as error results rather than raised.

        Args:
            name: Tool name
            arguments: The request's arguments
            extra: Other top-level request parameters, used as arguments when ``arguments`` is missing or empty

        Returns:
            The tool result as text content

        Raises:
            ToolNotFoundError: If no tool with that name is registered for a bound instance
        """
        descriptor, instance = self._find(OperationKind.TOOL, lambda d: d.name == name, ToolNotFoundError(name))
        payload = arguments or {key: value for key, value in (extra or {}).items() if key != "name"}
        try:
            parsed = descriptor.parameters.parse(payload)
            result = await _invoke(instance, descriptor.method_name, parsed)
            text = to_text(result)
        except Exception as e:
            logger.debug(f"Tool {name} failed: {e}", exc_info=True, extra={"operation": name})
            return types.CallToolResult(content=[types.TextContent(type="text", text=f"Error: {e}")], isError=True)
        return types.CallToolResult(content=[types.TextContent(type="text", text=text)])

    async def get_prompt(self, name: str, arguments: dict[str, Any] | None) -> types.GetPromptResult:
        """
        Render a prompt.

        Args:
            name: Prompt name
            arguments: The request's arguments, parsed only when the prompt declares an argument schema

        Raises:
            PromptNotFoundError: If no prompt with that name is registered for a bound instance
            PromptError: If argument validation or the prompt method fails
        """
        descriptor, instance = self._find(OperationKind.PROMPT, lambda d: d.name == name, PromptNotFoundError(name))
        try:
            parsed: Any = {}
            if descriptor.arguments is not None and arguments:
                parsed = descriptor.arguments.parse(arguments)
            result = await _invoke(instance, descriptor.method_name, parsed)
        except Exception as e:
            raise PromptError(name, e) from e
        return types.GetPromptResult(
            description=descriptor.description,
            messages=[types.PromptMessage(role="user", content=types.TextContent(type="text", text=to_text(result)))],
        )

    async def read_resource(self, uri: str) -> types.ReadResourceResult:
        """
        Read a resource.

        Args:
            uri: The requested URI, matched exactly or against resource patterns

        Raises:
            ResourceNotFoundError: If no resource of a bound instance matches the URI
            ResourceError: If the resource method fails
        """
        descriptor, instance = self._find(OperationKind.RESOURCE, lambda d: d.matches(uri), ResourceNotFoundError(uri))
        try:
            result = await _invoke(instance, descriptor.method_name, {"uri": uri})
        except Exception as e:
            raise ResourceError(uri, e) from e
        contents: types.TextResourceContents | types.BlobResourceContents
        if isinstance(result, (bytes, bytearray)):
            contents = types.BlobResourceContents(
                uri=uri,  # type: ignore[arg-type]
                mimeType=descriptor.mime_type,
                blob=base64.b64encode(result).decode(),
            )
        else:
            contents = types.TextResourceContents(
                uri=uri,  # type: ignore[arg-type]
                mimeType=descriptor.mime_type,
                text=to_text(result),
            )
        return types.ReadResourceResult(contents=[contents])

    def list_tools(self) -> list[types.Tool]:
        tools = [
            types.Tool(name=d.name, description=d.description, inputSchema=d.parameters.json_schema())
            for d in self._registry.all(OperationKind.TOOL)
            if isinstance(d, ToolDescriptor)
        ]
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"list_tools found {len(tools)} tools: {[tool.name for tool in tools]}")
        return tools

    def list_prompts(self) -> list[types.Prompt]:
        return [
            types.Prompt(
                name=d.name,
                description=d.description,
                arguments=_prompt_arguments(d.arguments) if d.arguments is not None else None,
            )
            for d in self._registry.all(OperationKind.PROMPT)
            if isinstance(d, PromptDescriptor)
        ]

    def list_resources(self) -> list[types.Resource]:
        """List the resources served at an exact URI."""
        return [
            types.Resource(
                uri=d.uri_text,  # type: ignore[arg-type]
                name=d.name,
                description=d.description,
                mimeType=d.mime_type,
            )
            for d in self._registry.all(OperationKind.RESOURCE)
            if isinstance(d, ResourceDescriptor) and not d.is_pattern
        ]

    def list_resource_templates(self) -> list[types.ResourceTemplate]:
        """List the resources served for a URI pattern, with the pattern source as the URI template."""
        return [
            types.ResourceTemplate(
                uriTemplate=d.uri_text,
                name=d.name,
                description=d.description,
                mimeType=d.mime_type,
            )
            for d in self._registry.all(OperationKind.RESOURCE)
            if isinstance(d, ResourceDescriptor) and d.is_pattern
        ]

    def _find(self, kind: OperationKind, predicate: Callable[[Any], bool], not_found: Exception) -> tuple[Any, Any]:
        # Later registrations win over earlier ones with the same name or a matching URI
        for descriptor in reversed(self._registry.all(kind)):
            if descriptor.owner in self._instances and predicate(descriptor):
                return descriptor, self._instances[descriptor.owner]
        raise not_found


def to_text(value: Any) -> str:
    """
    Render an operation result as text.

    Strings are returned unchanged, numbers use plain decimal notation and everything else is serialized to JSON,
    falling back to str() for values that cannot be serialized.
    """
    match value:
        case str():
            return value
        case None:
            return "null"
        case bool():
            return "true" if value else "false"
        case int() | float():
            return _format_number(value)
    try:
        return to_json(value).decode()
    except (ValueError, TypeError):
        return str(value)


def _format_number(value: int | float) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def _prompt_arguments(schema: Schema) -> list[types.PromptArgument]:
    rendered = schema.json_schema()
    properties: dict[str, Any] = rendered.get("properties", {})
    required = set(rendered.get("required", ()))
    return [
        types.PromptArgument(name=field, description=field_schema.get("description"), required=field in required)
        for field, field_schema in properties.items()
    ]


async def _invoke(instance: Any, method_name: str, argument: Any) -> Any:
    result = getattr(instance, method_name)(argument)
    if inspect.isawaitable(result):
        result = await result
    return result
