"""
Metadata Resolver

This module merges the options given explicitly to a decorator with the documentation found for the decorated method,
producing the resolved descriptor that gets registered.

For every inferable field an explicit value always wins, even an empty string. Documentation is consulted only for
fields left as None, and names are never inferred.
"""

import logging
import re
from dataclasses import dataclass, fields
from typing import Any, Union

import pydantic

from .docs import ParsedDoc
from .registry import Descriptor, OperationKind, PromptDescriptor, ResourceDescriptor, ToolDescriptor
from .schema import ANY_SCHEMA, ModelSchema, Schema

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "text/plain"

_INFERABLE_FIELDS = frozenset({"description", "parameters", "arguments"})


@dataclass(frozen=True)
class ToolOptions:
    """
    Options given explicitly to @tool.

    Attributes:
        name: Tool name, None to use the method name
        description: Tool description, None to use the documented summary
        parameters: Parameter schema, None to infer it from @param tags
    """

    name: str | None = None
    description: str | None = None
    parameters: Schema | None = None


@dataclass(frozen=True)
class PromptOptions:
    """
    Options given explicitly to @prompt.

    Attributes:
        name: Prompt name, None to use the method name
        description: Prompt description, None to use the documented summary
        arguments: Argument schema, None to infer it from @param tags
    """

    name: str | None = None
    description: str | None = None
    arguments: Schema | None = None


@dataclass(frozen=True)
class ResourceOptions:
    """
    Options given explicitly to @resource.

    Attributes:
        uri: Exact URI or compiled pattern, always given
        name: Resource name, None to use the method name
        description: Resource description, None to use the documented summary
        mime_type: Mime type of the contents, None for text/plain
    """

    uri: str | re.Pattern[str]
    name: str | None = None
    description: str | None = None
    mime_type: str | None = None


Options = Union[ToolOptions, PromptOptions, ResourceOptions]


def needs_documentation(options: Options) -> bool:
    """Whether any field that documentation could supply was left unspecified."""
    return any(getattr(options, f.name) is None for f in fields(options) if f.name in _INFERABLE_FIELDS)


def infer_field_type(description: str) -> Any:
    """
    Guess a parameter type from its free-text description.

    Keywords are checked case-insensitively in a fixed order, and the first match wins:
    "number", then "boolean"/"true"/"false", then "array"/"list"/"items". Anything else is a string.
    """
    text = description.lower()
    if "number" in text:
        return float
    if any(keyword in text for keyword in ("boolean", "true", "false")):
        return bool
    if any(keyword in text for keyword in ("array", "list", "items")):
        return list[Any]
    return str


def infer_schema(method_name: str, params: dict[str, str] | None) -> Schema | None:
    """
    Build a parameter schema from documented parameters.

    Every inferred field is required, since the documentation carries no optionality signal.

    Args:
        method_name: Used to name the generated model
        params: Parameter descriptions from @param tags

    Returns:
        A schema producing plain dicts, or None if nothing could be inferred
    """
    if not params:
        return None
    field_definitions: dict[str, Any] = {
        param: (infer_field_type(text), pydantic.Field(description=text or None)) for param, text in params.items()
    }
    try:
        model = pydantic.create_model(_model_name(method_name), **field_definitions)
    except (pydantic.PydanticUserError, NameError, TypeError, ValueError) as e:
        logger.debug(f"Cannot infer a schema for {method_name}: {e}")
        return None
    return ModelSchema(model, as_dict=True)


def resolve(
    kind: OperationKind,
    owner: type,
    method_name: str,
    options: Options,
    doc: ParsedDoc | None,
) -> Descriptor:
    """
    Resolve explicit options and parsed documentation into a descriptor.

    Args:
        kind: The kind of operation being declared
        owner: The class the method belongs to
        method_name: Name of the decorated method, also the default operation name
        options: Options given to the decorator
        doc: Documentation found for the method, if any

    Returns:
        The resolved descriptor
    """
    description = _first(options.description, doc.description if doc else None, "")
    name = options.name if options.name is not None else method_name

    match options:
        case ToolOptions():
            parameters = options.parameters
            if parameters is None and doc is not None:
                parameters = infer_schema(method_name, doc.params)
            return ToolDescriptor(
                name=name,
                description=description,
                parameters=parameters if parameters is not None else ANY_SCHEMA,
                method_name=method_name,
                owner=owner,
            )
        case PromptOptions():
            arguments = options.arguments
            if arguments is None and doc is not None:
                arguments = infer_schema(method_name, doc.params)
            return PromptDescriptor(
                name=name,
                description=description,
                arguments=arguments,
                method_name=method_name,
                owner=owner,
            )
        case ResourceOptions():
            return ResourceDescriptor(
                uri=options.uri,
                name=name,
                description=description,
                mime_type=_first(options.mime_type, DEFAULT_MIME_TYPE),
                method_name=method_name,
                owner=owner,
            )
    raise TypeError(f"Unsupported options for {kind.value} {method_name}: {options!r}")


def _first(*values: Any) -> Any:
    return next((value for value in values if value is not None), None)


def _model_name(method_name: str) -> str:
    return "".join(part.capitalize() for part in method_name.split("_") if part) + "Arguments"
