"""
Operation Registry

This module provides the store of resolved operation descriptors. Descriptors are keyed by the class that declares the
operation and partitioned by kind (tool, prompt, resource).

The main components include:
- OperationKind for the three kinds of operation
- ToolDescriptor, PromptDescriptor and ResourceDescriptor, the immutable resolved records
- OperationRegistry, the owner-keyed store, and default_registry() for the process-wide instance
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Union

import pydantic

from .schema import Schema

logger = logging.getLogger(__name__)


_URI_ADAPTER: pydantic.TypeAdapter[pydantic.AnyUrl] = pydantic.TypeAdapter(pydantic.AnyUrl)


def normalize_uri(uri: str) -> str:
    """
    Render a URI the way MCP requests carry it, e.g. ``https://example.com`` becomes ``https://example.com/``.

    Raises:
        pydantic.ValidationError: If uri is not an absolute URL
    """
    return str(_URI_ADAPTER.validate_python(uri))


class OperationKind(Enum):
    TOOL = "tool"
    PROMPT = "prompt"
    RESOURCE = "resource"


@dataclass(frozen=True)
class ToolDescriptor:
    """
    A resolved tool.

    Attributes:
        name: Tool name matched against tools/call requests
        description: Human readable description, empty when neither given nor documented
        parameters: Schema the call arguments are parsed with
        method_name: Name of the method invoked on the bound instance
        owner: The class whose instances handle this tool
    """

    name: str
    description: str
    parameters: Schema
    method_name: str
    owner: type


@dataclass(frozen=True)
class PromptDescriptor:
    """
    A resolved prompt template.

    Attributes:
        name: Prompt name matched against prompts/get requests
        description: Human readable description, returned alongside the rendered messages
        arguments: Optional schema for the prompt arguments
        method_name: Name of the method invoked on the bound instance
        owner: The class whose instances handle this prompt
    """

    name: str
    description: str
    arguments: Schema | None
    method_name: str
    owner: type


@dataclass(frozen=True)
class ResourceDescriptor:
    """
    A resolved resource.

    Attributes:
        uri: Exact URI string, or a compiled pattern searched in requested URIs
        name: Resource name shown in listings
        description: Human readable description
        mime_type: Mime type of the returned contents
        method_name: Name of the method invoked on the bound instance
        owner: The class whose instances handle this resource
    """

    uri: str | re.Pattern[str]
    name: str
    description: str
    mime_type: str
    method_name: str
    owner: type

    @property
    def is_pattern(self) -> bool:
        return isinstance(self.uri, re.Pattern)

    @property
    def uri_text(self) -> str:
        """The literal URI, or the pattern source for pattern resources."""
        return self.uri.pattern if isinstance(self.uri, re.Pattern) else self.uri

    def matches(self, uri: str) -> bool:
        if isinstance(self.uri, re.Pattern):
            return self.uri.search(uri) is not None
        if self.uri == uri:
            return True
        try:
            return self.uri == normalize_uri(uri)
        except pydantic.ValidationError:
            return False


Descriptor = Union[ToolDescriptor, PromptDescriptor, ResourceDescriptor]


class OperationRegistry:
    """
    Owner-keyed store of resolved descriptors.

    Each kind has its own insertion-ordered mapping from owner class to the descriptors that class declares.
    Appending never deduplicates; callers that need exactly-once registration check contains() first.
    """

    _descriptors: dict[OperationKind, dict[type, list[Descriptor]]]
    """Descriptors per kind, per owner class, in registration order"""

    def __init__(self) -> None:
        self._descriptors = {kind: {} for kind in OperationKind}

    def append(self, kind: OperationKind, owner: type, descriptor: Descriptor) -> None:
        self._descriptors[kind].setdefault(owner, []).append(descriptor)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"Registered {kind.value} {descriptor.name!r} for {owner.__qualname__}.{descriptor.method_name}",
                extra={"kind": kind.value, "operation": descriptor.name, "owner": owner.__qualname__},
            )

    def get(self, kind: OperationKind, owner: type) -> list[Descriptor]:
        return list(self._descriptors[kind].get(owner, ()))

    def contains(self, kind: OperationKind, owner: type, method_name: str) -> bool:
        return any(descriptor.method_name == method_name for descriptor in self._descriptors[kind].get(owner, ()))

    def owners(self, kind: OperationKind) -> list[type]:
        return list(self._descriptors[kind])

    def all(self, kind: OperationKind) -> list[Descriptor]:
        """Every descriptor of a kind, flattened across owners in registration order."""
        return [descriptor for descriptors in self._descriptors[kind].values() for descriptor in descriptors]


_default_registry = OperationRegistry()


def default_registry() -> OperationRegistry:
    """Return the process-wide registry that decorators write to unless told otherwise."""
    return _default_registry
