"""
Operation Decorators

This module provides the @tool, @prompt and @resource decorators that mark methods as MCP operations.

Decorated methods are registered under two binding models:
- immediate (the default): the descriptor is resolved and registered when the class body is executed
- deferred (``deferred=True``): the descriptor is resolved and registered when an instance of the class is constructed

Deferred declarations register against the class that declares them. Deferred binding wraps the class's ``__init__``,
so it cannot be used on dataclasses that rely on the generated ``__init__``.

Both models go through resolve_and_register(), which registers a method at most once per kind and class.
"""

import functools
import inspect
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, is_dataclass
from typing import Any, overload

import pydantic

from .docs import documentation_for
from .locator import SourceLocation, locate_callsite
from .registry import OperationKind, OperationRegistry, default_registry, normalize_uri
from .resolver import Options, PromptOptions, ResourceOptions, ToolOptions, needs_documentation, resolve
from .schema import as_schema

logger = logging.getLogger(__name__)

_INITIALIZERS_ATTR = "__decoratedmcp_initializers__"


@dataclass(frozen=True)
class _Entry:
    kind: OperationKind
    options: Options
    deferred: bool


class Declaration:
    """
    Descriptor holding the operation declarations made on a single method.

    A Declaration stands in for the method on its class. Attribute access and calls are delegated to the wrapped
    function, so the method keeps working as usual. The declarations themselves are the metadata read by the secondary
    lookup in attached_declarations().

    Attributes:
        func: The decorated function
        source: Where the decorator was applied, used to find documentation
        entries: One entry per decorator applied to the function
    """

    func: Callable[..., Any]
    source: SourceLocation | None
    entries: list[_Entry]

    def __init__(self, func: Callable[..., Any], source: SourceLocation | None) -> None:
        functools.update_wrapper(self, func)
        self.func = func
        self.source = source
        self.entries = []

    def __set_name__(self, owner: type, name: str) -> None:
        for entry in self.entries:
            if entry.deferred:
                initializer = functools.partial(self._register_deferred, owner, entry=entry, method_name=name)
                _add_initializer(owner, initializer)
            else:
                self._register_entry(owner, entry=entry, method_name=name)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        return self.func.__get__(instance, owner)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.func(*args, **kwargs)

    def _register_entry(
        self,
        owner: type,
        *,
        entry: _Entry,
        method_name: str,
        registry: OperationRegistry | None = None,
    ) -> None:
        resolve_and_register(owner, method_name, entry.kind, entry.options, self.func, self.source, registry)

    def _register_deferred(self, owner: type, constructed: type, *, entry: _Entry, method_name: str) -> None:
        # A subclass redeclaring the method replaces this declaration for its instances
        if inspect.getattr_static(constructed, method_name, None) is not self:
            return
        self._register_entry(owner, entry=entry, method_name=method_name)

    def register_all(self, owner: type, method_name: str, registry: OperationRegistry | None = None) -> None:
        """Resolve and register every entry right away, regardless of its binding model."""
        for entry in self.entries:
            self._register_entry(owner, entry=entry, method_name=method_name, registry=registry)


def resolve_and_register(
    owner: type,
    method_name: str,
    kind: OperationKind,
    options: Options,
    func: Callable[..., Any],
    source: SourceLocation | None,
    registry: OperationRegistry | None = None,
) -> None:
    """
    Resolve a declaration into a descriptor and add it to the registry.

    This is a no-op when the registry already holds a descriptor of this kind for the same method of the same class,
    so deferred declarations do not pile up as more instances are constructed.

    Args:
        owner: The class the method belongs to
        method_name: Name the method is bound to on the class
        kind: Kind of operation
        options: Explicit decorator options
        func: The decorated function, used for documentation lookup
        source: Declaration site captured when the decorator was applied
        registry: Target registry, defaults to the process-wide registry
    """
    registry = registry if registry is not None else default_registry()
    if registry.contains(kind, owner, method_name):
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"{kind.value} {owner.__qualname__}.{method_name} is already registered, skipping")
        return
    doc = documentation_for(func, method_name, kind.value, source) if needs_documentation(options) else None
    registry.append(kind, owner, resolve(kind, owner, method_name, options, doc))


def attached_declarations(cls: type) -> list[tuple[str, Declaration]]:
    """
    Collect the declarations attached to a class and its bases.

    Returns:
        (attribute name, declaration) pairs. When a name is declared on several classes of the MRO, the one nearest
        to cls wins.
    """
    found: dict[str, Declaration] = {}
    for klass in cls.__mro__:
        for attr_name, attr in vars(klass).items():
            if attr_name not in found and isinstance(attr, Declaration):
                found[attr_name] = attr
    return list(found.items())


@overload
def tool(func: Callable[..., Any], /) -> Declaration: ...


@overload
def tool(
    func: None = None,
    /,
    *,
    name: str | None = None,
    description: str | None = None,
    parameters: Any = None,
    deferred: bool = False,
) -> Callable[[Callable[..., Any]], Declaration]: ...


def tool(
    func: Callable[..., Any] | None = None,
    /,
    *,
    name: str | None = None,
    description: str | None = None,
    parameters: Any = None,
    deferred: bool = False,
) -> Any:
    """
    Mark a method as an MCP tool.

    The method is called with a single argument: the call arguments parsed with the parameter schema.

    Args:
        func: The method, when used as a bare ``@tool``
        name: Tool name, defaults to the method name
        description: Tool description, defaults to the documented summary
        parameters: A pydantic model class, a Schema, or a dict of field types. Defaults to a schema inferred from
                    @param tags, or to accepting any arguments.
        deferred: Register when instances are constructed instead of when the class is defined

    Example:
        ```python
        class Calculator:
            \"\"\"Arithmetic tools.\"\"\"

            \"\"\"
            Add two numbers.
            @param a First number
            @param b Second number
            \"\"\"
            @tool
            async def add(self, args: dict[str, float]) -> float:
                return args["a"] + args["b"]
        ```
    """
    options = ToolOptions(name=name, description=description, parameters=as_schema(parameters, _schema_name(name)))
    return _declare(func, OperationKind.TOOL, options, deferred)


@overload
def prompt(func: Callable[..., Any], /) -> Declaration: ...


@overload
def prompt(
    func: None = None,
    /,
    *,
    name: str | None = None,
    description: str | None = None,
    arguments: Any = None,
    deferred: bool = False,
) -> Callable[[Callable[..., Any]], Declaration]: ...


def prompt(
    func: Callable[..., Any] | None = None,
    /,
    *,
    name: str | None = None,
    description: str | None = None,
    arguments: Any = None,
    deferred: bool = False,
) -> Any:
    """
    Mark a method as an MCP prompt template.

    Args:
        func: The method, when used as a bare ``@prompt``
        name: Prompt name, defaults to the method name
        description: Prompt description, defaults to the documented summary
        arguments: Optional argument schema, same forms as the tool parameters
        deferred: Register when instances are constructed instead of when the class is defined
    """
    options = PromptOptions(name=name, description=description, arguments=as_schema(arguments, _schema_name(name)))
    return _declare(func, OperationKind.PROMPT, options, deferred)


def resource(
    uri: str | re.Pattern[str],
    *,
    name: str | None = None,
    description: str | None = None,
    mime_type: str | None = None,
    deferred: bool = False,
) -> Callable[[Callable[..., Any]], Declaration]:
    """
    Mark a method as an MCP resource.

    The method is called with ``{"uri": <requested uri>}``.

    Args:
        uri: The exact URI served, or a compiled pattern searched in requested URIs. Exact URIs must be absolute URLs
             and are stored in the normalized form clients send, e.g. ``https://example.com/``.
        name: Resource name, defaults to the method name
        description: Resource description, defaults to the documented summary
        mime_type: Mime type of the contents, defaults to text/plain
        deferred: Register when instances are constructed instead of when the class is defined
    """
    if not isinstance(uri, (str, re.Pattern)):
        raise TypeError(f"Resource uri must be a string or a compiled pattern, got {uri!r}")
    if isinstance(uri, str):
        try:
            uri = normalize_uri(uri)
        except pydantic.ValidationError as e:
            raise TypeError(f"Resource uri must be an absolute URL, got {uri!r}") from e
    options = ResourceOptions(uri=uri, name=name, description=description, mime_type=mime_type)
    return _declare(None, OperationKind.RESOURCE, options, deferred)


def _declare(
    func: Callable[..., Any] | None,
    kind: OperationKind,
    options: Options,
    deferred: bool,
) -> Any:
    def decorator(fn: Callable[..., Any]) -> Declaration:
        if isinstance(fn, Declaration):
            declaration = fn
        elif callable(fn):
            source = SourceLocation.of(fn)
            if source is None and (callsite := locate_callsite()) is not None:
                source = SourceLocation(path=callsite, line=1)
            declaration = Declaration(fn, source)
        else:
            raise TypeError(f"@{kind.value} can only be applied to callables, got {fn!r}")
        declaration.entries.append(_Entry(kind=kind, options=options, deferred=deferred))
        return declaration

    return decorator if func is None else decorator(func)


def _add_initializer(owner: type, initializer: Callable[[type], None]) -> None:
    initializers: list[Callable[[type], None]] | None = vars(owner).get(_INITIALIZERS_ATTR)
    if initializers is None:
        initializers = []
        setattr(owner, _INITIALIZERS_ATTR, initializers)
        original_init = owner.__init__
        inherited_init = "__init__" not in vars(owner)

        @functools.wraps(original_init)
        def __init__(self: Any, *args: Any, **kwargs: Any) -> None:
            # dataclass() does not generate __init__ once this wrapper is in the class namespace
            if inherited_init and is_dataclass(owner):
                raise TypeError(
                    f"deferred=True is not supported on dataclass {owner.__qualname__}, use immediate binding instead"
                )
            original_init(self, *args, **kwargs)
            for run in initializers:
                run(type(self))

        owner.__init__ = __init__  # type: ignore[misc]
    initializers.append(initializer)


def _schema_name(name: str | None) -> str:
    return f"{name}_arguments" if name else "Arguments"
