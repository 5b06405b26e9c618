from .decorators import Declaration, prompt, resource, tool
from .dispatch import Dispatcher, to_text
from .errors import (
    DecoratedMCPError,
    OperationError,
    OperationNotFoundError,
    PromptError,
    PromptNotFoundError,
    ResourceError,
    ResourceNotFoundError,
    ToolNotFoundError,
    UnsupportedTransportError,
)
from .log import configure_logging
from .registry import (
    OperationKind,
    OperationRegistry,
    PromptDescriptor,
    ResourceDescriptor,
    ToolDescriptor,
    default_registry,
)
from .schema import ANY_SCHEMA, AnySchema, ModelSchema, Schema
from .server import MCPServer
from .transports import SseTransportConfig, StdioTransportConfig, StreamableHttpTransportConfig

__all__ = [
    "MCPServer",
    "tool",
    "prompt",
    "resource",
    "Declaration",
    "Dispatcher",
    "to_text",
    "OperationKind",
    "OperationRegistry",
    "ToolDescriptor",
    "PromptDescriptor",
    "ResourceDescriptor",
    "default_registry",
    "Schema",
    "AnySchema",
    "ModelSchema",
    "ANY_SCHEMA",
    "StdioTransportConfig",
    "SseTransportConfig",
    "StreamableHttpTransportConfig",
    "configure_logging",
    "DecoratedMCPError",
    "OperationNotFoundError",
    "ToolNotFoundError",
    "PromptNotFoundError",
    "ResourceNotFoundError",
    "OperationError",
    "PromptError",
    "ResourceError",
    "UnsupportedTransportError",
]
