"""
Errors raised by decoratedmcp.

Inference problems are never raised; they fall back to explicit or default values. Tool validation and invocation
failures are returned to the caller as error-flagged results. Everything else in this module propagates.
"""


class DecoratedMCPError(Exception):
    """Base class for all decoratedmcp errors."""


class OperationNotFoundError(DecoratedMCPError, LookupError):
    """No registered operation matches the requested name or URI."""


class ToolNotFoundError(OperationNotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Tool {name} not found")
        self.name = name


class PromptNotFoundError(OperationNotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Prompt {name} not found")
        self.name = name


class ResourceNotFoundError(OperationNotFoundError):
    def __init__(self, uri: str) -> None:
        super().__init__(f"Resource {uri} not found")
        self.uri = uri


class OperationError(DecoratedMCPError):
    """A prompt or resource method failed while being invoked."""


class PromptError(OperationError):
    def __init__(self, name: str, cause: BaseException) -> None:
        super().__init__(f"Error in prompt {name}: {cause}")
        self.name = name


class ResourceError(OperationError):
    def __init__(self, uri: str, cause: BaseException) -> None:
        super().__init__(f"Error reading resource {uri}: {cause}")
        self.uri = uri


class UnsupportedTransportError(DecoratedMCPError, ValueError):
    def __init__(self, transport_type: object) -> None:
        super().__init__(f"Unsupported transport type: {transport_type}")
        self.transport_type = transport_type
