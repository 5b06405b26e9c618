"""
Transports

This module provides the transport configurations accepted by MCPServer.serve() and the adapters that connect a
low-level MCP server to stdio, server-sent events or streamable HTTP.

The HTTP based transports are ASGI callables: the application framework routes requests to them, and each adapter
hands the requests to the matching session machinery of the MCP SDK.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Annotated, Any, Literal, Protocol, Union

import anyio
import pydantic
from mcp.server.lowlevel import Server
from mcp.server.sse import SseServerTransport
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.types import Receive, Scope, Send

from .errors import UnsupportedTransportError

logger = logging.getLogger(__name__)


class StdioTransportConfig(pydantic.BaseModel):
    type: Literal["stdio"] = "stdio"


class SseTransportConfig(pydantic.BaseModel):
    """
    Server-sent events transport.

    The response sink of each SSE connection is the ASGI ``send`` callable of the request handled by
    SseTransport.handle_sse().
    """

    type: Literal["sse"] = "sse"
    endpoint: str
    """Path clients POST their messages to"""
    options: dict[str, Any] = {}
    """Keyword arguments for mcp.server.sse.SseServerTransport"""


class StreamableHttpTransportConfig(pydantic.BaseModel):
    type: Literal["streamableHttp"] = "streamableHttp"
    options: dict[str, Any] = {}
    """Keyword arguments for mcp.server.streamable_http_manager.StreamableHTTPSessionManager, e.g. stateless"""


TransportConfig = Annotated[
    Union[StdioTransportConfig, SseTransportConfig, StreamableHttpTransportConfig],
    pydantic.Field(discriminator="type"),
]

_TRANSPORT_CONFIG_ADAPTER: pydantic.TypeAdapter[Any] = pydantic.TypeAdapter(TransportConfig)
_TRANSPORT_TYPES = frozenset({"stdio", "sse", "streamableHttp"})


class Transport(Protocol):
    async def connect(self, server: Server) -> None: ...

    async def close(self) -> None: ...


class StdioTransport:
    """Runs a session over the process's stdin and stdout until stdin closes or close() is called."""

    _cancel_scope: anyio.CancelScope | None

    def __init__(self) -> None:
        self._cancel_scope = None

    async def connect(self, server: Server) -> None:
        with anyio.CancelScope() as scope:
            self._cancel_scope = scope
            async with stdio_server() as (read_stream, write_stream):
                await server.run(read_stream, write_stream, server.create_initialization_options())

    async def close(self) -> None:
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()


class SseTransport:
    """
    ASGI adapter for the server-sent events transport.

    Route the SSE endpoint (GET) to handle_sse() and the message endpoint (POST) to handle_post_message().
    """

    _sse: SseServerTransport
    _server: Server | None

    def __init__(self, endpoint: str, options: dict[str, Any] | None = None) -> None:
        self._sse = SseServerTransport(endpoint, **(options or {}))
        self._server = None

    async def connect(self, server: Server) -> None:
        self._server = server

    async def handle_sse(self, scope: Scope, receive: Receive, send: Send) -> None:
        server = self._connected_server()
        async with self._sse.connect_sse(scope, receive, send) as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    async def handle_post_message(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self._sse.handle_post_message(scope, receive, send)

    async def close(self) -> None:
        self._server = None

    def _connected_server(self) -> Server:
        if self._server is None:
            raise RuntimeError("SSE transport is not connected to a server")
        return self._server


class StreamableHttpTransport:
    """
    ASGI adapter for the streamable HTTP transport.

    run() must be active while requests are handled, typically for the lifespan of the ASGI application.
    """

    _options: dict[str, Any]
    _manager: StreamableHTTPSessionManager | None

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        self._options = dict(options or {})
        self._manager = None

    async def connect(self, server: Server) -> None:
        self._manager = StreamableHTTPSessionManager(app=server, **self._options)

    @asynccontextmanager
    async def run(self) -> AsyncGenerator[None, None]:
        async with self._connected_manager().run():
            yield

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self._connected_manager().handle_request(scope, receive, send)

    async def close(self) -> None:
        self._manager = None

    def _connected_manager(self) -> StreamableHTTPSessionManager:
        if self._manager is None:
            raise RuntimeError("Streamable HTTP transport is not connected to a server")
        return self._manager


def parse_transport_config(
    config: StdioTransportConfig | SseTransportConfig | StreamableHttpTransportConfig | dict[str, Any],
) -> StdioTransportConfig | SseTransportConfig | StreamableHttpTransportConfig:
    """
    Validate a transport configuration given as a model or a plain dict.

    Raises:
        UnsupportedTransportError: If the configuration names an unknown transport type
        pydantic.ValidationError: If a known transport type is configured with invalid fields
    """
    if isinstance(config, dict):
        if config.get("type") not in _TRANSPORT_TYPES:
            raise UnsupportedTransportError(config.get("type"))
        return _TRANSPORT_CONFIG_ADAPTER.validate_python(config)
    return config


def create_transport(config: Any) -> StdioTransport | SseTransport | StreamableHttpTransport:
    """
    Create the transport adapter for a configuration.

    Raises:
        UnsupportedTransportError: If the configuration names an unknown transport type
    """
    config = parse_transport_config(config)
    transport_type = getattr(config, "type", None)
    if transport_type not in _TRANSPORT_TYPES:
        raise UnsupportedTransportError(transport_type)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Creating {transport_type} transport", extra={"transport": transport_type})
    match config:
        case StdioTransportConfig():
            return StdioTransport()
        case SseTransportConfig(endpoint=endpoint, options=options):
            return SseTransport(endpoint, options)
        case StreamableHttpTransportConfig(options=options):
            return StreamableHttpTransport(options)
        case other:
            raise UnsupportedTransportError(type(other).__name__)
