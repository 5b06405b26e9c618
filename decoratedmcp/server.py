"""
Decorated MCP Server

This module provides MCPServer, which serves the tools, prompts and resources declared with the decoratedmcp
decorators through a low-level MCP server.

Listing requests enumerate the registry. Call, get and read requests are routed by the Dispatcher to the instances
registered with register().
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import mcp.types as types
from mcp.client.session import ClientSession
from mcp.server.lowlevel import Server
from mcp.shared.memory import create_connected_server_and_client_session

from .dispatch import Dispatcher
from .log import configure_logging
from .registry import OperationRegistry, default_registry
from .transports import (
    SseTransportConfig,
    StdioTransportConfig,
    StreamableHttpTransportConfig,
    Transport,
    create_transport,
)

logger = logging.getLogger(__name__)


class MCPServer:
    """
    MCP server for classes with decorated methods.

    Example:
        ```python
        class Calculator:
            @tool(name="add", parameters={"a": float, "b": float})
            async def add(self, args: dict[str, float]) -> float:
                return args["a"] + args["b"]

        server = MCPServer("calculator", "1.0.0")
        server.register(Calculator())
        await server.serve()
        ```
    """

    _server: Server
    """Low-level MCP server the request handlers are installed on"""

    _dispatcher: Dispatcher
    """Routes requests to bound instances"""

    _transport: Transport | None
    """Transport created by the last serve() call"""

    def __init__(self, name: str, version: str, registry: OperationRegistry | None = None) -> None:
        """
        Initialize the server and install the listing handlers.

        Args:
            name: Server name reported to clients
            version: Server version reported to clients
            registry: Registry to serve from, defaults to the process-wide registry
        """
        self._server = Server(name, version=version)
        self._dispatcher = Dispatcher(registry if registry is not None else default_registry())
        self._transport = None
        self._setup_handlers()

    @property
    def server(self) -> Server:
        """The underlying low-level MCP server."""
        return self._server

    @property
    def transport(self) -> Transport | None:
        """The transport created by serve(), if any."""
        return self._transport

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def register(self, instance: Any) -> None:
        """
        Register an instance whose class declares operations.

        Registering another instance of the same class replaces the previous one. The call, get and read handlers
        are reinstalled on every registration; each of them looks operations up in the whole registry.

        Args:
            instance: An instance of a class with decorated methods
        """
        self._dispatcher.bind_instance(instance)
        self._server.request_handlers[types.CallToolRequest] = self._handle_call_tool
        self._server.request_handlers[types.GetPromptRequest] = self._handle_get_prompt
        self._server.request_handlers[types.ReadResourceRequest] = self._handle_read_resource

    async def serve(self, config: Any = None) -> None:
        """
        Start serving over a transport.

        For stdio this runs until the input stream closes. The HTTP based transports only get connected here; their
        requests are handed to the transport by the ASGI application (see the transport property).

        Args:
            config: A transport configuration model or dict, defaults to stdio

        Raises:
            UnsupportedTransportError: If the configuration names an unknown transport type
        """
        configure_logging()
        self._transport = create_transport(config if config is not None else self.create_stdio_config())
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Serving {self._server.name} over {type(self._transport).__name__}")
        await self._transport.connect(self._server)

    async def close(self) -> None:
        """Close the transport created by serve()."""
        if self._transport is not None:
            await self._transport.close()

    @staticmethod
    def create_transport(config: Any) -> Transport:
        """
        Create a transport from a configuration.

        Raises:
            UnsupportedTransportError: If the configuration names an unknown transport type
        """
        return create_transport(config)

    @staticmethod
    def create_stdio_config() -> StdioTransportConfig:
        return StdioTransportConfig()

    @staticmethod
    def create_sse_config(endpoint: str, options: dict[str, Any] | None = None) -> SseTransportConfig:
        return SseTransportConfig(endpoint=endpoint, options=options or {})

    @staticmethod
    def create_streamable_http_config(options: dict[str, Any] | None = None) -> StreamableHttpTransportConfig:
        return StreamableHttpTransportConfig(options=options or {})

    @asynccontextmanager
    async def connect_in_memory(self, raise_exceptions: bool = False) -> AsyncGenerator[ClientSession, None]:
        """
        Connect an MCP client session to this server through in-memory streams.

        The session is initialized before being yielded.

        Args:
            raise_exceptions: Re-raise handler exceptions in the server instead of answering with protocol errors
        """
        async with create_connected_server_and_client_session(
            self._server,
            raise_exceptions=raise_exceptions,
        ) as session:
            yield session

    def _setup_handlers(self) -> None:
        self._server.request_handlers[types.ListToolsRequest] = self._handle_list_tools
        self._server.request_handlers[types.ListPromptsRequest] = self._handle_list_prompts
        self._server.request_handlers[types.ListResourcesRequest] = self._handle_list_resources
        self._server.request_handlers[types.ListResourceTemplatesRequest] = self._handle_list_resource_templates

    async def _handle_list_tools(self, _req: types.ListToolsRequest) -> types.ServerResult:
        return types.ServerResult(types.ListToolsResult(tools=self._dispatcher.list_tools()))

    async def _handle_list_prompts(self, _req: types.ListPromptsRequest) -> types.ServerResult:
        return types.ServerResult(types.ListPromptsResult(prompts=self._dispatcher.list_prompts()))

    async def _handle_list_resources(self, _req: types.ListResourcesRequest) -> types.ServerResult:
        return types.ServerResult(types.ListResourcesResult(resources=self._dispatcher.list_resources()))

    async def _handle_list_resource_templates(self, _req: types.ListResourceTemplatesRequest) -> types.ServerResult:
        return types.ServerResult(
            types.ListResourceTemplatesResult(resourceTemplates=self._dispatcher.list_resource_templates())
        )

    async def _handle_call_tool(self, req: types.CallToolRequest) -> types.ServerResult:
        params = req.params
        return types.ServerResult(await self._dispatcher.call_tool(params.name, params.arguments, params.model_extra))

    async def _handle_get_prompt(self, req: types.GetPromptRequest) -> types.ServerResult:
        return types.ServerResult(await self._dispatcher.get_prompt(req.params.name, req.params.arguments))

    async def _handle_read_resource(self, req: types.ReadResourceRequest) -> types.ServerResult:
        return types.ServerResult(await self._dispatcher.read_resource(str(req.params.uri)))
