"""MCP client that wraps ClientSession with transport selection and typed operations."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from mcp_client.client.config import ClientConfig
from mcp_client.client.session import ClientSession, NotificationFnT, SessionState
from mcp_client.client.transports import SSETransport, StdioTransport, Transport
from mcp_client.shared.exceptions import (
    CapabilityNotSupportedError,
    ConfigurationError,
    NotConnectedError,
    ProtocolError,
    UnsupportedContentError,
)
from mcp_client.types import (
    CapabilitySet,
    GetPromptResult,
    Implementation,
    ListPromptsResult,
    ListResourcesResult,
    ListToolsResult,
    Prompt,
    PromptMessageText,
    PromptResult,
    ReadResourceResult,
    Resource,
    Tool,
    ToolCallResult,
    TransportType,
)

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", bound=BaseModel)


def create_transport(config: ClientConfig) -> Transport:
    """Build the transport the configuration resolves to."""
    if config.transport_type == "sse":
        assert config.sse_url is not None
        return SSETransport(config.sse_url, headers=config.headers, timeout=config.timeout_seconds)
    assert config.command is not None
    return StdioTransport(config.command, config.args, env=config.env, cwd=config.cwd)


class MCPClient:
    """A client for connecting to an MCP server and invoking its tools.

    Examples:
        ```python
        from mcp_client import MCPClient

        # Server spawned as a child process
        async with MCPClient(command="python", args=["server.py"]) as client:
            tools = await client.list_tools()
            result = await client.call_tool("add", {"a": 1, "b": 2})

        # Server reachable over an HTTP event stream
        client = MCPClient(sse_url="http://localhost:8000/sse", debug=True)
        capabilities = await client.connect()
        try:
            if capabilities.resources:
                print(await client.list_resources())
        finally:
            await client.disconnect()
        ```
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: Transport | None = None,
        notification_handler: NotificationFnT | None = None,
        **options: Any,
    ) -> None:
        """Create a client. Nothing is connected until ``connect()``.

        Args:
            config: A ready configuration. Mutually exclusive with ``options``.
            transport: Use this transport instead of the one the configuration
                resolves to. ``command`` and ``sse_url`` are then optional.
            notification_handler: Coroutine called with every notification the
                server sends.
            **options: ``ClientConfig`` fields, e.g. ``command``, ``args``,
                ``env``, ``sse_url``/``sseUrl``, ``timeout`` (ms), ``debug``.

        Raises:
            ConfigurationError: If no transport can be resolved or an option is invalid.
        """
        if config is not None and options:
            raise ConfigurationError("Pass either a ClientConfig or keyword options, not both")
        self._config = (
            config if config is not None else ClientConfig.build(transport_provided=transport is not None, **options)
        )
        self._transport = transport if transport is not None else create_transport(self._config)
        self._session = ClientSession(
            self._transport,
            read_timeout_seconds=self._config.timeout_seconds,
            client_info=Implementation(name=self._config.client_name, version=self._config.client_version),
            notification_handler=notification_handler,
        )

    async def __aenter__(self) -> MCPClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def session(self) -> ClientSession:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def capabilities(self) -> CapabilitySet | None:
        return self._session.capabilities

    @property
    def server_info(self) -> Implementation | None:
        result = self._session.initialize_result
        return result.server_info if result is not None else None

    @property
    def instructions(self) -> str | None:
        """Usage instructions the server sent during the handshake, if any."""
        result = self._session.initialize_result
        return result.instructions if result is not None else None

    def get_transport_type(self) -> TransportType:
        if isinstance(self._transport, SSETransport):
            return "sse"
        if isinstance(self._transport, StdioTransport):
            return "stdio"
        return self._config.transport_type

    def is_connected(self) -> bool:
        return self._session.is_connected()

    async def connect(self) -> CapabilitySet:
        """Connect to the server and return the capabilities it advertised."""
        capabilities = await self._session.connect()
        self._log_event(f"Connected via {self.get_transport_type()}")
        return capabilities

    async def disconnect(self) -> None:
        was_connected = self._session.state is not SessionState.DISCONNECTED
        await self._session.disconnect()
        if was_connected:
            self._log_event("Disconnected")

    async def ping(self) -> None:
        await self._session.ping()

    async def list_tools(self) -> list[Tool]:
        self._require("tools")
        return await self._paginate("tools/list", ListToolsResult, "tools")

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolCallResult:
        """Call a tool with the given arguments.

        A failure inside the tool is reported through ``ToolCallResult.is_error``;
        only connection and protocol failures raise.
        """
        self._require("tools")
        arguments = arguments or {}
        self._log_event(f"Calling tool: {name} {arguments}")
        raw = await self._session.request("tools/call", {"name": name, "arguments": arguments})
        return self._validate("tools/call", ToolCallResult, raw)

    async def list_resources(self) -> list[Resource]:
        self._require("resources")
        return await self._paginate("resources/list", ListResourcesResult, "resources")

    async def read_resource(self, uri: str) -> str:
        """Read a resource and return its text.

        Raises:
            UnsupportedContentError: If the resource has no textual representation.
        """
        self._require("resources")
        raw = await self._session.request("resources/read", {"uri": uri})
        result = self._validate("resources/read", ReadResourceResult, raw)

        content = result.contents[0] if result.contents else None
        if content is None or content.text is None:
            raise UnsupportedContentError(f"Resource content not available as text: {uri}")
        return content.text

    async def list_prompts(self) -> list[Prompt]:
        self._require("prompts")
        return await self._paginate("prompts/list", ListPromptsResult, "prompts")

    async def get_prompt(self, name: str, arguments: dict[str, str] | None = None) -> PromptResult:
        """Get a prompt with the given arguments, each message flattened to its text."""
        self._require("prompts")
        raw = await self._session.request("prompts/get", {"name": name, "arguments": arguments or {}})
        result = self._validate("prompts/get", GetPromptResult, raw)
        return PromptResult(
            description=result.description,
            messages=[PromptMessageText(role=message.role, content=message.text()) for message in result.messages],
        )

    def _require(self, capability: str) -> None:
        if not self._session.is_connected():
            raise NotConnectedError("Not connected to MCP server. Call connect() first.")
        if not self._config.strict_capabilities:
            return
        capabilities = self._session.capabilities
        if capabilities is None or not getattr(capabilities, capability):
            raise CapabilityNotSupportedError(capability)

    async def _paginate(self, method: str, result_type: type[BaseModel], key: str) -> list[Any]:
        items: list[Any] = []
        seen: set[str] = set()
        cursor: str | None = None
        while True:
            raw = await self._session.request(method, {"cursor": cursor} if cursor else None)
            page = self._validate(method, result_type, raw)
            items.extend(getattr(page, key))

            cursor = getattr(page, "next_cursor", None)
            if not cursor:
                return items
            if cursor in seen:
                logger.warning(f"Server repeated cursor {cursor!r} for {method}, stopping pagination")
                return items
            seen.add(cursor)

    @staticmethod
    def _validate(method: str, result_type: type[ResultT], raw: dict[str, Any]) -> ResultT:
        try:
            return result_type.model_validate(raw)
        except ValidationError as exc:
            raise ProtocolError(f"Invalid result for {method}: {exc.error_count()} validation error(s)") from exc

    def _log_event(self, message: str) -> None:
        if self._config.debug:
            logger.info(f"[MCP Client] {message}")


async def create_mcp_client(config: ClientConfig | None = None, **options: Any) -> MCPClient:
    """Create a client and connect it in one step."""
    client = MCPClient(config, **options)
    await client.connect()
    return client
