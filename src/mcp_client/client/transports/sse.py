"""Server-Sent Events (SSE) transport for MCP clients.

The server keeps one GET request open as an event stream. Its first
``endpoint`` event names the URL the client POSTs its own messages to; every
``message`` event afterwards carries one JSON-RPC message from the server.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from typing import Any
from urllib.parse import urljoin, urlparse

import anyio
import httpx
from httpx_sse import EventSource, ServerSentEvent, SSEError, aconnect_sse

from mcp_client.shared._httpx_utils import McpHttpClientFactory, create_mcp_http_client
from mcp_client.shared.exceptions import MCPConnectionError, TransportError

logger = logging.getLogger(__name__)


def remove_request_params(url: str) -> str:
    return urljoin(url, urlparse(url).path)


def resolve_endpoint(url: str, data: str) -> str:
    """Resolve the endpoint announced by the server against the stream URL.

    Raises:
        MCPConnectionError: If the endpoint is on a different origin than the stream.
    """
    endpoint_url = urljoin(url, data)
    url_parsed = urlparse(url)
    endpoint_parsed = urlparse(endpoint_url)
    if url_parsed.netloc != endpoint_parsed.netloc or url_parsed.scheme != endpoint_parsed.scheme:
        raise MCPConnectionError(f"Endpoint origin does not match connection origin: {endpoint_url}")
    return endpoint_url


def frame_from_event(sse: ServerSentEvent) -> bytes:
    """Turn the data of a ``message`` event into one newline-terminated frame.

    A raw newline can only be JSON whitespace (inside strings it must be
    escaped), so folding multi-line data onto one line keeps the JSON intact.
    """
    return sse.data.replace("\r", " ").replace("\n", " ").encode("utf-8") + b"\n"


class SSETransport:
    """Server-Sent Events (SSE) transport for connecting to MCP servers.

    Example:
        ```python
        from mcp_client import MCPClient

        async with MCPClient(sse_url="http://localhost:8000/sse") as client:
            result = await client.call_tool("my_tool", {...})
        ```
    """

    def __init__(
        self,
        url: str,
        *,
        headers: dict[str, Any] | None = None,
        timeout: float = 5.0,
        sse_read_timeout: float = 300.0,
        httpx_client_factory: McpHttpClientFactory = create_mcp_http_client,
    ) -> None:
        """Initialize the SSE transport.

        Args:
            url: The SSE endpoint URL.
            headers: Optional headers to include in requests.
            timeout: HTTP timeout for regular operations (in seconds). Defaults to 5.0.
            sse_read_timeout: How long to wait for a new event before giving up
                (in seconds). Defaults to 300.0.
            httpx_client_factory: Builds the httpx client used for the stream and
                the POSTs. Defaults to create_mcp_http_client.
        """
        self.url = url
        self.headers = headers
        self.timeout = timeout
        self.sse_read_timeout = sse_read_timeout
        self.httpx_client_factory = httpx_client_factory
        self.endpoint_url: str | None = None
        self._client: httpx.AsyncClient | None = None
        self._events: AsyncIterator[ServerSentEvent] | None = None
        self._exit_stack: AsyncExitStack | None = None

    async def open(self) -> None:
        if self._exit_stack is not None:
            raise MCPConnectionError("SSE transport is already open")

        exit_stack = AsyncExitStack()
        try:
            logger.info(f"Connecting to SSE endpoint: {remove_request_params(self.url)}")
            client = await exit_stack.enter_async_context(
                self.httpx_client_factory(
                    headers=self.headers,
                    timeout=httpx.Timeout(self.timeout, read=self.sse_read_timeout),
                )
            )
            event_source: EventSource = await exit_stack.enter_async_context(aconnect_sse(client, "GET", self.url))
            event_source.response.raise_for_status()
            logger.debug("SSE connection established")

            events = event_source.aiter_sse()
            self.endpoint_url = await self._wait_for_endpoint(events)
            logger.info(f"Received endpoint URL: {self.endpoint_url}")
        except (httpx.HTTPError, SSEError) as exc:
            await exit_stack.aclose()
            raise MCPConnectionError(f"Failed to open SSE stream {remove_request_params(self.url)}: {exc}") from exc
        except BaseException:
            await exit_stack.aclose()
            raise

        self._client = client
        self._events = events
        self._exit_stack = exit_stack

    async def _wait_for_endpoint(self, events: AsyncIterator[ServerSentEvent]) -> str:
        async for sse in events:
            logger.debug(f"Received SSE event: {sse.event}")
            if sse.event == "endpoint":
                return resolve_endpoint(self.url, sse.data)
            logger.warning(f"Ignoring SSE event {sse.event!r} received before the endpoint event")
        raise MCPConnectionError("SSE stream closed before the server announced its endpoint")

    async def send(self, data: bytes) -> None:
        if self._client is None or self.endpoint_url is None:
            raise TransportError("SSE transport is not open")
        try:
            response = await self._client.post(
                self.endpoint_url,
                content=data.rstrip(b"\n"),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to post message to {self.endpoint_url}: {exc}") from exc
        logger.debug(f"Client message sent successfully: {response.status_code}")

    async def receive(self) -> AsyncIterator[bytes]:
        if self._events is None:
            raise TransportError("SSE transport is not open")
        try:
            async for sse in self._events:
                match sse.event:
                    case "message":
                        yield frame_from_event(sse)
                    case "endpoint":
                        logger.warning(f"Ignoring repeated endpoint event: {sse.data}")
                    case _:
                        logger.warning(f"Unknown SSE event: {sse.event}")
        except (httpx.HTTPError, SSEError) as exc:
            raise TransportError(f"SSE stream failed: {exc}") from exc
        except anyio.ClosedResourceError:
            return
        logger.debug("SSE stream ended")

    async def close(self) -> None:
        exit_stack, self._exit_stack = self._exit_stack, None
        self._client = None
        self._events = None
        if exit_stack is None:
            return
        with anyio.CancelScope(shield=True):
            await exit_stack.aclose()
