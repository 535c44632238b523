"""Base transport protocol for MCP clients."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable


@runtime_checkable
class Transport(Protocol):
    """Protocol for MCP client transports.

    A transport is a duplex byte channel. The session frames and parses
    messages itself, so a transport only moves bytes.

    Example:
        ```python
        class MyTransport:
            async def open(self) -> None:
                # Set up connection, raise MCPConnectionError on failure
                ...

            async def send(self, data: bytes) -> None:
                # Write one or more complete frames, raise TransportError on failure
                ...

            async def receive(self) -> AsyncIterator[bytes]:
                # Yield chunks until the peer goes away
                ...

            async def close(self) -> None:
                # Release everything; safe to call more than once
                ...
        ```
    """

    async def open(self) -> None:
        """Establish the connection. Raises ``MCPConnectionError`` on failure."""
        ...

    async def send(self, data: bytes) -> None:
        """Write bytes to the peer. Raises ``TransportError`` on failure."""
        ...

    def receive(self) -> AsyncIterator[bytes]:
        """Iterate over received byte chunks.

        The iterator ends when the peer closes the connection and may raise
        ``TransportError`` if the channel breaks. It can only be consumed once.
        """
        ...

    async def close(self) -> None:
        """Release the connection. Idempotent."""
        ...
