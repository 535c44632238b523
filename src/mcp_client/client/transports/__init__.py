"""Transport implementations for MCP clients."""

from mcp_client.client.transports.base import Transport
from mcp_client.client.transports.sse import SSETransport
from mcp_client.client.transports.stdio import StdioTransport

__all__ = [
    "Transport",
    "SSETransport",
    "StdioTransport",
]
