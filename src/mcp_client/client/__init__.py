from mcp_client.client.client import MCPClient, create_mcp_client
from mcp_client.client.config import ClientConfig
from mcp_client.client.session import ClientSession, PendingRequest, SessionState

__all__ = [
    "ClientConfig",
    "ClientSession",
    "MCPClient",
    "PendingRequest",
    "SessionState",
    "create_mcp_client",
]
