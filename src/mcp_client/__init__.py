"""A client for the [Model Context Protocol (MCP)](https://modelcontextprotocol.io).

Use it to:

- Spawn an MCP server as a child process, or reach one over an HTTP event stream
- Negotiate capabilities with the server
- List and call tools, list and read resources, list and render prompts

## Example

```python
import anyio

from mcp_client import MCPClient


async def main():
    async with MCPClient(command="python", args=["server.py"]) as client:
        tools = await client.list_tools()
        result = await client.call_tool("add", {"a": 5, "b": 3})
        print(result.content[0].text)


anyio.run(main)
```
"""

from .client import ClientConfig, ClientSession, MCPClient, PendingRequest, SessionState, create_mcp_client
from .client.transports import SSETransport, StdioTransport, Transport
from .shared.codec import MessageCodec, MessageKind
from .shared.exceptions import (
    AlreadyConnectedError,
    CapabilityNotSupportedError,
    ClientError,
    ConfigurationError,
    MCPConnectionError,
    McpError,
    NotConnectedError,
    ProtocolError,
    RequestTimeoutError,
    SessionClosedError,
    TransportError,
    UnsupportedContentError,
)
from .types import (
    CapabilitySet,
    ContentBlock,
    EmbeddedResource,
    ErrorData,
    ImageContent,
    Implementation,
    Prompt,
    PromptArgument,
    PromptMessageText,
    PromptResult,
    Resource,
    ResourceContents,
    TextContent,
    Tool,
    ToolCallResult,
    ToolInputSchema,
    TransportType,
    UnknownContent,
)

__all__ = [
    "AlreadyConnectedError",
    "CapabilityNotSupportedError",
    "CapabilitySet",
    "ClientConfig",
    "ClientError",
    "ClientSession",
    "ConfigurationError",
    "ContentBlock",
    "EmbeddedResource",
    "ErrorData",
    "ImageContent",
    "Implementation",
    "MCPClient",
    "MCPConnectionError",
    "McpError",
    "MessageCodec",
    "MessageKind",
    "NotConnectedError",
    "PendingRequest",
    "Prompt",
    "PromptArgument",
    "PromptMessageText",
    "PromptResult",
    "ProtocolError",
    "RequestTimeoutError",
    "Resource",
    "ResourceContents",
    "SSETransport",
    "SessionClosedError",
    "SessionState",
    "StdioTransport",
    "TextContent",
    "Tool",
    "ToolCallResult",
    "ToolInputSchema",
    "Transport",
    "TransportError",
    "TransportType",
    "UnknownContent",
    "UnsupportedContentError",
    "create_mcp_client",
]
