"""Connect to an MCP server, list what it offers, call a tool and disconnect.

Usage:
    python examples/basic_usage.py python path/to/server.py
    MCP_SSE_URL=http://localhost:8000/sse python examples/basic_usage.py
"""

import logging
import os
import sys

import anyio

from mcp_client import MCPClient, McpError, MCPConnectionError, TextContent

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
logger = logging.getLogger(__name__)


def build_client() -> MCPClient:
    sse_url = os.getenv("MCP_SSE_URL")
    if sse_url:
        return MCPClient(sse_url=sse_url, debug=True)
    if len(sys.argv) < 2:
        sys.exit(__doc__)
    return MCPClient(command=sys.argv[1], args=sys.argv[2:], debug=True)


async def main() -> None:
    client = build_client()
    try:
        capabilities = await client.connect()
    except MCPConnectionError as exc:
        logger.error(f"Could not connect: {exc}")
        return

    try:
        logger.info(f"Connected to {client.server_info} via {client.get_transport_type()}")
        if client.instructions:
            logger.info(f"Server instructions: {client.instructions}")

        if capabilities.tools:
            tools = await client.list_tools()
            logger.info(f"Tools: {[tool.name for tool in tools]}")
            if tools:
                tool = tools[0]
                try:
                    result = await client.call_tool(tool.name, {})
                except McpError as exc:
                    logger.warning(f"{tool.name} rejected the call: {exc}")
                else:
                    for block in result.content:
                        if isinstance(block, TextContent):
                            logger.info(f"{tool.name} -> {block.text}")

        if capabilities.resources:
            resources = await client.list_resources()
            logger.info(f"Resources: {[resource.uri for resource in resources]}")

        if capabilities.prompts:
            prompts = await client.list_prompts()
            logger.info(f"Prompts: {[prompt.name for prompt in prompts]}")
    finally:
        await client.disconnect()


if __name__ == "__main__":
    anyio.run(main)
