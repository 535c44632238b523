"""A small REPL on top of MCPClient.

Commands: tools, call <name> [json-args], resources, read <uri>, prompts,
prompt <name> [json-args], quit.
"""

import json
import logging

import anyio
import anyio.to_thread
import click

from mcp_client import ClientConfig, ClientError, MCPClient, TextContent

logger = logging.getLogger(__name__)

HELP = "Commands: tools, call <name> [json-args], resources, read <uri>, prompts, prompt <name> [json-args], quit"


def parse_arguments(raw: str | None) -> dict:
    if not raw:
        return {}
    arguments = json.loads(raw)
    if not isinstance(arguments, dict):
        raise ValueError("arguments must be a JSON object")
    return arguments


async def run_command(client: MCPClient, command: str, rest: list[str]) -> None:
    match command:
        case "tools":
            for tool in await client.list_tools():
                click.echo(f"  {tool.name}: {tool.description or ''}")
        case "call":
            result = await client.call_tool(rest[0], parse_arguments(rest[1] if len(rest) > 1 else None))
            prefix = "error" if result.is_error else "result"
            for block in result.content:
                text = block.text if isinstance(block, TextContent) else f"<{block.type} content>"
                click.echo(f"  {prefix}: {text}")
        case "resources":
            for resource in await client.list_resources():
                click.echo(f"  {resource.uri}: {resource.name}")
        case "read":
            click.echo(await client.read_resource(rest[0]))
        case "prompts":
            for prompt in await client.list_prompts():
                arguments = ", ".join(argument.name for argument in prompt.arguments or [])
                click.echo(f"  {prompt.name}({arguments})")
        case "prompt":
            rendered = await client.get_prompt(rest[0], parse_arguments(rest[1] if len(rest) > 1 else None))
            for message in rendered.messages:
                click.echo(f"  [{message.role}] {message.content}")
        case _:
            click.echo(HELP)


async def repl(client: MCPClient) -> None:
    async with client:
        click.echo(f"Connected to {client.server_info} ({client.capabilities})")
        click.echo(HELP)
        while True:
            try:
                line = (await anyio.to_thread.run_sync(input, "mcp> ")).strip()
            except EOFError:
                break
            if not line:
                continue

            command, *rest = line.split(maxsplit=2)
            if command == "quit":
                break
            if command in ("call", "read", "prompt") and not rest:
                click.echo(f"Usage: {command} <name>")
                continue

            try:
                await run_command(client, command, rest)
            except (ClientError, ValueError) as exc:
                click.echo(f"Error: {exc}")


@click.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="JSON or YAML config file")
@click.option("--server", default=None, help="Entry to use from the config file's server mapping")
@click.option("--sse-url", default=None, help="Event stream URL of the server")
@click.option("--debug", is_flag=True, help="Log connection and tool call events")
@click.argument("command", nargs=-1)
def main(config_path: str | None, server: str | None, sse_url: str | None, debug: bool, command: tuple[str, ...]):
    """Talk to an MCP server given as COMMAND, --sse-url or --config."""
    logging.basicConfig(level=logging.INFO if debug else logging.WARNING)

    if config_path:
        config = ClientConfig.from_file(config_path, server=server)
        if debug:
            config = config.model_copy(update={"debug": True})
    else:
        config = ClientConfig.build(
            command=command[0] if command else None, args=list(command[1:]), sse_url=sse_url, debug=debug
        )

    anyio.run(repl, MCPClient(config))


if __name__ == "__main__":
    main()
