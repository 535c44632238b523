import os
import shutil
import sys
import time
from pathlib import Path

import anyio
import pytest

from mcp_client import (
    ClientConfig,
    MCPClient,
    MCPConnectionError,
    SessionState,
    StdioTransport,
    TextContent,
    TransportError,
    create_mcp_client,
)
from mcp_client.client.transports.stdio import get_default_environment

SERVER_SCRIPT = str(Path(__file__).parent.parent / "servers" / "stdio_server.py")

sleep: str = shutil.which("sleep")  # type: ignore


def server_client(**options) -> MCPClient:
    return MCPClient(command=sys.executable, args=[SERVER_SCRIPT], timeout=10_000, **options)


@pytest.mark.anyio
async def test_stdio_end_to_end():
    async with server_client() as client:
        assert client.get_transport_type() == "stdio"
        assert client.server_info is not None
        assert client.server_info.name == "stdio-test-server"

        tools = await client.list_tools()
        result = await client.call_tool("echo", {"message": "round trip ✓"})
        resources = await client.list_resources()
        text = await client.read_resource("memo://greeting")
        prompt = await client.get_prompt("greet", {"who": "Ada"})
        await client.ping()

    assert [tool.name for tool in tools] == ["echo", "env", "cwd", "crash"]
    assert isinstance(result.content[0], TextContent)
    assert result.content[0].text == "round trip ✓"
    assert resources[0].uri == "memo://greeting"
    assert text == "Hello from stdio"
    assert prompt.messages[0].content == "Say hello to Ada"
    assert not client.is_connected()


@pytest.mark.anyio
async def test_create_mcp_client_connects():
    config = ClientConfig(command=sys.executable, args=[SERVER_SCRIPT])

    client = await create_mcp_client(config)
    try:
        assert client.is_connected()
        assert client.config is config
        await client.ping()
    finally:
        await client.disconnect()

    assert not client.is_connected()


@pytest.mark.anyio
async def test_stdio_env_is_filtered_and_extended(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("MCP_CLIENT_TEST_LEAK", "should not be inherited")

    async with server_client(env={"RAG_API_KEY": "secret"}) as client:
        extra = await client.call_tool("env", {"name": "RAG_API_KEY"})
        leaked = await client.call_tool("env", {"name": "MCP_CLIENT_TEST_LEAK"})

    assert isinstance(extra.content[0], TextContent)
    assert extra.content[0].text == "secret"
    assert isinstance(leaked.content[0], TextContent)
    assert leaked.content[0].text == ""


@pytest.mark.anyio
async def test_stdio_cwd(tmp_path: Path):
    async with server_client(cwd=str(tmp_path)) as client:
        result = await client.call_tool("cwd", {})

    assert isinstance(result.content[0], TextContent)
    assert os.path.realpath(result.content[0].text) == os.path.realpath(tmp_path)


@pytest.mark.anyio
async def test_server_crash_fails_pending_request():
    client = server_client()
    await client.connect()
    try:
        with pytest.raises(MCPConnectionError, match="Connection lost"):
            await client.call_tool("crash", {})

        assert client.state is SessionState.DISCONNECTED
    finally:
        await client.disconnect()


@pytest.mark.anyio
async def test_reconnect_spawns_a_new_process():
    client = server_client()
    transport = client.session.transport
    assert isinstance(transport, StdioTransport)

    async with client:
        first_pid = transport.pid
    assert transport.pid is None

    async with client:
        second_pid = transport.pid
        await client.ping()

    assert first_pid is not None
    assert second_pid is not None
    assert first_pid != second_pid


@pytest.mark.anyio
async def test_nonexistent_command():
    client = MCPClient(command="/path/to/nonexistent/command", args=["--help"])

    with pytest.raises(MCPConnectionError, match="nonexistent"):
        await client.connect()

    assert client.state is SessionState.DISCONNECTED


@pytest.mark.anyio
async def test_process_exiting_before_handshake():
    """A command that exits immediately fails the connect instead of hanging."""
    client = MCPClient(command=sys.executable, args=["-c", "pass"], timeout=5000)

    start_time = time.time()
    with pytest.raises(MCPConnectionError):
        await client.connect()

    assert time.time() - start_time < 4.0
    assert client.state is SessionState.DISCONNECTED


@pytest.mark.anyio
async def test_stderr_is_passed_through(tmp_path: Path):
    errlog_path = tmp_path / "stderr.log"
    with errlog_path.open("w") as errlog:
        transport = StdioTransport(sys.executable, [SERVER_SCRIPT], errlog=errlog)
        async with MCPClient(transport=transport) as client:
            await client.ping()

    assert "stdio test server ready" in errlog_path.read_text()


@pytest.mark.anyio
async def test_transport_send_before_open():
    transport = StdioTransport(sys.executable, [SERVER_SCRIPT])

    with pytest.raises(TransportError):
        await transport.send(b"{}\n")

    await transport.close()
    await transport.close()


@pytest.mark.anyio
@pytest.mark.skipif(sleep is None, reason="could not find sleep command")
async def test_close_terminates_process_ignoring_stdin():
    """A child that never reads stdin is terminated within the grace period."""
    transport = StdioTransport(sleep, ["30"])
    await transport.open()
    with pytest.raises(MCPConnectionError):
        await transport.open()

    start_time = time.time()
    await transport.close()
    elapsed = time.time() - start_time

    assert elapsed < 5.0, f"closing the transport took {elapsed:.1f} seconds"
    assert transport.pid is None


@pytest.mark.anyio
@pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX only")
@pytest.mark.skipif(sleep is None, reason="could not find sleep command")
async def test_close_terminates_grandchildren():
    script = (
        "import subprocess, sys, time\n"
        f"child = subprocess.Popen([{sleep!r}, '30'])\n"
        "print(child.pid, flush=True)\n"
        "time.sleep(30)\n"
    )
    transport = StdioTransport(sys.executable, ["-c", script])
    await transport.open()

    async for chunk in transport.receive():
        grandchild_pid = int(chunk.split()[0])
        break

    await transport.close()

    with anyio.fail_after(3):
        while True:
            try:
                os.kill(grandchild_pid, 0)
            except ProcessLookupError:
                break
            if _is_zombie(grandchild_pid):
                break
            await anyio.sleep(0.05)


def _is_zombie(pid: int) -> bool:
    try:
        with open(f"/proc/{pid}/stat") as stat:
            return stat.read().split(")")[-1].split()[0] == "Z"
    except OSError:
        return False


def test_default_environment_only_keeps_safe_variables(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PATH", "/usr/bin")
    monkeypatch.setenv("MCP_CLIENT_TEST_LEAK", "x")
    monkeypatch.setenv("SHELL", "() { :; }; echo pwned")

    env = get_default_environment()

    assert env["PATH"] == "/usr/bin"
    assert "MCP_CLIENT_TEST_LEAK" not in env
    if sys.platform != "win32":
        assert "SHELL" not in env
