import logging
import os
import signal
import subprocess
import sys
from collections.abc import AsyncIterator
from pathlib import Path
from typing import TextIO

import anyio
from anyio.abc import Process

from mcp_client.shared.exceptions import MCPConnectionError, TransportError

logger = logging.getLogger(__name__)

# Environment variables to inherit by default
DEFAULT_INHERITED_ENV_VARS = (
    [
        "APPDATA",
        "HOMEDRIVE",
        "HOMEPATH",
        "LOCALAPPDATA",
        "PATH",
        "PATHEXT",
        "PROCESSOR_ARCHITECTURE",
        "SYSTEMDRIVE",
        "SYSTEMROOT",
        "TEMP",
        "USERNAME",
        "USERPROFILE",
    ]
    if sys.platform == "win32"
    else ["HOME", "LOGNAME", "PATH", "SHELL", "TERM", "USER"]
)

# Timeout for process termination before falling back to force kill
PROCESS_TERMINATION_TIMEOUT = 2.0


def get_default_environment() -> dict[str, str]:
    """
    Returns a default environment object including only environment variables deemed
    safe to inherit.
    """
    env: dict[str, str] = {}

    for key in DEFAULT_INHERITED_ENV_VARS:
        value = os.environ.get(key)
        if value is None:
            continue

        if value.startswith("()"):
            # Skip functions, which are a security risk
            continue

        env[key] = value

    return env


class StdioTransport:
    """
    Transport that spawns the server as a child process and talks to it over
    its stdin/stdout. The child's stderr is passed through to ``errlog``.

    The process is started in its own session so that ``close()`` can take
    down the whole process group, including anything the server spawned.
    """

    def __init__(
        self,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        cwd: str | Path | None = None,
        errlog: TextIO = sys.stderr,
    ) -> None:
        self.command = command
        self.args = list(args or [])
        self.env = env
        self.cwd = cwd
        self.errlog = errlog
        self._process: Process | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    async def open(self) -> None:
        if self._process is not None:
            raise MCPConnectionError("Process transport is already open")

        env = {**get_default_environment(), **self.env} if self.env is not None else get_default_environment()
        logger.debug(f"Spawning server process: {self.command} {' '.join(self.args)}")
        try:
            self._process = await anyio.open_process(
                [self.command, *self.args],
                env=env,
                cwd=self.cwd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=self.errlog,
                start_new_session=sys.platform != "win32",
            )
        except OSError as exc:
            raise MCPConnectionError(f"Failed to start server process {self.command!r}: {exc}") from exc

    async def send(self, data: bytes) -> None:
        process = self._process
        if process is None or process.stdin is None:
            raise TransportError("Process transport is not open")
        try:
            await process.stdin.send(data)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError, OSError) as exc:
            raise TransportError(f"Failed to write to server process: {exc}") from exc

    async def receive(self) -> AsyncIterator[bytes]:
        process = self._process
        if process is None or process.stdout is None:
            raise TransportError("Process transport is not open")
        try:
            async for chunk in process.stdout:
                yield chunk
        except (anyio.BrokenResourceError, OSError) as exc:
            raise TransportError(f"Failed to read from server process: {exc}") from exc
        except anyio.ClosedResourceError:
            # close() shut the stream while we were reading
            return
        logger.debug(f"Server process {process.pid} closed its stdout (exit code {process.returncode})")

    async def close(self) -> None:
        process, self._process = self._process, None
        if process is None:
            return

        # Shutdown sequence:
        # 1. Close input stream to server
        # 2. Wait for server to exit, or send SIGTERM if it doesn't exit in time
        # 3. Send SIGKILL if still not exited
        with anyio.CancelScope(shield=True):
            if process.stdin is not None:
                try:
                    await process.stdin.aclose()
                except (anyio.BrokenResourceError, anyio.ClosedResourceError, OSError):
                    pass

            try:
                with anyio.fail_after(PROCESS_TERMINATION_TIMEOUT):
                    await process.wait()
            except TimeoutError:
                await _terminate_process_tree(process, PROCESS_TERMINATION_TIMEOUT)
            except ProcessLookupError:
                pass

            await process.aclose()
        logger.debug(f"Server process {process.pid} exited with code {process.returncode}")


async def _terminate_process_tree(process: Process, timeout_seconds: float) -> None:
    """
    SIGTERM the process group, then SIGKILL whatever is left after ``timeout_seconds``.

    Falls back to signalling only the process itself where process groups are
    not available.
    """
    if sys.platform == "win32":
        process.terminate()
        with anyio.move_on_after(timeout_seconds):
            await process.wait()
            return
        process.kill()
        return

    try:
        pgid = os.getpgid(process.pid)
        os.killpg(pgid, signal.SIGTERM)

        with anyio.move_on_after(timeout_seconds):
            while True:
                try:
                    # Signal 0 only checks whether the group still exists
                    os.killpg(pgid, 0)
                    await anyio.sleep(0.1)
                except ProcessLookupError:
                    return

        try:
            os.killpg(pgid, signal.SIGKILL)
        except ProcessLookupError:
            pass

    except (ProcessLookupError, PermissionError, OSError) as e:
        logger.warning(f"Process group termination failed for PID {process.pid}: {e}, falling back to simple terminate")
        try:
            process.terminate()
            with anyio.fail_after(timeout_seconds):
                await process.wait()
        except (TimeoutError, ProcessLookupError):
            logger.warning(f"Process termination failed for PID {process.pid}, attempting force kill")
            try:
                process.kill()
            except ProcessLookupError:
                pass
