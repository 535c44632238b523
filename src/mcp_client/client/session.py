from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from pydantic import ValidationError

from mcp_client.client.transports.base import Transport
from mcp_client.shared.codec import MessageCodec, MessageKind, classify
from mcp_client.shared.exceptions import (
    AlreadyConnectedError,
    ClientError,
    MCPConnectionError,
    McpError,
    NotConnectedError,
    ProtocolError,
    RequestTimeoutError,
    SessionClosedError,
    TransportError,
)
from mcp_client.types import (
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    SUPPORTED_PROTOCOL_VERSIONS,
    CapabilitySet,
    ClientCapabilities,
    ErrorData,
    Implementation,
    InitializeRequestParams,
    InitializeResult,
    JSONRPCError,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    RequestId,
)

DEFAULT_CLIENT_INFO = Implementation(name="mcp-client-example", version="1.0.0")

logger = logging.getLogger(__name__)

# Levels used by notifications/message, mapped onto the logging module
_SERVER_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "emergency": logging.CRITICAL,
}

RequestOutcome = JSONRPCResponse | JSONRPCError | ClientError


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


class NotificationFnT(Protocol):
    async def __call__(self, notification: JSONRPCNotification) -> None: ...


@dataclass
class PendingRequest:
    """
    A request that was sent and is waiting for its response.

    The completion handle is a one-slot memory stream: the receive loop (or a
    disconnect) puts exactly one outcome into it and the caller awaits it.
    """

    request_id: RequestId
    method: str
    deadline: float | None = None
    _send_stream: MemoryObjectSendStream[RequestOutcome] = field(init=False, repr=False)
    _receive_stream: MemoryObjectReceiveStream[RequestOutcome] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._send_stream, self._receive_stream = anyio.create_memory_object_stream[RequestOutcome](1)

    def resolve(self, outcome: RequestOutcome) -> bool:
        """Deliver the outcome. Returns False if one was already delivered."""
        try:
            self._send_stream.send_nowait(outcome)
        except (anyio.WouldBlock, anyio.BrokenResourceError, anyio.ClosedResourceError):
            return False
        return True

    async def wait(self) -> RequestOutcome:
        return await self._receive_stream.receive()

    def close(self) -> None:
        self._send_stream.close()
        self._receive_stream.close()


@dataclass
class _Receiver:
    """The background task reading from the transport, and how to stop it."""

    task: asyncio.Task[None]
    stop: anyio.Event
    done: anyio.Event


class ClientSession:
    """
    One logical connection to an MCP server.

    Owns a transport and a codec, performs the initialize handshake, and
    correlates responses with the requests waiting for them. Any number of
    requests may be outstanding at once; each one resolves when its own
    response, timeout or the end of the session arrives.

    Messages from the server are read by a task of its own, started by
    ``connect()`` and owned by the session rather than the caller. The caller
    may therefore wrap ``connect()`` in a timeout or cancel scope, and may call
    ``disconnect()`` from any task. The session needs the asyncio backend.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        read_timeout_seconds: float | None = 30.0,
        client_info: Implementation | None = None,
        notification_handler: NotificationFnT | None = None,
    ) -> None:
        self._transport = transport
        self._read_timeout_seconds = read_timeout_seconds
        self._client_info = client_info or DEFAULT_CLIENT_INFO
        self._notification_handler = notification_handler
        self._codec = MessageCodec()
        self._state = SessionState.DISCONNECTED
        self._pending: dict[RequestId, PendingRequest] = {}
        self._receiver: _Receiver | None = None
        self._transport_open = False
        self._write_lock: anyio.Lock | None = None
        self._initialize_result: InitializeResult | None = None
        self._capabilities: CapabilitySet | None = None

    async def __aenter__(self) -> ClientSession:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def capabilities(self) -> CapabilitySet | None:
        """Capabilities negotiated by the last successful handshake."""
        return self._capabilities

    @property
    def initialize_result(self) -> InitializeResult | None:
        return self._initialize_result

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    async def connect(self) -> CapabilitySet:
        """
        Open the transport and perform the initialize handshake.

        Raises:
            AlreadyConnectedError: If the session is not disconnected.
            MCPConnectionError: If the transport cannot be opened or the
                handshake fails or times out. The session is disconnected again.
        """
        if self._state is not SessionState.DISCONNECTED:
            raise AlreadyConnectedError(f"Session is already {self._state.value}")

        # Leftovers from a connection whose transport failed underneath it
        await self._release()

        self._state = SessionState.CONNECTING
        self._write_lock = anyio.Lock()
        try:
            with anyio.fail_after(self._read_timeout_seconds):
                await self._transport.open()
            self._transport_open = True
            self._receiver = self._start_receiver()

            result = await self._initialize()
        except MCPConnectionError:
            await self._abort_connect()
            raise
        except (ClientError, ValidationError, OSError) as exc:
            await self._abort_connect()
            raise MCPConnectionError(f"Failed to connect: {exc}") from exc
        except BaseException:
            await self._abort_connect()
            raise

        logger.debug(
            f"Initialized session with {result.server_info.name} {result.server_info.version} "
            f"(protocol {result.protocol_version})"
        )
        assert self._capabilities is not None
        return self._capabilities

    async def _initialize(self) -> InitializeResult:
        params = InitializeRequestParams(
            protocol_version=LATEST_PROTOCOL_VERSION,
            capabilities=ClientCapabilities(),
            client_info=self._client_info,
        )
        raw = await self._send_request(
            "initialize",
            params.model_dump(by_alias=True, mode="json", exclude_none=True),
            self._read_timeout_seconds,
        )
        result = InitializeResult.model_validate(raw)

        if result.protocol_version not in SUPPORTED_PROTOCOL_VERSIONS:
            raise MCPConnectionError(f"Unsupported protocol version from the server: {result.protocol_version}")
        if self._state is not SessionState.CONNECTING:
            raise MCPConnectionError("Transport closed during the handshake")

        await self._write(self._codec.encode_notification("notifications/initialized"))

        self._initialize_result = result
        self._capabilities = CapabilitySet.from_server_capabilities(result.capabilities)
        self._state = SessionState.CONNECTED
        return result

    async def _abort_connect(self) -> None:
        self._state = SessionState.CLOSING
        self._fail_pending(lambda: MCPConnectionError("Connection attempt aborted"))
        try:
            await self._release()
        finally:
            self._state = SessionState.DISCONNECTED

    async def disconnect(self) -> None:
        """
        Close the session. Every pending request fails with ``SessionClosedError``.

        Calling this on a disconnected session does nothing.
        """
        if self._state in (SessionState.CONNECTING, SessionState.CONNECTED):
            self._state = SessionState.CLOSING
            self._fail_pending(lambda: SessionClosedError("Session closed while the request was pending"))
        try:
            await self._release()
        finally:
            self._state = SessionState.DISCONNECTED

    def _start_receiver(self) -> _Receiver:
        stop = anyio.Event()
        done = anyio.Event()
        task = asyncio.create_task(self._run_receiver(stop, done))
        return _Receiver(task=task, stop=stop, done=done)

    async def _run_receiver(self, stop: anyio.Event, done: anyio.Event) -> None:
        try:
            async with anyio.create_task_group() as task_group:
                task_group.start_soon(self._receive_loop)
                await stop.wait()
                task_group.cancel_scope.cancel()
        finally:
            done.set()

    async def _release(self) -> None:
        receiver, self._receiver = self._receiver, None
        with anyio.CancelScope(shield=True):
            if receiver is not None:
                receiver.stop.set()
                await receiver.done.wait()
            if self._transport_open:
                self._transport_open = False
                await self._transport.close()

    def _fail_pending(self, make_error: Callable[[], ClientError]) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for request in pending:
            request.resolve(make_error())

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Send a request and wait for its result.

        Args:
            method: The JSON-RPC method name.
            params: The request parameters, already in wire form.
            timeout: Seconds to wait for the response. Defaults to the
                session's read timeout.

        Raises:
            NotConnectedError: If the session is not connected.
            McpError: If the server answered with a JSON-RPC error.
            RequestTimeoutError: If no response arrived in time. The session stays connected.
            SessionClosedError: If the session was disconnected meanwhile.
            MCPConnectionError: If the transport failed meanwhile.
            TransportError: If the request could not be written.
        """
        self._check_connected()
        return await self._send_request(method, params, timeout)

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification, which does not get a response."""
        self._check_connected()
        await self._write(self._codec.encode_notification(method, params))

    async def ping(self, timeout: float | None = None) -> None:
        await self.request("ping", timeout=timeout)

    def _check_connected(self) -> None:
        if self._state is not SessionState.CONNECTED:
            raise NotConnectedError("Not connected to MCP server. Call connect() first.")

    async def _send_request(
        self,
        method: str,
        params: dict[str, Any] | None,
        timeout: float | None,
    ) -> dict[str, Any]:
        if timeout is None:
            timeout = self._read_timeout_seconds

        request_id, frame = self._codec.encode_request(method, params)
        pending = PendingRequest(
            request_id=request_id,
            method=method,
            deadline=anyio.current_time() + timeout if timeout is not None else None,
        )
        self._pending[request_id] = pending
        logger.debug(f"Sending request {request_id}: {method}")
        try:
            with anyio.fail_after(timeout):
                await self._write(frame)
                outcome = await pending.wait()
        except TimeoutError:
            assert timeout is not None
            raise RequestTimeoutError(method, timeout) from None
        finally:
            self._pending.pop(request_id, None)
            pending.close()

        if isinstance(outcome, ClientError):
            raise outcome
        if isinstance(outcome, JSONRPCError):
            raise McpError(outcome.error)
        return outcome.result

    async def _write(self, frame: bytes) -> None:
        assert self._write_lock is not None, "Session was never connected"
        async with self._write_lock:
            await self._transport.send(frame)

    async def _receive_loop(self) -> None:
        cause: BaseException | None = None
        try:
            async for chunk in self._transport.receive():
                for message in self._codec.feed(chunk):
                    await self._dispatch(message)
        except TransportError as exc:
            cause = exc
        except Exception as exc:
            # Nothing may escape into the task group; treat it as a lost connection
            logger.exception(f"Unhandled exception in receive loop: {exc}")
            cause = exc
        await self._connection_lost(cause)

    async def _connection_lost(self, cause: BaseException | None) -> None:
        if self._state in (SessionState.CLOSING, SessionState.DISCONNECTED):
            return

        reason = str(cause) if cause is not None else "server closed the connection"
        logger.warning(f"Transport closed unexpectedly: {reason}")
        self._state = SessionState.DISCONNECTED
        self._codec.reset()

        def make_error() -> ClientError:
            error = MCPConnectionError(f"Connection lost: {reason}")
            error.__cause__ = cause
            return error

        self._fail_pending(make_error)
        await self._transport.close()

    async def _dispatch(self, message: JSONRPCMessage | ProtocolError) -> None:
        if isinstance(message, ProtocolError):
            logger.warning(f"Dropping malformed frame: {message}")
            logger.debug(f"Frame that failed to parse: {message.frame!r}")
            return

        match classify(message):
            case MessageKind.RESPONSE | MessageKind.ERROR:
                self._handle_response(message)  # type: ignore[arg-type]
            case MessageKind.REQUEST:
                await self._handle_request(message)  # type: ignore[arg-type]
            case MessageKind.NOTIFICATION:
                await self._handle_notification(message)  # type: ignore[arg-type]

    def _handle_response(self, message: JSONRPCResponse | JSONRPCError) -> None:
        if message.id is None:
            assert isinstance(message, JSONRPCError)
            logger.warning(f"Received error without a request id: {message.error.message}")
            return

        pending = self._pending.pop(message.id, None)
        if pending is None:
            logger.warning(f"Received response with an unknown request ID: {message.id}")
            return

        logger.debug(f"Received response {message.id} for {pending.method}")
        pending.resolve(message)

    async def _handle_request(self, request: JSONRPCRequest) -> None:
        if request.method == "ping":
            frame = self._codec.encode_result(request.id, {})
        else:
            logger.debug(f"Rejecting server request {request.method}")
            frame = self._codec.encode_error(
                request.id,
                ErrorData(code=METHOD_NOT_FOUND, message=f"Method not supported by client: {request.method}"),
            )
        try:
            await self._write(frame)
        except TransportError as exc:
            logger.warning(f"Failed to answer server request {request.method}: {exc}")

    async def _handle_notification(self, notification: JSONRPCNotification) -> None:
        if notification.method == "notifications/message" and notification.params:
            level = _SERVER_LOG_LEVELS.get(str(notification.params.get("level")), logging.INFO)
            server_logger = notification.params.get("logger") or "server"
            logger.log(level, f"[{server_logger}] {notification.params.get('data')}")
        else:
            logger.debug(f"Received notification {notification.method}")

        if self._notification_handler is not None:
            try:
                await self._notification_handler(notification)
            except Exception:
                logger.exception(f"Notification handler failed for {notification.method}")
