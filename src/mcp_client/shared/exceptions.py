from mcp_client.types import ErrorData


class ClientError(Exception):
    """Base class for every error raised by the MCP client."""


class ConfigurationError(ClientError, ValueError):
    """The client configuration is missing a transport or is otherwise invalid."""


class MCPConnectionError(ClientError, ConnectionError):
    """The handshake failed or the transport broke.

    Raised by ``connect()`` and delivered to pending requests when the
    transport fails underneath an established session. Calling ``connect()``
    again is the way to recover.
    """


class TransportError(ClientError, OSError):
    """Writing to or reading from the transport failed."""


class AlreadyConnectedError(ClientError):
    """``connect()`` was called while a session is connecting or connected."""


class NotConnectedError(ClientError):
    """An operation that needs a connected session was called without one."""


class CapabilityNotSupportedError(ClientError):
    """The server did not advertise the capability an operation needs."""

    def __init__(self, capability: str):
        super().__init__(f"Server does not support {capability}")
        self.capability = capability


class ProtocolError(ClientError):
    """A received frame is not a valid JSON-RPC message.

    The session logs and drops such frames; they never tear down a connection.
    """

    def __init__(self, message: str, frame: bytes | None = None):
        super().__init__(message)
        self.frame = frame


class RequestTimeoutError(ClientError, TimeoutError):
    """No response arrived for a request before its deadline."""

    def __init__(self, method: str, timeout: float):
        super().__init__(f"Timed out after {timeout:g}s waiting for response to {method}")
        self.method = method
        self.timeout = timeout


class SessionClosedError(ClientError):
    """The session was disconnected while the request was pending."""


class UnsupportedContentError(ClientError):
    """A resource was read that has no textual representation."""


class McpError(ClientError):
    """Exception raised when an MCP protocol error is received from a peer.

    This exception is raised when the remote MCP peer returns an error response
    instead of a successful result. It wraps the ErrorData received from the peer
    and provides access to the error code, message, and any additional data.

    Attributes:
        error: The ErrorData object received from the MCP peer containing
               error code, message, and optional additional data
    """

    error: ErrorData

    def __init__(self, error: ErrorData):
        super().__init__(error.message)
        self.error = error
