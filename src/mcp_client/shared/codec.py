"""
Framing and parsing of JSON-RPC messages.

Every frame is one compact JSON object terminated by a newline. Incoming bytes
may arrive in arbitrary fragments; ``MessageCodec.feed`` buffers them until a
full frame is available.
"""

import json
import logging
from enum import Enum
from typing import Any

from pydantic import ValidationError

from mcp_client.shared.exceptions import ProtocolError
from mcp_client.types import (
    JSONRPC_VERSION,
    ErrorData,
    JSONRPCError,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    RequestId,
)

logger = logging.getLogger(__name__)

# Largest partial frame kept in the buffer before it is discarded (16 MB)
MAX_FRAME_SIZE = 16 * 1024 * 1024


class MessageKind(str, Enum):
    REQUEST = "request"
    NOTIFICATION = "notification"
    RESPONSE = "response"
    ERROR = "error"


_MODELS: dict[MessageKind, type[JSONRPCMessage]] = {
    MessageKind.REQUEST: JSONRPCRequest,
    MessageKind.NOTIFICATION: JSONRPCNotification,
    MessageKind.RESPONSE: JSONRPCResponse,
    MessageKind.ERROR: JSONRPCError,
}


def normalize_id(value: Any) -> Any:
    """Map ids a server echoed back as numeric strings onto the integers we sent."""
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


def classify(message: JSONRPCMessage) -> MessageKind:
    if isinstance(message, JSONRPCRequest):
        return MessageKind.REQUEST
    if isinstance(message, JSONRPCNotification):
        return MessageKind.NOTIFICATION
    if isinstance(message, JSONRPCError):
        return MessageKind.ERROR
    return MessageKind.RESPONSE


def _kind_of(obj: dict[str, Any]) -> MessageKind | None:
    if "method" in obj:
        return MessageKind.REQUEST if "id" in obj else MessageKind.NOTIFICATION
    if "error" in obj:
        return MessageKind.ERROR
    if "result" in obj:
        return MessageKind.RESPONSE
    return None


class MessageCodec:
    """Assigns correlation ids, serializes outgoing frames and parses incoming ones."""

    def __init__(self, max_frame_size: int = MAX_FRAME_SIZE) -> None:
        self._next_id = 0
        self._buffer = bytearray()
        self._max_frame_size = max_frame_size

    def next_id(self) -> int:
        request_id = self._next_id
        self._next_id = request_id + 1
        return request_id

    def encode_request(self, method: str, params: dict[str, Any] | None = None) -> tuple[int, bytes]:
        request_id = self.next_id()
        frame: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method}
        if params is not None:
            frame["params"] = params
        return request_id, self._encode(frame)

    def encode_notification(self, method: str, params: dict[str, Any] | None = None) -> bytes:
        frame: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
        if params is not None:
            frame["params"] = params
        return self._encode(frame)

    def encode_result(self, request_id: RequestId, result: dict[str, Any]) -> bytes:
        return self._encode({"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result})

    def encode_error(self, request_id: RequestId | None, error: ErrorData) -> bytes:
        return self._encode(
            {
                "jsonrpc": JSONRPC_VERSION,
                "id": request_id,
                "error": error.model_dump(mode="json", exclude_none=True),
            }
        )

    @staticmethod
    def _encode(frame: dict[str, Any]) -> bytes:
        return json.dumps(frame, separators=(",", ":"), ensure_ascii=False).encode("utf-8") + b"\n"

    def feed(self, data: bytes) -> list[JSONRPCMessage | ProtocolError]:
        """
        Feed bytes into the codec and return any complete messages.

        Malformed frames come back as ``ProtocolError`` entries in the result
        rather than being raised, so one bad frame does not hide the good ones
        around it.
        """
        self._buffer.extend(data)
        messages: list[JSONRPCMessage | ProtocolError] = []

        while True:
            lf_pos = self._buffer.find(b"\n")
            if lf_pos == -1:
                break

            line = bytes(self._buffer[:lf_pos]).rstrip(b"\r")
            del self._buffer[: lf_pos + 1]

            if not line.strip():
                continue
            messages.append(self.decode(line))

        if len(self._buffer) > self._max_frame_size:
            size = len(self._buffer)
            self._buffer.clear()
            messages.append(ProtocolError(f"Frame exceeds {self._max_frame_size} bytes ({size} buffered), discarded"))

        return messages

    def decode(self, frame: bytes) -> JSONRPCMessage | ProtocolError:
        """Parse one complete frame."""
        try:
            obj = json.loads(frame)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            return ProtocolError(f"Invalid JSON: {exc}", frame)

        if not isinstance(obj, dict):
            return ProtocolError("JSON-RPC message must be an object", frame)

        kind = _kind_of(obj)
        if kind is None:
            return ProtocolError("Not a JSON-RPC request, notification or response", frame)

        if kind in (MessageKind.RESPONSE, MessageKind.ERROR) and "id" in obj:
            obj["id"] = normalize_id(obj["id"])

        try:
            return _MODELS[kind].model_validate(obj)
        except ValidationError as exc:
            return ProtocolError(f"Invalid JSON-RPC {kind.value}: {exc.error_count()} validation error(s)", frame)

    def reset(self) -> None:
        """Drop buffered partial input. Id assignment keeps counting."""
        self._buffer.clear()
