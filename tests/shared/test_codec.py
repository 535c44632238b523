import json

import pytest

from mcp_client.shared.codec import MessageCodec, MessageKind, classify, normalize_id
from mcp_client.shared.exceptions import ProtocolError
from mcp_client.types import METHOD_NOT_FOUND, ErrorData, JSONRPCError, JSONRPCNotification, JSONRPCRequest, JSONRPCResponse


def test_request_ids_increase_from_zero():
    codec = MessageCodec()

    first_id, first = codec.encode_request("initialize", {"protocolVersion": "2025-06-18"})
    second_id, _ = codec.encode_request("tools/list")
    third_id, _ = codec.encode_request("ping")

    assert (first_id, second_id, third_id) == (0, 1, 2)
    assert json.loads(first) == {
        "jsonrpc": "2.0",
        "id": 0,
        "method": "initialize",
        "params": {"protocolVersion": "2025-06-18"},
    }


def test_frames_are_single_compact_lines():
    codec = MessageCodec()
    _, frame = codec.encode_request("tools/call", {"name": "echo", "arguments": {"text": "line one\nline two"}})

    assert frame.endswith(b"\n")
    assert frame.count(b"\n") == 1
    assert b": " not in frame


def test_params_omitted_when_absent():
    codec = MessageCodec()
    _, request = codec.encode_request("ping")
    notification = codec.encode_notification("notifications/initialized")

    assert "params" not in json.loads(request)
    assert json.loads(notification) == {"jsonrpc": "2.0", "method": "notifications/initialized"}


def test_encode_error():
    codec = MessageCodec()
    frame = codec.encode_error("srv-1", ErrorData(code=METHOD_NOT_FOUND, message="nope"))

    assert json.loads(frame) == {"jsonrpc": "2.0", "id": "srv-1", "error": {"code": -32601, "message": "nope"}}


def test_non_ascii_survives_encoding():
    codec = MessageCodec()
    frame = codec.encode_notification("notifications/message", {"data": "你好, ü"})

    [message] = codec.feed(frame)
    assert isinstance(message, JSONRPCNotification)
    assert message.params == {"data": "你好, ü"}


def test_feed_reassembles_fragments():
    codec = MessageCodec()
    frame = b'{"jsonrpc":"2.0","id":0,"result":{"tools":[]}}\n'

    assert codec.feed(frame[:10]) == []
    assert codec.feed(frame[10:30]) == []
    [message] = codec.feed(frame[30:])

    assert isinstance(message, JSONRPCResponse)
    assert message.id == 0
    assert message.result == {"tools": []}


def test_feed_splits_several_frames_in_one_chunk():
    codec = MessageCodec()
    chunk = (
        b'{"jsonrpc":"2.0","id":1,"result":{}}\n'
        b"\n"
        b'{"jsonrpc":"2.0","method":"notifications/progress","params":{"progress":1}}\r\n'
        b'{"jsonrpc":"2.0","id":"srv-1","method":"ping"}\n'
        b'{"jsonrpc":"2.0","id":2,"error":{"code":-32602,"message":"bad"}}\n'
    )

    messages = codec.feed(chunk)

    assert [classify(message) for message in messages] == [  # type: ignore[arg-type]
        MessageKind.RESPONSE,
        MessageKind.NOTIFICATION,
        MessageKind.REQUEST,
        MessageKind.ERROR,
    ]
    assert isinstance(messages[2], JSONRPCRequest)
    assert messages[2].id == "srv-1"
    assert isinstance(messages[3], JSONRPCError)
    assert messages[3].error.code == -32602


def test_malformed_frame_does_not_hide_neighbours():
    codec = MessageCodec()
    chunk = b'{"jsonrpc":"2.0","id":1,"result":{}}\nnot json at all\n{"jsonrpc":"2.0","id":2,"result":{}}\n'

    first, bad, last = codec.feed(chunk)

    assert isinstance(first, JSONRPCResponse)
    assert isinstance(bad, ProtocolError)
    assert bad.frame == b"not json at all"
    assert isinstance(last, JSONRPCResponse)
    assert last.id == 2


@pytest.mark.parametrize(
    "frame",
    [
        b"[1, 2, 3]",
        b'{"jsonrpc":"2.0","id":1}',
        b'{"jsonrpc":"1.0","id":1,"result":{}}',
        b'{"jsonrpc":"2.0","id":1,"error":{"message":"no code"}}',
        b"\xff\xfe",
    ],
)
def test_decode_rejects_invalid_messages(frame: bytes):
    assert isinstance(MessageCodec().decode(frame), ProtocolError)


def test_numeric_string_ids_are_normalized():
    codec = MessageCodec()
    [message] = codec.feed(b'{"jsonrpc":"2.0","id":"7","result":{}}\n')

    assert isinstance(message, JSONRPCResponse)
    assert message.id == 7
    assert normalize_id("abc") == "abc"
    assert normalize_id(3) == 3


def test_oversized_partial_frame_is_discarded():
    codec = MessageCodec(max_frame_size=64)

    [error] = codec.feed(b"x" * 100)
    assert isinstance(error, ProtocolError)

    [message] = codec.feed(b'{"jsonrpc":"2.0","id":0,"result":{}}\n')
    assert isinstance(message, JSONRPCResponse)


def test_reset_drops_buffer_but_keeps_counting():
    codec = MessageCodec()
    codec.encode_request("ping")
    codec.feed(b'{"jsonrpc":"2.0",')

    codec.reset()

    [message] = codec.feed(b'"id":0,"result":{}}\n')
    assert isinstance(message, ProtocolError)
    assert codec.next_id() == 1
