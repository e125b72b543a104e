from __future__ import annotations

import json

import pytest

from stdio_mcp.errors import FramingError
from stdio_mcp.framing import FrameDecoder, encode, feed, parse_content_length

REQUEST = {"jsonrpc": "2.0", "id": 1, "method": "tools/call",
           "params": {"name": "echo", "arguments": {"text": "héllo ✓"}}}


def test_encode_uses_utf8_byte_length() -> None:
    data = encode({"text": "é"})
    header, _, payload = data.partition(b"\r\n\r\n")
    assert header == f"Content-Length: {len(payload)}".encode()
    # "é" is one character but two bytes
    assert len(payload) == len('{"text":"é"}') + 1
    assert json.loads(payload.decode("utf-8")) == {"text": "é"}


def test_round_trip() -> None:
    messages, remainder = feed(b"", encode(REQUEST))
    assert messages == [REQUEST]
    assert remainder == b""


def test_chunked_delivery_at_every_boundary() -> None:
    data = encode(REQUEST)
    for split in range(1, len(data)):
        messages, remainder = feed(b"", data[:split])
        assert messages == [], split
        messages, remainder = feed(remainder, data[split:])
        assert messages == [REQUEST], split
        assert remainder == b""


def test_byte_by_byte_delivery() -> None:
    decoder = FrameDecoder()
    collected = []
    for byte in encode(REQUEST):
        collected.extend(decoder.feed(bytes([byte])))
    assert collected == [REQUEST]
    assert decoder.pending == 0


def test_multiple_frames_in_one_read() -> None:
    first = {"jsonrpc": "2.0", "id": 1, "result": {"a": 1}}
    second = {"jsonrpc": "2.0", "id": 2, "result": {"b": 2}}
    messages, remainder = feed(b"", encode(first) + encode(second))
    assert messages == [first, second]
    assert remainder == b""


def test_trailing_partial_frame_is_kept() -> None:
    first = {"id": 1}
    second = encode({"id": 2})
    messages, remainder = feed(b"", encode(first) + second[:10])
    assert messages == [first]
    assert remainder == second[:10]


def test_partial_header_is_not_parsed() -> None:
    messages, remainder = feed(b"", b"Content-Length: 12\r\n")
    assert messages == []
    assert remainder == b"Content-Length: 12\r\n"


def test_header_key_is_case_insensitive() -> None:
    payload = b'{"id":7}'
    data = b"content-LENGTH: %d\r\nContent-Type: application/json\r\n\r\n%s" % (len(payload), payload)
    messages, _ = feed(b"", data)
    assert messages == [{"id": 7}]


def test_malformed_header_resyncs_to_next_frame() -> None:
    good = {"jsonrpc": "2.0", "id": 1, "result": {}}
    data = b"Content-Length: abc\r\n\r\n" + b"X-Junk: 1\r\n\r\n" + encode(good)
    messages, remainder = feed(b"", data)
    assert messages == [good]
    assert remainder == b""


def test_invalid_json_payload_is_skipped() -> None:
    good = {"id": 2}
    bad = b"Content-Length: 5\r\n\r\n{nope"
    messages, _ = feed(b"", bad + encode(good))
    assert messages == [good]


def test_non_object_payload_is_skipped() -> None:
    good = {"id": 3}
    messages, _ = feed(b"", encode([1, 2, 3]) + encode(good))
    assert messages == [good]


def test_zero_length_payload_does_not_break_stream() -> None:
    good = {"id": 4}
    messages, remainder = feed(b"", b"Content-Length: 0\r\n\r\n" + encode(good))
    assert messages == [good]
    assert remainder == b""


@pytest.mark.parametrize(
    "header, expected",
    [
        (b"Content-Length: 10", 10),
        (b"Content-Type: x\r\ncontent-length:3", 3),
        (b"Content-Length: -1", None),
        (b"Content-Length:", None),
        (b"Content-Type: application/json", None),
    ],
)
def test_parse_content_length(header: bytes, expected: int | None) -> None:
    assert parse_content_length(header) == expected


def test_strict_decoder_raises_then_recovers() -> None:
    good = {"id": 5}
    decoder = FrameDecoder(strict=True)
    with pytest.raises(FramingError):
        decoder.feed(b"Bogus\r\n\r\n" + encode(good))
    # The frame behind the bad header is still there.
    assert decoder.feed(b"") == [good]


def test_strict_error_carries_frames_decoded_before_it() -> None:
    first, last = {"id": 1}, {"id": 2}
    decoder = FrameDecoder(strict=True)
    with pytest.raises(FramingError) as exc_info:
        decoder.feed(encode(first) + b"Content-Length: 2\r\n\r\n{]" + encode(last))
    assert exc_info.value.messages == [first]
    assert decoder.feed(b"") == [last]


def test_lenient_error_free_feed_has_no_leftover_state() -> None:
    decoder = FrameDecoder()
    assert decoder.feed(encode({"id": 1}) + b"Bogus\r\n\r\n") == [{"id": 1}]
    assert decoder.pending == 0
