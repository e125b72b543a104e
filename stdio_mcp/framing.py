"""
Content-Length framing for JSON-RPC over a byte stream.

Wire format (the same framing MCP and LSP use on stdio):

    Content-Length: <byte length>\\r\\n
    \\r\\n
    <UTF-8 JSON payload>

Frames are concatenated on the stream with nothing between them.

Decoding is incremental: bytes arrive in arbitrary chunks, so the decoder
keeps a remainder buffer and only emits a message once its whole payload is
present. By default the decoder is lenient: a header without a usable
Content-Length is dropped and scanning resumes after it, and a payload that
is not a JSON object is skipped. With ``strict=True`` the same bytes are
dropped but a FramingError is raised afterwards.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from stdio_mcp.errors import FramingError

logger = logging.getLogger(__name__)

HEADER_SEPARATOR = b"\r\n\r\n"
CONTENT_LENGTH = b"content-length"


def encode(message: dict[str, Any]) -> bytes:
    """Serialize a message into one frame."""
    payload = json.dumps(message, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    header = f"Content-Length: {len(payload)}\r\n\r\n".encode("ascii")
    return header + payload


def parse_content_length(header: bytes) -> int | None:
    """Return the Content-Length value of a header block, or None if unusable."""
    for line in header.split(b"\r\n"):
        key, sep, value = line.partition(b":")
        if not sep or key.strip().lower() != CONTENT_LENGTH:
            continue
        value = value.strip()
        if value.isdigit():
            return int(value)
        return None
    return None


def feed(
    buffer: bytes,
    data: bytes,
    strict: bool = False,
) -> tuple[list[dict[str, Any]], bytes]:
    """
    Append ``data`` to ``buffer`` and decode every complete frame.

    Args:
        buffer: Bytes left over from the previous call.
        data: Newly received bytes.
        strict: Raise FramingError on malformed frames instead of
                skipping them silently.

    Returns:
        (messages, remainder) where remainder must be passed back as
        ``buffer`` on the next call.
    """
    buffer = buffer + data
    messages: list[dict[str, Any]] = []

    while True:
        header_end = buffer.find(HEADER_SEPARATOR)
        if header_end == -1:
            return messages, buffer

        body_start = header_end + len(HEADER_SEPARATOR)
        length = parse_content_length(buffer[:header_end])
        if length is None:
            bad_header = buffer[:header_end]
            buffer = buffer[body_start:]
            logger.warning(f"Dropping frame with malformed header: {bad_header[:80]!r}")
            if strict:
                raise _StrictFramingError(
                    f"Malformed frame header: {bad_header[:80]!r}", messages, buffer
                )
            continue

        frame_end = body_start + length
        if len(buffer) < frame_end:
            return messages, buffer

        payload = buffer[body_start:frame_end]
        buffer = buffer[frame_end:]

        message = _decode_payload(payload)
        if message is None:
            if strict:
                raise _StrictFramingError(
                    f"Undecodable frame payload ({length} bytes)", messages, buffer
                )
            continue
        messages.append(message)


def _decode_payload(payload: bytes) -> dict[str, Any] | None:
    try:
        message = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        logger.debug(f"Discarding unparseable frame ({len(payload)} bytes): {e}")
        return None
    if not isinstance(message, dict):
        logger.debug(f"Discarding non-object frame: {type(message).__name__}")
        return None
    return message


class _StrictFramingError(FramingError):
    """FramingError that also carries the undecoded remainder."""

    def __init__(self, message: str, messages: list[dict[str, Any]], remainder: bytes):
        super().__init__(message, messages)
        self.remainder = remainder


class FrameDecoder:
    """
    Stateful decoder for one byte stream.

    Usage:
        decoder = FrameDecoder()
        for chunk in stream:
            for message in decoder.feed(chunk):
                handle(message)

    In strict mode a FramingError carries, in ``messages``, the frames that
    preceded the bad one. Frames after it stay buffered for the next call.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._buffer = b""

    @property
    def pending(self) -> int:
        """Number of buffered bytes that do not yet form a complete frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[dict[str, Any]]:
        """Consume ``data`` and return the messages it completes."""
        try:
            messages, self._buffer = feed(self._buffer, data, strict=self.strict)
        except _StrictFramingError as e:
            self._buffer = e.remainder
            raise FramingError(str(e), e.messages) from None
        return messages
