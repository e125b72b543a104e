"""
Exception types for the stdio tool protocol.

Framing, validation, dispatch and handler failures are local: the decoder
drops bad frames and the registry turns tool failures into error-flagged
ToolResults. Transport failures fail the in-flight call. ProcessTerminated
is the only fatal condition for a client instance.
"""

from __future__ import annotations

import signal as _signal
from typing import Any


class McpError(Exception):
    """Base class for every error raised by stdio_mcp."""


class FramingError(McpError):
    """
    Malformed Content-Length header or undecodable payload.

    ``messages`` holds the frames decoded from the same input before the
    bad one; they precede the error on the stream.
    """

    def __init__(self, message: str, messages: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.messages = messages or []


class ToolError(McpError):
    """A tool call that cannot produce a normal result."""


class ValidationError(ToolError):
    """Missing or mistyped tool argument."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class DispatchError(ToolError):
    """Unknown tool name."""


class HandlerFault(ToolError):
    """The tool implementation raised."""


class TransportError(McpError):
    """Spawn or write failure on the stdio channel."""


class ProcessTerminated(TransportError):
    """The tool server process exited. The client cannot be used again."""

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        signal: int | None = None,
    ):
        super().__init__(message)
        self.returncode = returncode
        self.signal = signal

    @classmethod
    def from_returncode(cls, returncode: int | None) -> "ProcessTerminated":
        """Build from a Popen returncode (negative values mean a signal)."""
        code: int | None = returncode
        sig: int | None = None
        if returncode is not None and returncode < 0:
            code, sig = None, -returncode
        sig_name = _signal_name(sig) if sig is not None else "null"
        code_text = "null" if code is None else str(code)
        return cls(
            f"Tool server exited with code {code_text} signal {sig_name}",
            returncode=code,
            signal=sig,
        )


class ClientBusyError(McpError):
    """A call was issued while another one is still outstanding."""


class RpcError(McpError):
    """The server answered with a JSON-RPC error object."""

    def __init__(self, message: str, code: int | None = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class CallTimeout(McpError, TimeoutError):
    """The caller stopped waiting. The call itself is still pending."""


def _signal_name(sig: int) -> str:
    try:
        return _signal.Signals(sig).name
    except ValueError:
        return str(sig)
