"""
Transport layer for MCP tool communication.

Currently implements:
  - StdioTransport: Content-Length framed JSON-RPC over the stdin/stdout
    pipes of a child process (local)

The transport owns the subprocess and the byte streams. It knows nothing
about request correlation: decoded messages, read errors and the process
exit are handed to callbacks, and McpClient decides what they mean.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

from stdio_mcp.errors import FramingError, ProcessTerminated, TransportError
from stdio_mcp.framing import FrameDecoder

logger = logging.getLogger(__name__)

MessageCallback = Callable[[dict[str, Any]], None]
ErrorCallback = Callable[[Exception], None]
ExitCallback = Callable[[ProcessTerminated], None]

READ_CHUNK_SIZE = 65536

# Seconds a child may keep running after closing its stdout
EXIT_GRACE_SECONDS = 5.0


class ErrorCode:
    """JSON-RPC 2.0 error codes."""

    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request. A request without an id is a notification."""
    method: str
    params: dict[str, Any] = field(default_factory=dict)
    id: int | str | None = None

    @property
    def is_notification(self) -> bool:
        return self.id is None

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {
            "jsonrpc": "2.0",
            "method": self.method,
            "params": self.params,
        }
        if self.id is not None:
            message["id"] = self.id
        return message

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JsonRpcRequest":
        params = data.get("params")
        return cls(
            method=data.get("method", ""),
            params=params if isinstance(params, dict) else {},
            id=data.get("id"),
        )


@dataclass
class JsonRpcResponse:
    """JSON-RPC 2.0 response."""
    id: int | str | None
    result: Any = None
    error: dict | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JsonRpcResponse":
        error = data.get("error")
        if "result" in data or error:
            result = data.get("result")
        else:
            # Neither result nor error: the message itself is the result.
            result = data
        return cls(
            id=data.get("id"),
            result=result,
            error=error if error else None,
        )

    @classmethod
    def success(cls, id: int | str | None, result: Any) -> "JsonRpcResponse":
        return cls(id=id, result=result)

    @classmethod
    def error_response(
        cls, id: int | str | None, code: int, message: str, data: Any = None
    ) -> "JsonRpcResponse":
        error: dict[str, Any] = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        return cls(id=id, error=error)

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {"jsonrpc": "2.0", "id": self.id}
        if self.error is not None:
            message["error"] = self.error
        else:
            message["result"] = self.result
        return message

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def error_message(self) -> str:
        if not self.error:
            return ""
        if isinstance(self.error, dict):
            return str(self.error.get("message") or "MCP error")
        return str(self.error)


class Transport(ABC):
    """Abstract transport layer for MCP communication."""

    @abstractmethod
    def start(
        self,
        on_message: MessageCallback,
        on_error: ErrorCallback,
        on_exit: ExitCallback,
    ) -> None:
        """Start the transport (e.g., launch subprocess) and begin reading."""
        ...

    @abstractmethod
    def send(self, data: bytes) -> None:
        """Write one encoded frame. Raises TransportError on failure."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop the transport (e.g., terminate subprocess)."""
        ...

    @abstractmethod
    def is_alive(self) -> bool:
        """Check if the transport is active."""
        ...


class StdioTransport(Transport):
    """
    Framed JSON-RPC over stdin/stdout pipes to a subprocess.

    This is MCP's native local transport. The tool server runs as a child
    process: we write requests to its stdin and a background reader thread
    decodes responses from its stdout. The child's stderr is inherited so
    its diagnostics reach our own stderr; it is never parsed.

    The process is spawned at most once per transport. When its stdout
    closes the reader thread reaps it, terminating it if it is still
    running after ``exit_grace`` seconds, and reports ProcessTerminated. There
    is no restart: a new transport is needed for a new process.
    """

    def __init__(
        self,
        command: list[str],
        env: dict[str, str] | None = None,
        strict_framing: bool = False,
        exit_grace: float = EXIT_GRACE_SECONDS,
    ):
        """
        Args:
            command: Command to launch the tool server process.
                     e.g., [sys.executable, "-m", "stdio_mcp.servers.echo"]
            env: Optional environment variables for the subprocess.
            strict_framing: Report malformed frames as errors instead of
                            skipping them silently.
            exit_grace: Seconds to wait for the process to exit once its
                        stdout closes before terminating it.
        """
        self.command = command
        self.env = env
        self._decoder = FrameDecoder(strict=strict_framing)
        self._process: subprocess.Popen | None = None
        self._reader: threading.Thread | None = None
        self._write_lock = threading.Lock()
        self._stopping = False
        self.exit_grace = exit_grace

    def start(
        self,
        on_message: MessageCallback,
        on_error: ErrorCallback,
        on_exit: ExitCallback,
    ) -> None:
        """Launch the tool server subprocess and the reader thread."""
        if self._process is not None:
            raise TransportError("Transport already started; tool servers are spawned once")

        logger.info(f"Starting stdio transport: {' '.join(self.command)}")
        try:
            self._process = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=None,  # inherited
                env=self.env,
            )
        except OSError as e:
            raise TransportError(f"Failed to start tool server {self.command[0]!r}: {e}") from e

        self._reader = threading.Thread(
            target=self._read_loop,
            args=(self._process, on_message, on_error, on_exit),
            name=f"stdio-mcp-reader-{self._process.pid}",
            daemon=True,
        )
        self._reader.start()

    def send(self, data: bytes) -> None:
        """Write a frame to the subprocess stdin."""
        process = self._process
        if process is None or process.stdin is None:
            raise TransportError("Transport not running. Call start() first.")

        with self._write_lock:
            try:
                process.stdin.write(data)
                process.stdin.flush()
            except (BrokenPipeError, OSError, ValueError) as e:
                raise TransportError(f"Failed to write to tool server: {e}") from e

    def stop(self) -> None:
        """Terminate the tool server subprocess."""
        process = self._process
        if process is None or self._stopping:
            return
        self._stopping = True

        if process.stdin:
            try:
                process.stdin.close()
            except OSError:
                pass
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()

        if self._reader and self._reader is not threading.current_thread():
            self._reader.join(timeout=5)
        logger.info("Stdio transport stopped")

    def is_alive(self) -> bool:
        """Check if the subprocess is running."""
        return self._process is not None and self._process.poll() is None

    def _read_loop(
        self,
        process: subprocess.Popen,
        on_message: MessageCallback,
        on_error: ErrorCallback,
        on_exit: ExitCallback,
    ) -> None:
        stdout = process.stdout
        try:
            while True:
                try:
                    chunk = stdout.read1(READ_CHUNK_SIZE)
                except (OSError, ValueError) as e:
                    if not self._stopping:
                        logger.error(f"Error reading from tool server: {e}")
                        self._deliver(on_error, TransportError(f"Failed to read from tool server: {e}"))
                    break
                if not chunk:
                    break
                self._decode(chunk, on_message, on_error)
        finally:
            returncode = self._reap(process)
            if stdout:
                stdout.close()
            if self._stopping:
                exc = ProcessTerminated(
                    "Tool server was stopped", returncode=returncode
                )
            else:
                exc = ProcessTerminated.from_returncode(returncode)
                logger.warning(str(exc))
            self._deliver(on_exit, exc)

    def _decode(
        self,
        chunk: bytes,
        on_message: MessageCallback,
        on_error: ErrorCallback,
    ) -> None:
        while True:
            try:
                messages = self._decoder.feed(chunk)
                break
            except FramingError as e:
                # Frames that preceded the bad one go out first.
                for message in e.messages:
                    self._deliver(on_message, message)
                self._deliver(on_error, e)
                # Drain anything the bad frame was hiding.
                chunk = b""
        for message in messages:
            self._deliver(on_message, message)

    def _reap(self, process: subprocess.Popen) -> int:
        try:
            return process.wait(timeout=self.exit_grace)
        except subprocess.TimeoutExpired:
            logger.warning(
                f"Tool server closed stdout but is still running after "
                f"{self.exit_grace}s; terminating it"
            )
        process.terminate()
        try:
            return process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            return process.wait()

    @staticmethod
    def _deliver(callback: Callable[[Any], None], value: Any) -> None:
        try:
            callback(value)
        except Exception:
            logger.exception("Transport callback failed")
