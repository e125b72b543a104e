"""
MCP stdio client — request/response correlation over a Transport.

The client allows exactly one request in flight. A second call made while
the first is outstanding fails immediately with ClientBusyError instead of
queueing. The in-flight request is a PendingCall whose Future is fulfilled
exactly once: by the matching response, by a transport error, or by the
tool server exiting.

Usage:
    with McpClient([sys.executable, "-m", "stdio_mcp.servers.echo"]) as client:
        tools = client.list_tools()
        text = client.call_tool("echo", {"text": "hi"})
"""

from __future__ import annotations

import enum
import itertools
import json
import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any

from stdio_mcp.errors import (
    CallTimeout,
    ClientBusyError,
    McpError,
    ProcessTerminated,
    RpcError,
    TransportError,
)
from stdio_mcp.framing import encode
from stdio_mcp.server import PROTOCOL_VERSION, ToolDescriptor, ToolResult
from stdio_mcp.transport import JsonRpcRequest, JsonRpcResponse, StdioTransport, Transport

logger = logging.getLogger(__name__)


class ClientState(enum.Enum):
    NOT_STARTED = "not_started"
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    CLOSED = "closed"


@dataclass
class PendingCall:
    """The single in-flight request."""
    id: int | str
    method: str
    future: Future = field(default_factory=Future)


class McpClient:
    """
    One tool server process, one request at a time.

    The server is spawned once by start(). If it exits, the client is
    closed for good: every later call raises ProcessTerminated.
    """

    def __init__(
        self,
        command: list[str] | None = None,
        env: dict[str, str] | None = None,
        transport: Transport | None = None,
        strict_framing: bool = False,
    ):
        """
        Args:
            command: Command to launch the tool server process.
            env: Optional environment variables for the subprocess.
            transport: Use this transport instead of spawning ``command``.
            strict_framing: Report malformed frames from the server.
        """
        if transport is None:
            if not command:
                raise ValueError("McpClient needs a command or a transport")
            transport = StdioTransport(command, env, strict_framing=strict_framing)
        self._transport = transport
        self._lock = threading.Lock()
        self._state = ClientState.NOT_STARTED
        self._pending: PendingCall | None = None
        self._termination: ProcessTerminated | None = None
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def termination(self) -> ProcessTerminated | None:
        """Why the client closed, once it has."""
        return self._termination

    def start(self) -> None:
        """Spawn the tool server. Allowed once per client."""
        with self._lock:
            if self._state is not ClientState.NOT_STARTED:
                raise TransportError(f"Client already started (state: {self._state.value})")
            self._transport.start(
                on_message=self._handle_message,
                on_error=self._handle_error,
                on_exit=self._handle_exit,
            )
            # An early exit from the reader thread waits on this lock and
            # lands after us, so IDLE never overwrites CLOSED.
            self._state = ClientState.IDLE

    def close(self) -> None:
        """Stop the tool server. Any pending call fails."""
        self._transport.stop()
        self._handle_exit(ProcessTerminated("Client closed"))

    def is_alive(self) -> bool:
        return self._state in (ClientState.IDLE, ClientState.AWAITING_RESPONSE)

    def __enter__(self) -> "McpClient":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Send one request and wait for its response.

        Args:
            method: JSON-RPC method name.
            params: Method parameters.
            timeout: Seconds to wait. On expiry CallTimeout is raised but
                     the call stays pending until the server answers or
                     exits, so the client remains busy until then.

        Returns:
            The response's ``result``.

        Raises:
            ClientBusyError: another call is outstanding.
            RpcError: the server answered with an error object.
            TransportError: the request could not be written.
            ProcessTerminated: the server exited (now or earlier).
        """
        with self._lock:
            if self._state is ClientState.CLOSED:
                raise self._closed_error()
            if self._state is ClientState.NOT_STARTED:
                raise TransportError("Client not started. Call start() first.")
            if self._pending is not None:
                raise ClientBusyError(
                    f"Only one MCP request at a time is supported; "
                    f"'{self._pending.method}' (id {self._pending.id}) is still pending"
                )
            request = JsonRpcRequest(method=method, params=params or {}, id=next(self._ids))
            pending = PendingCall(id=request.id, method=method)
            self._pending = pending
            self._state = ClientState.AWAITING_RESPONSE

        logger.debug(f"-> {method} (id {request.id})")
        try:
            self._transport.send(encode(request.to_dict()))
        except TransportError as e:
            logger.error(f"Failed to send {method}: {e}")
            self._resolve(pending, exception=e)
            raise

        try:
            response: JsonRpcResponse = pending.future.result(timeout)
        except FutureTimeout:
            raise CallTimeout(
                f"No response to '{method}' after {timeout}s; the call is still pending"
            ) from None

        if response.is_error:
            error = response.error if isinstance(response.error, dict) else {}
            raise RpcError(response.error_message, code=error.get("code"), data=error.get("data"))
        return response.result

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification. No response is expected."""
        if self._state is ClientState.CLOSED:
            raise self._closed_error()
        request = JsonRpcRequest(method=method, params=params or {})
        self._transport.send(encode(request.to_dict()))

    def initialize(self, client_name: str = "stdio-mcp-client", version: str = "1.0.0") -> dict:
        """Perform the MCP initialize handshake."""
        result = self.call("initialize", {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": client_name, "version": version},
        })
        self.notify("notifications/initialized")
        return result if isinstance(result, dict) else {}

    def ping(self, timeout: float | None = None) -> None:
        self.call("ping", timeout=timeout)

    def list_tools(self) -> list[ToolDescriptor]:
        """Ask the server for its tools."""
        result = self.call("tools/list")
        tools = result.get("tools") if isinstance(result, dict) else result
        if not isinstance(tools, list):
            return []
        return [ToolDescriptor.from_dict(t) for t in tools if isinstance(t, dict)]

    def invoke_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> ToolResult:
        """Call a tool and return the structured result."""
        result = self.call("tools/call", {"name": name, "arguments": arguments}, timeout)
        if not isinstance(result, dict):
            return ToolResult.text(json.dumps(result))
        return ToolResult.from_dict(result)

    def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> str:
        """
        Call a tool and return its text.

        Returns the first text content item, or the raw result serialized
        as JSON when there is none. Error-flagged results come back as
        text too; only protocol and transport failures raise.
        """
        result = self.call("tools/call", {"name": name, "arguments": arguments}, timeout)
        if not isinstance(result, dict) or not isinstance(result.get("content"), list):
            return json.dumps(result)

        tool_result = ToolResult.from_dict(result)
        if tool_result.is_error:
            logger.warning(f"Tool '{name}' reported an error: {tool_result.first_text}")
        text = tool_result.first_text
        return text if text is not None else json.dumps(result)

    # ------------------------------------------------------------------
    # Transport callbacks (reader thread)
    # ------------------------------------------------------------------

    def _handle_message(self, message: dict[str, Any]) -> None:
        if "method" in message:
            logger.debug(f"Ignoring server-initiated message: {message.get('method')}")
            return

        with self._lock:
            pending = self._pending
            if pending is None:
                logger.warning(f"Dropping unsolicited response (id {message.get('id')})")
                return
            response_id = message.get("id")
            # id null is how JSON-RPC reports errors it could not attribute
            if response_id is not None and response_id != pending.id:
                logger.warning(
                    f"Dropping response with id {response_id!r}; waiting for {pending.id!r}"
                )
                return

        self._resolve(pending, result=JsonRpcResponse.from_dict(message))

    def _handle_error(self, error: Exception) -> None:
        if not isinstance(error, McpError):
            error = TransportError(str(error))
        with self._lock:
            pending = self._pending
        if pending is not None:
            self._resolve(pending, exception=error)

    def _handle_exit(self, exc: ProcessTerminated) -> None:
        with self._lock:
            if self._state is ClientState.CLOSED:
                return
            self._state = ClientState.CLOSED
            self._termination = exc
            pending, self._pending = self._pending, None
        logger.info(f"Tool server closed: {exc}")
        if pending is not None and not pending.future.done():
            pending.future.set_exception(exc)

    def _resolve(
        self,
        pending: PendingCall,
        result: JsonRpcResponse | None = None,
        exception: Exception | None = None,
    ) -> None:
        with self._lock:
            if self._pending is not pending:
                return
            self._pending = None
            if self._state is ClientState.AWAITING_RESPONSE:
                self._state = ClientState.IDLE
        if exception is not None:
            pending.future.set_exception(exception)
        else:
            pending.future.set_result(result)

    def _closed_error(self) -> ProcessTerminated:
        exc = self._termination
        if exc is None:
            return ProcessTerminated("Tool server is not running")
        return ProcessTerminated(str(exc), returncode=exc.returncode, signal=exc.signal)
