"""Shared test fixtures and fakes."""

from __future__ import annotations

import os
import sys
import threading
from pathlib import Path
from typing import Any, Callable

import pytest

from stdio_mcp.errors import ProcessTerminated, TransportError
from stdio_mcp.framing import FrameDecoder
from stdio_mcp.server import StdioToolServer, ToolHandler, ToolResult
from stdio_mcp.transport import Transport

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class FakeTransport(Transport):
    """
    In-process transport.

    Sent frames are decoded into ``sent``. A ``responder`` may answer each
    request synchronously; otherwise the test delivers responses itself.
    """

    def __init__(self, responder: Callable[[dict], dict | None] | None = None):
        self.responder = responder
        self.sent: list[dict[str, Any]] = []
        self.sent_event = threading.Event()
        self.fail_writes = False
        self.stopped = False
        self._decoder = FrameDecoder(strict=True)
        self._on_message = None
        self._on_error = None
        self._on_exit = None

    def start(self, on_message, on_error, on_exit) -> None:
        self._on_message = on_message
        self._on_error = on_error
        self._on_exit = on_exit

    def send(self, data: bytes) -> None:
        if self.fail_writes:
            raise TransportError("Failed to write to tool server: [Errno 32] Broken pipe")
        for message in self._decoder.feed(data):
            self.sent.append(message)
            self.sent_event.set()
            if self.responder is not None:
                response = self.responder(message)
                if response is not None:
                    self.deliver(response)

    def stop(self) -> None:
        self.stopped = True

    def is_alive(self) -> bool:
        return not self.stopped

    # test helpers

    def deliver(self, message: dict[str, Any]) -> None:
        self._on_message(message)

    def error(self, exc: Exception) -> None:
        self._on_error(exc)

    def exit(self, returncode: int | None = 1) -> None:
        self._on_exit(ProcessTerminated.from_returncode(returncode))

    def wait_for_send(self, timeout: float = 5.0) -> dict[str, Any]:
        assert self.sent_event.wait(timeout), "nothing was sent"
        self.sent_event.clear()
        return self.sent[-1]


class EchoTool(ToolHandler):
    name = "echo"
    description = "Echo the text back"
    input_schema = {
        "type": "object",
        "properties": {"text": {"type": "string"}},
        "required": ["text"],
    }

    def __init__(self):
        self.calls: list[dict] = []

    def handle(self, arguments: dict) -> ToolResult:
        self.calls.append(arguments)
        return ToolResult.text(arguments["text"])


def loopback(server: StdioToolServer) -> Callable[[dict], dict | None]:
    """Responder that runs requests through an in-process server."""

    def respond(message: dict) -> dict | None:
        response = server.handle_message(message)
        return response.to_dict() if response is not None else None

    return respond


@pytest.fixture
def echo_tool() -> EchoTool:
    return EchoTool()


@pytest.fixture
def echo_server(echo_tool: EchoTool) -> StdioToolServer:
    server = StdioToolServer("test-server")
    server.register(echo_tool)
    return server


@pytest.fixture
def subprocess_env() -> dict[str, str]:
    """Environment in which ``python -m stdio_mcp...`` imports this checkout."""
    env = dict(os.environ)
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = str(PROJECT_ROOT) + (os.pathsep + existing if existing else "")
    return env


@pytest.fixture
def python() -> str:
    return sys.executable
