"""Tests that spawn real tool server processes."""

from __future__ import annotations

import textwrap
import time

import pytest

from stdio_mcp.client import ClientState, McpClient
from stdio_mcp.errors import (
    CallTimeout,
    ClientBusyError,
    FramingError,
    ProcessTerminated,
    TransportError,
)
from stdio_mcp.framing import encode
from stdio_mcp.transport import StdioTransport

# Reads one request, then answers id 1 behind a corrupt header block.
GARBLED_SERVER = textwrap.dedent("""
    import json, sys
    sys.stdin.buffer.read1(65536)
    body = json.dumps({"jsonrpc": "2.0", "id": 1, "result": {"ok": True}}).encode()
    sys.stdout.buffer.write(b"Bogus header\\r\\n\\r\\n")
    sys.stdout.buffer.write(b"Content-Length: %d\\r\\n\\r\\n" % len(body) + body)
    sys.stdout.buffer.flush()
    sys.stdin.buffer.read()
""")


def wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


def test_echo_server_end_to_end(python, subprocess_env) -> None:
    with McpClient([python, "-m", "stdio_mcp.servers.echo"], env=subprocess_env) as client:
        info = client.initialize()
        assert info["serverInfo"]["name"] == "echo-server"

        tools = client.list_tools()
        assert [t.name for t in tools] == ["echo"]

        result = client.invoke_tool("echo", {"text": "hi"})
        assert result.to_dict() == {"content": [{"type": "text", "text": "hi"}]}
        assert client.call_tool("echo", {"text": "héllo"}) == "héllo"

        missing = client.invoke_tool("echo", {})
        assert missing.is_error
        assert "'text'" in missing.first_text

    assert client.state is ClientState.CLOSED


def test_process_exit_mid_call(python) -> None:
    client = McpClient([python, "-c", "import sys; sys.stdin.buffer.read(1); sys.exit(3)"])
    client.start()

    with pytest.raises(ProcessTerminated, match="code 3") as exc_info:
        client.call_tool("echo", {"text": "hi"})
    assert exc_info.value.returncode == 3

    with pytest.raises(ProcessTerminated):
        client.call_tool("echo", {"text": "again"})
    assert client.state is ClientState.CLOSED


def test_process_exit_before_call(python) -> None:
    client = McpClient([python, "-c", "import sys; sys.exit(5)"])
    client.start()
    wait_for(lambda: client.state is ClientState.CLOSED)

    with pytest.raises(ProcessTerminated, match="code 5"):
        client.call("ping")


def test_spawn_failure() -> None:
    client = McpClient(["/nonexistent/tool-server"])
    with pytest.raises(TransportError, match="Failed to start"):
        client.start()
    assert client.state is ClientState.NOT_STARTED


def test_transport_spawns_once(python) -> None:
    transport = StdioTransport([python, "-c", "import sys; sys.stdin.buffer.read()"])
    events = []
    transport.start(events.append, events.append, events.append)
    try:
        assert transport.is_alive()
        with pytest.raises(TransportError, match="already started"):
            transport.start(events.append, events.append, events.append)
    finally:
        transport.stop()
    assert not transport.is_alive()
    wait_for(lambda: len(events) == 1)
    assert isinstance(events[0], ProcessTerminated)


def test_timeout_then_close_resolves_pending(python) -> None:
    client = McpClient([python, "-c", "import time; time.sleep(60)"])
    client.start()

    with pytest.raises(CallTimeout):
        client.call("ping", timeout=0.2)
    with pytest.raises(ClientBusyError):
        client.call("ping")

    client.close()
    assert client.state is ClientState.CLOSED
    with pytest.raises(ProcessTerminated):
        client.call("ping")


def test_corrupt_header_is_skipped(python) -> None:
    client = McpClient([python, "-c", GARBLED_SERVER])
    client.start()
    try:
        assert client.call("ping") == {"ok": True}
    finally:
        client.close()


def test_strict_framing_fails_the_call(python) -> None:
    client = McpClient([python, "-c", GARBLED_SERVER], strict_framing=True)
    client.start()
    try:
        with pytest.raises(FramingError):
            client.call("ping")
    finally:
        client.close()


def test_strict_framing_delivers_earlier_frame_before_error(python) -> None:
    transport = StdioTransport([python, "-c", "pass"], strict_framing=True)
    response = {"jsonrpc": "2.0", "id": 1, "result": {}}
    events = []

    transport._decode(
        encode(response) + b"Bogus\r\n\r\n",
        lambda message: events.append(("message", message)),
        lambda error: events.append(("error", type(error).__name__)),
    )

    assert events == [("message", response), ("error", "FramingError")]


def test_strict_framing_answer_ahead_of_bad_header(python) -> None:
    server = textwrap.dedent("""
        import json, sys
        sys.stdin.buffer.read1(65536)
        body = json.dumps({"jsonrpc": "2.0", "id": 1, "result": {"ok": True}}).encode()
        sys.stdout.buffer.write(
            b"Content-Length: %d\\r\\n\\r\\n" % len(body) + body + b"Bogus\\r\\n\\r\\n"
        )
        sys.stdout.buffer.flush()
        sys.stdin.buffer.read()
    """)
    client = McpClient([python, "-c", server], strict_framing=True)
    client.start()
    try:
        assert client.call("ping") == {"ok": True}
        assert client.state is ClientState.IDLE
    finally:
        client.close()


def test_child_that_closes_stdout_is_terminated(python) -> None:
    command = [python, "-c", "import os, time; os.close(1); time.sleep(60)"]
    client = McpClient(transport=StdioTransport(command, exit_grace=0.2))
    client.start()

    wait_for(lambda: client.state is ClientState.CLOSED)

    assert isinstance(client.termination, ProcessTerminated)
    with pytest.raises(ProcessTerminated):
        client.call("ping")
