from __future__ import annotations

import pytest

from stdio_mcp.bridge import langchain_tools, mcp_to_langchain_tool
from stdio_mcp.manager import ToolServerManager


@pytest.fixture
def manager(python, subprocess_env):
    manager = ToolServerManager()
    manager.register_server("echo", [python, "-m", "stdio_mcp.servers.echo"], subprocess_env)
    yield manager
    manager.stop_all()


def test_start_discovers_tools(manager: ToolServerManager) -> None:
    tools = manager.start("echo")

    assert [t.name for t in tools] == ["echo"]
    assert manager.list_tools("echo") == tools
    assert manager.list_servers() == {"echo": True}


def test_call_routes_to_server(manager: ToolServerManager) -> None:
    manager.start("echo")
    assert manager.call("echo", "echo", {"text": "hi"}) == "hi"


def test_start_twice_reuses_running_client(manager: ToolServerManager) -> None:
    manager.start("echo")
    client = manager.client("echo")
    manager.start("echo")
    assert manager.client("echo") is client


def test_stop(manager: ToolServerManager) -> None:
    manager.start("echo")
    manager.stop("echo")

    assert not manager.is_running("echo")
    with pytest.raises(RuntimeError, match="not running"):
        manager.call("echo", "echo", {"text": "hi"})


def test_unknown_server(manager: ToolServerManager) -> None:
    with pytest.raises(ValueError, match="Unknown server"):
        manager.start("nope")
    assert manager.list_tools("nope") == []
    assert not manager.is_running("nope")


def test_duplicate_server_id(manager: ToolServerManager, python) -> None:
    with pytest.raises(ValueError, match="already registered"):
        manager.register_server("echo", [python])


def test_start_all_survives_broken_server(manager: ToolServerManager, python) -> None:
    manager.register_server("broken", [python, "-c", "import sys; sys.exit(1)"])

    results = manager.start_all()

    assert [t.name for t in results["echo"]] == ["echo"]
    assert results["broken"] == []
    assert manager.list_servers() == {"echo": True, "broken": False}


# =============================================================================
# LangChain bridge
# =============================================================================


def test_langchain_tool_proxies_to_server(manager: ToolServerManager) -> None:
    manager.start("echo")

    tool = mcp_to_langchain_tool(manager, "echo", "echo")

    assert tool.name == "echo"
    assert "Echoes back" in tool.description
    assert tool.invoke({"text": "via langchain"}) == "via langchain"


def test_langchain_tool_reports_failures_as_text(manager: ToolServerManager) -> None:
    manager.start("echo")
    tool = mcp_to_langchain_tool(manager, "echo", "echo", description_override="Echo")
    manager.stop("echo")

    assert tool.description == "Echo"
    assert tool.invoke({"text": "hi"}).startswith("Error calling echo/echo:")


def test_langchain_tools_skips_stopped_servers(manager: ToolServerManager) -> None:
    assert langchain_tools(manager) == []
    manager.start("echo")
    assert [t.name for t in langchain_tools(manager)] == ["echo"]
    assert langchain_tools(manager, server_ids=["other"]) == []
