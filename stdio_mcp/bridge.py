"""
Bridge between MCP tool servers and LangChain agents.

Converts tools discovered on running servers into LangChain tools, so an
agent can call them like any other tool while the calls go over stdio.

Usage:
    from stdio_mcp.bridge import mcp_to_langchain_tool, langchain_tools

    # Single tool
    search = mcp_to_langchain_tool(manager, "search", "search_web")

    # All tools from all running servers
    tools = langchain_tools(manager)
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.tools import StructuredTool

from stdio_mcp.errors import McpError
from stdio_mcp.manager import ToolServerManager

logger = logging.getLogger(__name__)


def mcp_to_langchain_tool(
    manager: ToolServerManager,
    server_id: str,
    tool_name: str,
    description_override: str | None = None,
) -> StructuredTool:
    """
    Create a LangChain StructuredTool that wraps an MCP tool server call.

    The tool's args schema is the server-declared inputSchema. Protocol and
    transport failures are returned to the agent as text so one failing
    tool does not abort the agent run.

    Args:
        manager: The ToolServerManager managing the server
        server_id: Which server the tool lives on
        tool_name: The tool name (as registered on the server)
        description_override: Optional override for the tool description
    """
    descriptor = next((t for t in manager.list_tools(server_id) if t.name == tool_name), None)

    if descriptor:
        description = description_override or descriptor.description or tool_name
        args_schema = descriptor.input_schema
    else:
        description = description_override or f"MCP tool: {server_id}/{tool_name}"
        args_schema = {"type": "object", "properties": {}}

    def _call_mcp(**kwargs: Any) -> str:
        """Proxy call to MCP tool server."""
        try:
            return manager.call(server_id, tool_name, kwargs)
        except (McpError, RuntimeError) as e:
            logger.error(f"Error calling {server_id}/{tool_name}: {e}")
            return f"Error calling {server_id}/{tool_name}: {e}"

    return StructuredTool.from_function(
        func=_call_mcp,
        name=tool_name,
        description=description,
        args_schema=args_schema,
    )


def langchain_tools(
    manager: ToolServerManager,
    server_ids: list[str] | None = None,
) -> list[StructuredTool]:
    """LangChain tools for every tool on the running servers."""
    tools = []
    for server_id, running in manager.list_servers().items():
        if not running or (server_ids is not None and server_id not in server_ids):
            continue
        for descriptor in manager.list_tools(server_id):
            tools.append(mcp_to_langchain_tool(manager, server_id, descriptor.name))
    return tools
