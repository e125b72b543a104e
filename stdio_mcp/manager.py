"""
Tool Server Manager — launches and manages several MCP tool server processes.

Usage:
    manager = ToolServerManager()

    # Register a server
    manager.register_server("search", [sys.executable, "-m", "stdio_mcp.servers.web_search"])

    # Start it (spawns the process and discovers its tools)
    manager.start("search")

    # Call a tool
    text = manager.call("search", "search_web", {"query": "python 3.13 release"})

    # Stop everything
    manager.stop_all()

Each server gets one McpClient. A server whose process exited stays down
until start() is called for it again, which spawns a fresh client.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from stdio_mcp.client import McpClient
from stdio_mcp.server import ToolDescriptor

logger = logging.getLogger(__name__)


@dataclass
class ServerEntry:
    command: list[str]
    env: dict[str, str] | None = None
    client: McpClient | None = None
    tools: list[ToolDescriptor] = field(default_factory=list)


class ToolServerManager:
    """
    Manages the lifecycle of MCP tool server processes.

    Responsibilities:
    - Launch tool servers as subprocesses (stdio transport)
    - Route tool calls to the correct server
    - Graceful shutdown
    """

    def __init__(self, strict_framing: bool = False):
        self.strict_framing = strict_framing
        self._servers: dict[str, ServerEntry] = {}

    def register_server(
        self,
        server_id: str,
        command: list[str],
        env: dict[str, str] | None = None,
    ) -> None:
        """
        Register a tool server (does not start it yet).

        Args:
            server_id: Unique identifier for this server
            command: Command to launch the server process
            env: Optional environment variables
        """
        if server_id in self._servers:
            raise ValueError(f"Server already registered: {server_id}")
        self._servers[server_id] = ServerEntry(command=command, env=env)
        logger.info(f"Registered server: {server_id} ({' '.join(command)})")

    def start(self, server_id: str) -> list[ToolDescriptor]:
        """
        Start a tool server and discover its tools.

        Returns:
            List of tool descriptors from the server.
        """
        server = self._get(server_id)
        if server.client is not None and server.client.is_alive():
            logger.warning(f"{server_id} already running")
            return server.tools

        client = McpClient(server.command, server.env, strict_framing=self.strict_framing)
        client.start()
        server.client = client

        try:
            client.initialize()
            server.tools = client.list_tools()
        except Exception:
            client.close()
            raise

        logger.info(f"Started {server_id}: tools={[t.name for t in server.tools]}")
        return server.tools

    def start_all(self) -> dict[str, list[ToolDescriptor]]:
        """Start all registered servers. Returns {server_id: [descriptors]}."""
        results = {}
        for server_id in self._servers:
            try:
                results[server_id] = self.start(server_id)
            except Exception as e:
                logger.error(f"Failed to start {server_id}: {e}")
                results[server_id] = []
        return results

    def stop(self, server_id: str) -> None:
        """Stop a tool server."""
        server = self._servers.get(server_id)
        if server and server.client:
            server.client.close()
            server.client = None
            logger.info(f"Stopped {server_id}")

    def stop_all(self) -> None:
        """Stop all running servers."""
        for server_id in list(self._servers.keys()):
            self.stop(server_id)

    def client(self, server_id: str) -> McpClient:
        """The running client for a server."""
        server = self._get(server_id)
        if server.client is None:
            raise RuntimeError(f"Server {server_id} is not running. Call start() first.")
        return server.client

    def call(
        self,
        server_id: str,
        tool_name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> str:
        """
        Call a tool on a specific server.

        Args:
            server_id: Which server to call
            tool_name: Which tool on that server
            arguments: Tool arguments
            timeout: Optional seconds to wait for the response

        Returns:
            The tool's text result.
        """
        return self.client(server_id).call_tool(tool_name, arguments, timeout=timeout)

    def list_tools(self, server_id: str) -> list[ToolDescriptor]:
        """List discovered tools for a server."""
        server = self._servers.get(server_id)
        return server.tools if server else []

    def list_servers(self) -> dict[str, bool]:
        """List all servers and their running status."""
        return {sid: self.is_running(sid) for sid in self._servers}

    def is_running(self, server_id: str) -> bool:
        """Check if a specific server is running."""
        server = self._servers.get(server_id)
        return server is not None and server.client is not None and server.client.is_alive()

    def _get(self, server_id: str) -> ServerEntry:
        server = self._servers.get(server_id)
        if not server:
            raise ValueError(f"Unknown server: {server_id}")
        return server
