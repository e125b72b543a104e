"""
Run Tool — start MCP tool servers and call a tool from the command line.

It:
1. Starts the configured MCP tool servers (stdio subprocesses)
2. Discovers their tools
3. Calls one tool with the given arguments
4. Prints the result and stops the servers

Usage:
    # List servers and their tools
    python run_tool.py --list

    # Call a tool with JSON arguments
    python run_tool.py --server echo --tool echo --args '{"text": "hi"}'

    # Shortcut for tools with a single required string argument
    python run_tool.py --server search --tool search_web --text "latest python release"
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys

from stdio_mcp.config import Settings
from stdio_mcp.errors import McpError
from stdio_mcp.manager import ToolServerManager
from stdio_mcp.server import ToolDescriptor

logger = logging.getLogger(__name__)


# ============================================================
# MCP SERVER DEFINITIONS
# ============================================================
# Each entry: server_id → launch command.
# Add new MCP servers here as you build them.

MCP_SERVERS = {
    "echo": {
        "command": [sys.executable, "-m", "stdio_mcp.servers.echo"],
    },
    "search": {
        "command": [sys.executable, "-m", "stdio_mcp.servers.web_search"],
    },
}


def start_mcp_servers(
    manager: ToolServerManager,
    server_ids: list[str] | None = None,
) -> dict[str, list[ToolDescriptor]]:
    """Start MCP tool servers and return discovered tools."""
    server_ids = server_ids or list(MCP_SERVERS.keys())
    all_tools = {}

    for sid in server_ids:
        config = MCP_SERVERS.get(sid)
        if not config:
            logger.warning(f"Unknown MCP server: {sid}")
            continue

        manager.register_server(sid, config["command"], config.get("env"))

        try:
            tools = manager.start(sid)
            logger.info(f"  [{sid}] started — tools: {[t.name for t in tools]}")
            all_tools[sid] = tools
        except McpError as e:
            logger.error(f"  [{sid}] failed to start: {e}")

    return all_tools


def build_arguments(descriptor: ToolDescriptor | None, args_json: str | None, text: str | None) -> dict:
    """Turn --args / --text into a tool arguments dict."""
    arguments: dict = {}
    if args_json:
        arguments = json.loads(args_json)
        if not isinstance(arguments, dict):
            raise ValueError("--args must be a JSON object")
    if text is not None:
        if descriptor is None or len(descriptor.required_fields) != 1:
            raise ValueError("--text needs a tool with exactly one required argument")
        arguments[descriptor.required_fields[0]] = text
    return arguments


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Call tools on MCP stdio tool servers.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_tool.py --list
  python run_tool.py --server echo --tool echo --args '{"text": "hi"}'
  python run_tool.py --server search --tool search_web --text "weather in Lisbon"
        """,
    )
    parser.add_argument("--list", action="store_true", help="List servers and tools and exit")
    parser.add_argument("--server", "-s", type=str, help="Server ID the tool lives on")
    parser.add_argument("--tool", "-t", type=str, help="Tool name to call")
    parser.add_argument("--args", "-a", type=str, default=None, help="Tool arguments as a JSON object")
    parser.add_argument("--text", type=str, default=None, help="Value for the tool's single required argument")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the tool")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")

    args = parser.parse_args(argv)

    settings = Settings.from_env()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(levelname)s: %(message)s",
    )

    if not args.list and (not args.server or not args.tool):
        parser.error("--server and --tool are required (or use --list)")

    manager = ToolServerManager(strict_framing=settings.strict_framing)

    # Graceful shutdown on Ctrl+C
    def shutdown(sig, frame):
        print("\nShutting down MCP servers...", file=sys.stderr)
        manager.stop_all()
        sys.exit(130)
    previous_handler = signal.signal(signal.SIGINT, shutdown)

    try:
        discovered = start_mcp_servers(manager, None if args.list else [args.server])

        if args.list:
            for sid, tools in discovered.items():
                print(f"[{sid}]")
                for tool in tools:
                    required = ", ".join(tool.required_fields) or "none"
                    print(f"  {tool.name:<20} {tool.description[:60]} (required: {required})")
                print()
            return 0

        if args.server not in discovered:
            print(f"Error: server '{args.server}' is not available.", file=sys.stderr)
            return 1

        descriptor = next((t for t in discovered[args.server] if t.name == args.tool), None)
        try:
            arguments = build_arguments(descriptor, args.args, args.text)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

        try:
            print(manager.call(args.server, args.tool, arguments, timeout=args.timeout))
        except McpError as e:
            print(f"Tool call failed: {e}", file=sys.stderr)
            return 1
        return 0
    finally:
        manager.stop_all()
        signal.signal(signal.SIGINT, previous_handler)


if __name__ == "__main__":
    sys.exit(main())
