"""
Echo MCP Tool Server — minimal reference implementation.

Use this as a template for building new tool servers.
It implements a single tool that echoes back its input,
useful for testing the transport layer.

Launch:
    python -m stdio_mcp.servers.echo
"""

import logging

from stdio_mcp.config import Settings
from stdio_mcp.server import StdioToolServer, ToolHandler, ToolResult


class EchoTool(ToolHandler):
    name = "echo"
    description = "Echoes back the input text. Useful for testing."
    input_schema = {
        "type": "object",
        "properties": {
            "text": {
                "type": "string",
                "description": "The text to echo back",
            },
        },
        "required": ["text"],
    }

    def handle(self, arguments: dict) -> ToolResult:
        return ToolResult.text(arguments["text"])


def build_server() -> StdioToolServer:
    server = StdioToolServer("echo-server")
    server.register(EchoTool())
    return server


if __name__ == "__main__":
    logging.basicConfig(level=Settings.from_env().log_level, format="%(levelname)s: %(message)s")
    build_server().run()
