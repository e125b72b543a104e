"""
stdio_mcp — tool calls between processes over stdin/stdout.

Architecture:
    ┌──────────────┐     stdio      ┌──────────────┐
    │   McpClient   │ ──────────── │  Tool Server  │
    │  (caller)    │  JSON-RPC    │  (subprocess) │
    └──────────────┘  framed pipes └──────────────┘

Each tool server is a standalone process that speaks Content-Length framed
JSON-RPC 2.0 (the MCP stdio transport) on its stdin/stdout.

StdioToolServer and ToolRegistry implement the server side. McpClient
spawns a server, sends one request at a time and correlates responses.
ToolServerManager runs several servers, and the bridge module turns their
tools into LangChain tools.
"""

from stdio_mcp.client import ClientState, McpClient
from stdio_mcp.errors import (
    CallTimeout,
    ClientBusyError,
    DispatchError,
    FramingError,
    HandlerFault,
    McpError,
    ProcessTerminated,
    RpcError,
    TransportError,
    ValidationError,
)
from stdio_mcp.framing import FrameDecoder, encode, feed
from stdio_mcp.manager import ToolServerManager
from stdio_mcp.server import (
    StdioToolServer,
    ToolDescriptor,
    ToolHandler,
    ToolRegistry,
    ToolResult,
)
from stdio_mcp.transport import StdioTransport, Transport


# Bridge requires langchain — lazy import to keep servers standalone
def mcp_to_langchain_tool(*args, **kwargs):
    from stdio_mcp.bridge import mcp_to_langchain_tool as _impl
    return _impl(*args, **kwargs)


def langchain_tools(*args, **kwargs):
    from stdio_mcp.bridge import langchain_tools as _impl
    return _impl(*args, **kwargs)


__all__ = [
    "CallTimeout",
    "ClientBusyError",
    "ClientState",
    "DispatchError",
    "FrameDecoder",
    "FramingError",
    "HandlerFault",
    "McpClient",
    "McpError",
    "ProcessTerminated",
    "RpcError",
    "StdioToolServer",
    "StdioTransport",
    "ToolDescriptor",
    "ToolHandler",
    "ToolRegistry",
    "ToolResult",
    "ToolServerManager",
    "Transport",
    "TransportError",
    "ValidationError",
    "encode",
    "feed",
    "langchain_tools",
    "mcp_to_langchain_tool",
]
