"""
MCP Tool Server base classes.

A tool server is a standalone process that:
1. Reads Content-Length framed JSON-RPC requests from stdin
2. Dispatches tool calls to a ToolRegistry
3. Writes framed JSON-RPC responses to stdout

To create a tool server:

    from stdio_mcp.server import StdioToolServer, ToolHandler, ToolResult

    class MyTool(ToolHandler):
        name = "my_tool"
        description = "Does something useful"
        input_schema = {
            "type": "object",
            "properties": {
                "input": {"type": "string", "description": "The input"},
            },
            "required": ["input"],
        }

        def handle(self, arguments: dict) -> ToolResult:
            return ToolResult.text(f"processed: {arguments['input']}")

    if __name__ == "__main__":
        server = StdioToolServer("my-server")
        server.register(MyTool())
        server.run()
"""

from __future__ import annotations

import json
import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Callable, Union

from stdio_mcp.errors import DispatchError, HandlerFault, ToolError, ValidationError
from stdio_mcp.framing import FrameDecoder, encode
from stdio_mcp.transport import ErrorCode, JsonRpcRequest, JsonRpcResponse

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

# JSON Schema type name -> accepted Python types
_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list,),
    "null": (type(None),),
}


@dataclass
class ToolDescriptor:
    """Name, description and input schema of one tool."""
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    @property
    def properties(self) -> dict[str, dict]:
        return self.input_schema.get("properties") or {}

    @property
    def required_fields(self) -> list[str]:
        return list(self.input_schema.get("required") or [])

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolDescriptor":
        return cls(
            name=data.get("name", ""),
            description=data.get("description", ""),
            input_schema=data.get("inputSchema") or {"type": "object", "properties": {}},
        )


@dataclass
class ToolResult:
    """Outcome of a tool call: typed content items plus an error flag."""
    content: list[dict[str, Any]] = field(default_factory=list)
    is_error: bool = False

    @classmethod
    def text(cls, text: str) -> "ToolResult":
        return cls(content=[{"type": "text", "text": text}])

    @classmethod
    def error(cls, text: str) -> "ToolResult":
        return cls(content=[{"type": "text", "text": text}], is_error=True)

    @property
    def first_text(self) -> str | None:
        """Text of the first text-typed content item, if any."""
        for item in self.content:
            if isinstance(item, dict) and item.get("type") == "text":
                text = item.get("text")
                if isinstance(text, str):
                    return text
        return None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"content": self.content}
        if self.is_error:
            result["isError"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolResult":
        content = data.get("content")
        return cls(
            content=[c for c in content if isinstance(c, dict)] if isinstance(content, list) else [],
            is_error=bool(data.get("isError", False)),
        )


class ToolHandler(ABC):
    """
    Base class for a tool implementation.

    Subclasses define what a tool does. The server handles transport.
    """

    # Subclasses must set these
    name: str = ""
    description: str = ""
    input_schema: dict[str, Any] = {"type": "object", "properties": {}}

    @abstractmethod
    def handle(self, arguments: dict[str, Any]) -> Any:
        """
        Execute the tool with validated arguments.

        Args:
            arguments: Dict of argument name → value

        Returns:
            A ToolResult, a string (wrapped as text content), or any
            JSON-serializable value (serialized into text content).
            Raising is allowed: the registry reports it as an error result.
        """
        ...

    @property
    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
        )


HandlerFunc = Callable[[dict[str, Any]], Any]
Handler = Union[ToolHandler, HandlerFunc]


class ToolRegistry:
    """
    Tool descriptors and their handlers, keyed by name.

    Names are unique: registering a name twice raises ValueError rather
    than replacing the earlier tool.
    """

    def __init__(self):
        self._tools: dict[str, tuple[ToolDescriptor, HandlerFunc]] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def register(self, descriptor: ToolDescriptor, handler: Handler) -> None:
        """Register a tool under ``descriptor.name``."""
        if not descriptor.name:
            raise ValueError("Tool descriptor has no name")
        if descriptor.name in self._tools:
            raise ValueError(f"Tool already registered: '{descriptor.name}'")
        func = handler.handle if isinstance(handler, ToolHandler) else handler
        self._tools[descriptor.name] = (descriptor, func)
        logger.info(f"Registered tool: {descriptor.name}")

    def add(self, handler: ToolHandler) -> None:
        """Register a ToolHandler using its own descriptor."""
        if not handler.name:
            raise ValueError(f"ToolHandler {handler.__class__.__name__} has no name")
        self.register(handler.descriptor, handler)

    def list_tools(self) -> list[ToolDescriptor]:
        """All descriptors, in registration order."""
        return [descriptor for descriptor, _ in self._tools.values()]

    def dispatch(self, name: str, arguments: Any) -> ToolResult:
        """
        Validate ``arguments`` and run the named tool.

        Never raises: unknown tools, invalid arguments and handler
        exceptions all come back as error-flagged results.
        """
        try:
            return self._dispatch(name, arguments)
        except ToolError as e:
            return ToolResult.error(str(e))

    def _dispatch(self, name: str, arguments: Any) -> ToolResult:
        entry = self._tools.get(name)
        if entry is None:
            raise DispatchError(f"Unknown tool: '{name}'. Available: {self.names}")
        descriptor, func = entry

        if arguments is None:
            arguments = {}
        validate_arguments(descriptor, arguments)

        try:
            value = func(arguments)
        except Exception as e:
            logger.exception(f"Tool '{name}' failed")
            raise HandlerFault(f"Tool '{name}' failed: {e}") from e

        try:
            result = _coerce_result(value)
            json.dumps(result.to_dict())
        except (TypeError, ValueError) as e:
            logger.error(f"Tool '{name}' returned an unserializable result: {e}")
            raise HandlerFault(f"Tool '{name}' returned an invalid result: {e}") from e
        return result


def validate_arguments(descriptor: ToolDescriptor, arguments: Any) -> None:
    """
    Check required fields are present and declared fields have the
    declared JSON type. Raises ValidationError.
    """
    if not isinstance(arguments, dict):
        raise ValidationError(
            "", f"Invalid arguments for '{descriptor.name}': expected an object"
        )

    for name in descriptor.required_fields:
        if name not in arguments or arguments[name] is None:
            raise ValidationError(name, f"Missing required argument: '{name}'")

    for name, value in arguments.items():
        expected = descriptor.properties.get(name, {}).get("type")
        if expected and not _matches_type(value, expected):
            raise ValidationError(
                name,
                f"Invalid argument '{name}': expected {_type_label(expected)}, "
                f"got {type(value).__name__}",
            )


def _matches_type(value: Any, expected: str | list[str]) -> bool:
    names = expected if isinstance(expected, list) else [expected]
    for type_name in names:
        accepted = _JSON_TYPES.get(type_name)
        if accepted is None:
            return True  # unknown schema type, don't guess
        # bool is an int subclass but not a JSON number
        if isinstance(value, bool) and type_name != "boolean":
            continue
        if isinstance(value, accepted):
            return True
    return False


def _type_label(expected: str | list[str]) -> str:
    return " or ".join(expected) if isinstance(expected, list) else expected


def _coerce_result(value: Any) -> ToolResult:
    if isinstance(value, ToolResult):
        return value
    if isinstance(value, str):
        return ToolResult.text(value)
    if isinstance(value, dict) and isinstance(value.get("content"), list):
        return ToolResult.from_dict(value)
    return ToolResult.text(json.dumps(value, default=str))


class StdioToolServer:
    """
    JSON-RPC tool server that communicates via stdin/stdout.

    Protocol:
    - Content-Length framed JSON-RPC 2.0 messages
    - Supports methods:
        - "initialize" → server info and capabilities
        - "ping"       → health check
        - "tools/list" → registered tool descriptors
        - "tools/call" → calls a tool by name with arguments
    - Notifications (no id) never get a response
    """

    def __init__(self, name: str = "stdio-mcp-server", version: str = "1.0.0"):
        self.name = name
        self.version = version
        self.registry = ToolRegistry()

    def register(self, handler: ToolHandler) -> None:
        """Register a tool handler."""
        self.registry.add(handler)

    def run(self, stdin: BinaryIO | None = None, stdout: BinaryIO | None = None) -> None:
        """
        Main loop: read frames from stdin, dispatch, write responses to stdout.

        This blocks until stdin is closed (parent process terminates).
        """
        stdin = stdin or sys.stdin.buffer
        stdout = stdout or sys.stdout.buffer
        decoder = FrameDecoder()

        logger.info(f"{self.name} running on stdio with {len(self.registry)} tools: "
                    f"{self.registry.names}")

        while True:
            chunk = stdin.read1(65536)
            if not chunk:
                break
            for message in decoder.feed(chunk):
                response = self.handle_message(message)
                if response is not None:
                    stdout.write(self._encode_response(response))
                    stdout.flush()

        logger.info(f"{self.name} stdin closed, shutting down")

    def _encode_response(self, response: JsonRpcResponse) -> bytes:
        try:
            return encode(response.to_dict())
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot serialize response to id {response.id!r}: {e}")
            return encode(JsonRpcResponse.error_response(
                response.id, ErrorCode.INTERNAL_ERROR, f"Response is not serializable: {e}"
            ).to_dict())

    def handle_message(self, message: dict[str, Any]) -> JsonRpcResponse | None:
        """Process one decoded message. Returns None for notifications."""
        if not isinstance(message.get("method"), str):
            if "id" in message and ("result" in message or "error" in message):
                return None  # a response; the server issues no requests
            return JsonRpcResponse.error_response(
                message.get("id"), ErrorCode.INVALID_REQUEST, "Invalid request: missing method"
            )

        request = JsonRpcRequest.from_dict(message)
        if request.is_notification:
            logger.debug(f"Notification: {request.method}")
            return None

        try:
            result = self._dispatch(request.method, request.params)
        except _MethodError as e:
            return JsonRpcResponse.error_response(request.id, e.code, str(e))
        except Exception as e:
            logger.exception(f"Internal error handling {request.method}")
            return JsonRpcResponse.error_response(request.id, ErrorCode.INTERNAL_ERROR, str(e))
        return JsonRpcResponse.success(request.id, result)

    def _dispatch(self, method: str, params: dict[str, Any]) -> Any:
        """Route a method call to the appropriate handler."""

        if method == "initialize":
            return {
                "protocolVersion": params.get("protocolVersion", PROTOCOL_VERSION),
                "capabilities": {"tools": {}},
                "serverInfo": {"name": self.name, "version": self.version},
            }

        if method == "ping":
            return {}

        if method == "tools/list":
            return {"tools": [t.to_dict() for t in self.registry.list_tools()]}

        if method == "tools/call":
            tool_name = params.get("name")
            if not isinstance(tool_name, str) or not tool_name:
                raise _MethodError(ErrorCode.INVALID_PARAMS, "tools/call requires a tool name")
            result = self.registry.dispatch(tool_name, params.get("arguments"))
            if result.is_error:
                logger.warning(f"Tool '{tool_name}' returned an error: {result.first_text}")
            return result.to_dict()

        raise _MethodError(ErrorCode.METHOD_NOT_FOUND, f"Unknown method: '{method}'")


class _MethodError(Exception):
    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
