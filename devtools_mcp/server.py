"""
Tool-server side of the protocol.

A tool server is a standalone process that reads one JSON-RPC request per
line on stdin, routes ``tools/call`` to a registered ToolHandler and
answers on stdout. The client in devtools_mcp.process is the other end.

To create a tool server:

    from devtools_mcp.server import StdioToolServer, ToolHandler

    class LineCount(ToolHandler):
        name = "line_count"
        description = "Count lines in a file"
        parameters = {
            "path": {"type": "string", "description": "File to read"},
        }
        required = ["path"]

        def handle(self, params: dict) -> dict:
            with open(params["path"]) as f:
                return {"lines": sum(1 for _ in f)}

    if __name__ == "__main__":
        server = StdioToolServer("line-tools")
        server.register(LineCount())
        server.run()

stdout belongs to the protocol; anything diagnostic goes to stderr.
"""

from __future__ import annotations

import json
import logging
import sys
from abc import ABC, abstractmethod
from typing import Any, Callable, TextIO

from devtools_mcp.transport import JSONRPC_VERSION, PROTOCOL_VERSION

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603


class ToolHandler(ABC):
    """
    One tool exposed by a server.

    ``parameters`` maps argument names to JSON-schema fragments and
    ``required`` lists the mandatory ones; together they form the
    ``inputSchema`` advertised by tools/list.
    """

    name: str = ""
    description: str = ""
    parameters: dict[str, dict] = {}
    required: list[str] = []

    @abstractmethod
    def handle(self, params: dict[str, Any]) -> Any:
        """Run the tool. The return value becomes the ``content`` of the reply."""
        ...

    def get_schema(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": self.parameters,
                "required": list(self.required),
            },
        }


class StdioToolServer:
    """
    Line-oriented JSON-RPC server over stdin/stdout.

    Methods answered: initialize, ping, tools/list and tools/call.
    Requests without an id are notifications and get no reply.
    """

    def __init__(self, name: str = "tool-server", version: str = "1.0.0"):
        self.name = name
        self.version = version
        self._handlers: dict[str, ToolHandler] = {}
        self._methods: dict[str, Callable[[dict], Any]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    def register(self, handler: ToolHandler) -> None:
        if not handler.name:
            raise ValueError(f"ToolHandler {handler.__class__.__name__} has no name")
        self._handlers[handler.name] = handler
        logger.info(f"Registered tool: {handler.name}")

    def run(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Serve until stdin reaches EOF, which happens when the client goes away."""
        source = stdin or sys.stdin
        sink = stdout or sys.stdout
        logger.info(f"{self.name} {self.version} serving {sorted(self._handlers)}")

        for line in source:
            reply = self.handle_line(line)
            if reply is None:
                continue
            sink.write(json.dumps(reply) + "\n")
            sink.flush()

    def handle_line(self, line: str) -> dict | None:
        """Answer one input line. None means nothing is written back."""
        if not line.strip():
            return None

        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            return _error(None, PARSE_ERROR, f"Parse error: {e}")
        if not isinstance(message, dict):
            return _error(None, PARSE_ERROR, "Request must be a JSON object")

        method = message.get("method", "")
        if "id" not in message:
            logger.debug(f"Notification: {method}")
            return None

        request_id = message["id"]
        target = self._methods.get(method)
        if target is None:
            return _error(request_id, METHOD_NOT_FOUND, f"Unknown method: '{method}'")

        try:
            result = target(message.get("params") or {})
        except Exception as e:
            logger.exception(f"{method} failed")
            return _error(request_id, INTERNAL_ERROR, str(e))
        return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}

    def _initialize(self, params: dict) -> dict:
        return {
            "protocolVersion": params.get("protocolVersion", PROTOCOL_VERSION),
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self.name, "version": self.version},
        }

    def _ping(self, params: dict) -> dict:
        return {"status": "ok", "tools": sorted(self._handlers)}

    def _list_tools(self, params: dict) -> dict:
        return {"tools": [h.get_schema() for h in self._handlers.values()]}

    def _call_tool(self, params: dict) -> dict:
        tool_name = params.get("name", "")
        handler = self._handlers.get(tool_name)
        if handler is None:
            raise ValueError(f"Unknown tool: '{tool_name}'. Available: {sorted(self._handlers)}")
        return {"content": handler.handle(params.get("arguments") or {})}


def _error(request_id: Any, code: int, message: str) -> dict:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }
