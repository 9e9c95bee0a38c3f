"""
Error taxonomy for tool-server communication.

Transport and correlator failures are raised into the awaiting coroutine.
The manager converts them into ExecutionResult envelopes, so callers of
execute_tool() never see these directly.
"""

from __future__ import annotations


class ToolServerError(Exception):
    """Base class for every error raised by devtools_mcp."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class UnknownServer(ToolServerError):
    def __init__(self, server: str):
        super().__init__(f"Server {server} not found")
        self.server = server


class UnsupportedTool(ToolServerError):
    def __init__(self, server: str, tool: str):
        super().__init__(f"Tool {tool} not available on server {server}")
        self.server = server
        self.tool = tool


class ServerStartFailed(ToolServerError):
    def __init__(self, server: str):
        super().__init__(f"Failed to start server {server}")
        self.server = server


class ServerNotRunning(ToolServerError):
    def __init__(self, server: str):
        super().__init__(f"Server {server} is not running")
        self.server = server


class RequestTimeout(ToolServerError):
    def __init__(self, method: str, timeout: float):
        super().__init__(f"Request timeout for method {method} after {timeout:g}s")
        self.method = method
        self.timeout = timeout


class ChannelClosed(ToolServerError):
    """The child process exited (or was stopped) before a reply arrived."""


class MalformedFrame(ToolServerError):
    """A frame that is not a valid JSON-RPC response. Never leaves the correlator."""


class RemoteToolError(ToolServerError):
    """The tool server answered with a JSON-RPC error object."""


class FallbackExhausted(ToolServerError):
    def __init__(self, server: str, tool: str):
        super().__init__(f"No simulated response for {server}/{tool}")
        self.server = server
        self.tool = tool
