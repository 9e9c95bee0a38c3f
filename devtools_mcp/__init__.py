"""
devtools-mcp: stdio tool-server client for developer-productivity analysis.

Architecture:
    ┌──────────────────┐     stdio      ┌──────────────────┐
    │ ToolServerManager │ ──────────── │   Tool Server     │
    │  (asyncio)        │  JSON-RPC    │   (subprocess)    │
    └──────────────────┘     pipes     └──────────────────┘

Each tool server is a standalone process that communicates via
stdin/stdout using newline-delimited JSON-RPC 2.0 messages (the MCP
protocol).

StdioTransport moves bytes, MessageCorrelator matches replies to
requests by id, ServerProcess owns the lifecycle of one server, and
ToolServerManager validates, starts on demand and falls back to
simulated responses when a live call fails.

The StdioToolServer base class is the other end of the wire; the
bundled git-analytics server is built on it.
"""

__version__ = "0.3.0"

from devtools_mcp.errors import (
    ChannelClosed,
    FallbackExhausted,
    MalformedFrame,
    RemoteToolError,
    RequestTimeout,
    ServerNotRunning,
    ServerStartFailed,
    ToolServerError,
    UnknownServer,
    UnsupportedTool,
)
from devtools_mcp.registry import ServerRegistry, ServerSpec, ServerStatus
from devtools_mcp.process import ServerProcess
from devtools_mcp.config import ClientConfig, FallbackMode
from devtools_mcp.manager import ExecutionResult, ToolServerManager
from devtools_mcp.server import StdioToolServer, ToolHandler

# Bridge requires langchain; lazy import to keep servers standalone
def langchain_tools(*args, **kwargs):
    from devtools_mcp.bridge import langchain_tools as _impl
    return _impl(*args, **kwargs)

__all__ = [
    "ChannelClosed",
    "ClientConfig",
    "ExecutionResult",
    "FallbackExhausted",
    "FallbackMode",
    "MalformedFrame",
    "RemoteToolError",
    "RequestTimeout",
    "ServerNotRunning",
    "ServerProcess",
    "ServerRegistry",
    "ServerSpec",
    "ServerStartFailed",
    "ServerStatus",
    "StdioToolServer",
    "ToolHandler",
    "ToolServerError",
    "ToolServerManager",
    "UnknownServer",
    "UnsupportedTool",
    "langchain_tools",
]
