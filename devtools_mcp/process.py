"""
Lifecycle of one external tool server.

State machine (mirrored into ServerSpec.status):

    STOPPED --start() ok--> RUNNING --process exits cleanly--> STOPPED
       |                       |
       +--start() fails--> ERROR <--process crashes--+
    stop() from any state --> STOPPED

Every start() spawns a fresh transport and correlator, so request ids and
pending requests never carry over from a previous process instance.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from devtools_mcp import __version__
from devtools_mcp.correlator import DEFAULT_REQUEST_TIMEOUT, MessageCorrelator
from devtools_mcp.errors import ServerNotRunning, ToolServerError, RemoteToolError
from devtools_mcp.registry import ServerSpec, ServerStatus
from devtools_mcp.transport import PROTOCOL_VERSION, StdioTransport, Transport

logger = logging.getLogger(__name__)



class ServerProcess:
    """
    One tool server child process plus the channel that talks to it.

    Usage:
        process = ServerProcess(spec)
        if await process.start():
            result = await process.call_tool("analyze_repository", {"repoPath": "."})
        await process.stop()
    """

    def __init__(
        self,
        spec: ServerSpec,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        base_dir: str | None = None,
        client_name: str = "devtools-mcp",
        client_version: str = __version__,
        protocol_version: str = PROTOCOL_VERSION,
    ):
        self.spec = spec
        self.request_timeout = request_timeout
        self.base_dir = base_dir
        self.client_name = client_name
        self.client_version = client_version
        self.protocol_version = protocol_version
        self.server_info: dict[str, Any] = {}
        self._transport: Transport | None = None
        self._correlator: MessageCorrelator | None = None
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def is_running(self) -> bool:
        return (
            self._correlator is not None
            and self._transport is not None
            and self._transport.is_alive()
        )

    @property
    def correlator(self) -> MessageCorrelator | None:
        return self._correlator

    @property
    def is_busy(self) -> bool:
        """True while start() or stop() is in progress."""
        return self._lock.locked()

    def _working_directory(self) -> str | None:
        if not self.spec.cwd:
            return self.base_dir
        if os.path.isabs(self.spec.cwd) or not self.base_dir:
            return os.path.abspath(self.spec.cwd)
        return os.path.abspath(os.path.join(self.base_dir, self.spec.cwd))

    def _make_transport(self) -> Transport:
        return StdioTransport(
            self.spec.launch_command,
            cwd=self._working_directory(),
            env=self.spec.env,
            name=self.spec.name,
        )

    async def start(self) -> bool:
        """
        Spawn the server and complete the initialize handshake.

        Concurrent callers serialize on a lock; whoever comes second finds
        the server already running and returns immediately.
        """
        async with self._lock:
            if self.is_running:
                return True

            transport = self._make_transport()
            correlator = MessageCorrelator(
                transport.write, timeout=self.request_timeout, name=self.spec.name
            )
            transport.on_data = correlator.feed
            transport.on_exit = lambda code: self._handle_exit(transport, code)
            self._transport = transport
            self._correlator = correlator

            try:
                await transport.start()
                result = await correlator.send_request("initialize", {
                    "protocolVersion": self.protocol_version,
                    "capabilities": {"tools": {}},
                    "clientInfo": {
                        "name": self.client_name,
                        "version": self.client_version,
                    },
                })
                correlator.notify("notifications/initialized")
            except (OSError, ToolServerError) as e:
                logger.error(f"Failed to start MCP server {self.spec.name}: {e}")
                await self._teardown(f"start failed: {e}")
                self.spec.status = ServerStatus.ERROR
                return False

            self.server_info = result.get("serverInfo", {}) if isinstance(result, dict) else {}
            self.spec.status = ServerStatus.RUNNING
            logger.info(f"MCP server {self.spec.name} started (pid {getattr(transport, 'pid', None)})")
            return True

    async def stop(self) -> bool:
        """Terminate the server if it is running. Always leaves it STOPPED."""
        async with self._lock:
            if self._transport is None:
                self.spec.status = ServerStatus.STOPPED
                return True
            await self._teardown("server stopped")
            self.spec.status = ServerStatus.STOPPED
            logger.info(f"MCP server {self.spec.name} stopped")
            return True

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> Any:
        """
        Invoke a tool and return the result's ``content`` (or the bare result).

        Raises:
            ServerNotRunning: start() has not succeeded.
            RemoteToolError: the server reported an error, including results
                flagged with ``isError``.
            RequestTimeout, ChannelClosed: transport-level failures.
        """
        correlator = self._require_running()
        if timeout is None:
            timeout = self.spec.timeout_for(name)
        result = await correlator.send_request(
            "tools/call",
            {"name": name, "arguments": arguments},
            timeout=timeout,
        )
        if isinstance(result, dict):
            if result.get("isError"):
                raise RemoteToolError(f"Tool {name} reported an error: {result.get('content')}")
            if "content" in result:
                return result["content"]
        return result

    async def list_tools(self) -> list[dict]:
        """Ask the server for its tool descriptors. Empty list on any request failure."""
        correlator = self._require_running()
        try:
            result = await correlator.send_request("tools/list", {})
        except ToolServerError as e:
            logger.error(f"Failed to list tools for {self.spec.name}: {e}")
            return []
        if isinstance(result, dict):
            result = result.get("tools", [])
        return result if isinstance(result, list) else []

    def _require_running(self) -> MessageCorrelator:
        if not self.is_running:
            raise ServerNotRunning(self.spec.name)
        return self._correlator

    def _handle_exit(self, transport: Transport, returncode: int | None) -> None:
        # A transport that was already replaced or stopped has no say any more.
        if transport is not self._transport:
            return
        if self._correlator is not None:
            self._correlator.fail_all(f"server exited with code {returncode}")
        self._transport = None
        self._correlator = None
        if returncode == 0:
            logger.info(f"MCP server {self.spec.name} closed with code {returncode}")
            self.spec.status = ServerStatus.STOPPED
        else:
            logger.warning(f"MCP server {self.spec.name} crashed with code {returncode}")
            self.spec.status = ServerStatus.ERROR

    async def _teardown(self, reason: str) -> None:
        transport, correlator = self._transport, self._correlator
        self._transport = None
        self._correlator = None
        if correlator is not None:
            correlator.fail_all(reason)
        if transport is not None:
            await transport.stop()
