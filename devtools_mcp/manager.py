"""
Tool Server Manager: the single entry point for running analysis tools.

The manager hides server startup, capability checks and failure recovery.
Callers (web routes, the CLI, the LangChain bridge) only ever see an
ExecutionResult.

Usage:
    registry = ServerRegistry(default_server_specs())
    manager = ToolServerManager(registry)

    result = await manager.execute_tool(
        "git-analytics", "analyze_repository", {"repoPath": "."}
    )
    if result.success:
        print(result.data)

    await manager.stop_all()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from devtools_mcp.catalog import default_server_specs, describe_tool
from devtools_mcp.config import ClientConfig, FallbackMode, load_server_specs
from devtools_mcp.errors import (
    ServerStartFailed,
    ToolServerError,
    UnknownServer,
    UnsupportedTool,
)
from devtools_mcp.fallback import SimulatedResponses
from devtools_mcp.process import ServerProcess
from devtools_mcp.registry import ServerRegistry, ServerSpec, ServerStatus

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """
    Uniform outcome of execute_tool().

    Exactly one of ``data`` (success) and ``error`` (failure) is meaningful.
    ``degraded`` marks data that came from the simulation table rather than
    the live server; it is only ever set in FallbackMode.TAG.
    """
    success: bool
    server: str
    tool: str
    data: Any = None
    error: str | None = None
    error_type: str | None = None
    degraded: bool = False

    @classmethod
    def ok(cls, server: str, tool: str, data: Any, degraded: bool = False) -> ExecutionResult:
        return cls(success=True, server=server, tool=tool, data=data, degraded=degraded)

    @classmethod
    def failure(cls, server: str, tool: str, error: ToolServerError) -> ExecutionResult:
        return cls(
            success=False,
            server=server,
            tool=tool,
            error=str(error),
            error_type=type(error).__name__,
        )

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {
            "success": self.success,
            "server": self.server,
            "tool": self.tool,
        }
        if self.success:
            payload["data"] = self.data
            if self.degraded:
                payload["degraded"] = True
        else:
            payload["error"] = self.error
            payload["errorType"] = self.error_type
        return payload


class ToolServerManager:
    """
    Routes tool calls to server processes, starting them on demand.

    Responsibilities:
    - Reject unknown servers and undeclared tools before any spawn
    - Start servers lazily (one ServerProcess per registered name)
    - Fall back to simulated responses when the live call fails
    - Explicit start/stop for operators, plus graceful shutdown
    """

    def __init__(
        self,
        registry: ServerRegistry | None = None,
        config: ClientConfig | None = None,
        simulations: SimulatedResponses | None = None,
    ):
        self.registry = registry if registry is not None else ServerRegistry()
        self.config = config or ClientConfig()
        self.simulations = simulations or SimulatedResponses()
        self._processes: dict[str, ServerProcess] = {}

    @classmethod
    def from_config(cls, config: ClientConfig | None = None) -> ToolServerManager:
        """Build a manager whose registry comes from the servers file or the defaults."""
        config = config or ClientConfig.from_env()
        if config.servers_file:
            specs = load_server_specs(config.servers_file, base_dir=config.base_dir)
        else:
            specs = default_server_specs()
        return cls(ServerRegistry(specs), config=config)

    async def __aenter__(self) -> ToolServerManager:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop_all()

    # ============================================================
    # CATALOG
    # ============================================================

    def register_server(self, spec: ServerSpec) -> None:
        """Add or replace a server definition. A running or starting server must be stopped first."""
        process = self._processes.get(spec.name)
        if process is not None and process.is_busy:
            raise ValueError(f"Server {spec.name} is starting or stopping; wait before replacing it")
        if process is not None and process.is_running:
            raise ValueError(f"Server {spec.name} is running; stop it before replacing it")
        self._processes.pop(spec.name, None)
        self.registry.register(spec)

    def list_servers(self) -> list[ServerSpec]:
        return self.registry.list()

    def server_status(self, server_name: str) -> ServerStatus | None:
        return self.registry.status_of(server_name)

    async def list_tools(self, server_name: str) -> list[dict]:
        """
        Tool descriptors for a server. Never starts it.

        A running server is asked via tools/list; otherwise (or if it has
        nothing to say) descriptors come from the declared capabilities.

        Raises:
            UnknownServer: no such server is registered.
        """
        spec = self.registry.get(server_name)
        process = self._processes.get(server_name)
        if process is not None and process.is_running:
            tools = await process.list_tools()
            if tools:
                return tools
        return [describe_tool(name) for name in sorted(spec.capabilities)]

    # ============================================================
    # LIFECYCLE
    # ============================================================

    def _process_for(self, server_name: str) -> ServerProcess:
        spec = self.registry.get(server_name)
        process = self._processes.get(server_name)
        if process is None or process.spec is not spec:
            process = ServerProcess(
                spec,
                request_timeout=self.config.request_timeout,
                base_dir=self.config.base_dir,
                client_name=self.config.client_name,
                client_version=self.config.client_version,
                protocol_version=self.config.protocol_version,
            )
            self._processes[server_name] = process
        return process

    async def start_server(self, server_name: str) -> bool:
        try:
            process = self._process_for(server_name)
        except UnknownServer:
            logger.error(f"Server {server_name} not found")
            return False
        return await process.start()

    async def stop_server(self, server_name: str) -> bool:
        process = self._processes.get(server_name)
        if process is None:
            return True
        return await process.stop()

    async def stop_all(self) -> None:
        """Stop all running servers."""
        await asyncio.gather(*(p.stop() for p in list(self._processes.values())))

    def is_running(self, server_name: str) -> bool:
        process = self._processes.get(server_name)
        return process is not None and process.is_running

    # ============================================================
    # EXECUTION
    # ============================================================

    async def execute_tool(
        self,
        server_name: str,
        tool_name: str,
        parameters: dict[str, Any] | None = None,
    ) -> ExecutionResult:
        """
        Run ``tool_name`` on ``server_name`` and always return an ExecutionResult.

        Unknown servers and undeclared tools fail immediately. Start
        failures, timeouts, crashes and remote errors go to the simulation
        table (per the configured FallbackMode); only when that has nothing
        either is the original error returned.
        """
        parameters = parameters or {}
        try:
            spec = self.registry.get(server_name)
            if not spec.supports(tool_name):
                raise UnsupportedTool(server_name, tool_name)
        except (UnknownServer, UnsupportedTool) as e:
            return ExecutionResult.failure(server_name, tool_name, e)

        process = self._process_for(server_name)
        try:
            if not process.is_running and not await process.start():
                raise ServerStartFailed(server_name)
            data = await process.call_tool(tool_name, parameters)
        except ToolServerError as e:
            return self._fall_back(server_name, tool_name, parameters, e)

        return ExecutionResult.ok(server_name, tool_name, data)

    def _fall_back(
        self,
        server_name: str,
        tool_name: str,
        parameters: dict[str, Any],
        error: ToolServerError,
    ) -> ExecutionResult:
        mode = self.config.fallback_mode
        if mode is FallbackMode.OFF:
            logger.warning(f"MCP protocol failed for {server_name}:{tool_name}: {error}")
            return ExecutionResult.failure(server_name, tool_name, error)

        logger.warning(
            f"MCP protocol failed for {server_name}:{tool_name}, "
            f"falling back to simulation: {error}"
        )
        try:
            data = self.simulations.generate(server_name, tool_name, parameters)
        except Exception as simulation_error:
            logger.error(f"Simulation failed for {server_name}:{tool_name}: {simulation_error}")
            return ExecutionResult.failure(server_name, tool_name, error)

        return ExecutionResult.ok(
            server_name, tool_name, data, degraded=mode is FallbackMode.TAG
        )
