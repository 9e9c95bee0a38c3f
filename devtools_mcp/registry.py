"""
Server catalog: which tool servers exist, how to launch them, what they offer.

The registry is an ordinary object handed to the manager (and to anything
else that needs it); there is no module-level instance. Status fields are
written only by ServerProcess lifecycle transitions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from devtools_mcp.errors import UnknownServer

logger = logging.getLogger(__name__)


class ServerStatus(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    ERROR = "error"


@dataclass
class ServerSpec:
    """Identity, launch information and declared capabilities of one server."""
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    cwd: str | None = None
    capabilities: frozenset[str] = field(default_factory=frozenset)
    env: dict[str, str] = field(default_factory=dict)
    tool_timeouts: dict[str, float] = field(default_factory=dict)
    status: ServerStatus = ServerStatus.STOPPED

    def __post_init__(self):
        if not self.name:
            raise ValueError("ServerSpec.name must not be empty")
        self.capabilities = frozenset(self.capabilities)

    @property
    def launch_command(self) -> list[str]:
        return [self.command, *self.args]

    def supports(self, tool_name: str) -> bool:
        return tool_name in self.capabilities

    def timeout_for(self, tool_name: str) -> float | None:
        """Per-tool override, or None to use the global request timeout."""
        return self.tool_timeouts.get(tool_name)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "command": self.command,
            "args": list(self.args),
            "cwd": self.cwd,
            "status": self.status.value,
            "capabilities": sorted(self.capabilities),
        }


class ServerRegistry:
    """Name-keyed catalog of ServerSpecs."""

    def __init__(self, specs: list[ServerSpec] | None = None):
        self._specs: dict[str, ServerSpec] = {}
        for spec in specs or []:
            self.register(spec)

    def register(self, spec: ServerSpec) -> None:
        """Add a server, replacing any previous spec with the same name."""
        if spec.name in self._specs:
            logger.info(f"Replacing server spec: {spec.name}")
        self._specs[spec.name] = spec
        logger.info(f"Registered server: {spec.name} ({' '.join(spec.launch_command)})")

    def get(self, name: str) -> ServerSpec:
        spec = self._specs.get(name)
        if spec is None:
            raise UnknownServer(name)
        return spec

    def list(self) -> list[ServerSpec]:
        return list(self._specs.values())

    def status_of(self, name: str) -> ServerStatus | None:
        """Current status, or None if no such server is registered."""
        spec = self._specs.get(name)
        return spec.status if spec else None

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)
