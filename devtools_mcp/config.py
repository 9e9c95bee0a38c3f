"""Client configuration loaded from environment variables."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from devtools_mcp import __version__
from devtools_mcp.correlator import DEFAULT_REQUEST_TIMEOUT
from devtools_mcp.transport import PROTOCOL_VERSION
from devtools_mcp.registry import ServerSpec


class FallbackMode(str, Enum):
    """What execute_tool() does when the live call fails."""

    MASK = "mask"   # simulated data, reported as a plain success
    TAG = "tag"     # simulated data, success with degraded=True
    OFF = "off"     # no simulation, the protocol error is returned


@dataclass(frozen=True)
class ClientConfig:
    """Settings shared by every server the manager controls."""

    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    fallback_mode: FallbackMode = FallbackMode.TAG
    servers_file: str | None = None
    base_dir: str | None = None
    client_name: str = "devtools-mcp"
    client_version: str = __version__
    protocol_version: str = PROTOCOL_VERSION

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Load configuration from environment variables."""
        return cls(
            request_timeout=float(
                os.getenv("DEVTOOLS_MCP_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT))
            ),
            fallback_mode=FallbackMode(os.getenv("DEVTOOLS_MCP_FALLBACK", FallbackMode.TAG.value).lower()),
            servers_file=os.getenv("DEVTOOLS_MCP_SERVERS_FILE") or None,
            base_dir=os.getenv("DEVTOOLS_MCP_BASE_DIR") or None,
        )


def load_server_specs(path: str | Path, base_dir: str | None = None) -> list[ServerSpec]:
    """
    Read server definitions from a JSON file.

    Format:
        {"servers": [{"name": "git-analytics",
                      "command": "python",
                      "args": ["-m", "devtools_mcp.servers.git_analytics"],
                      "cwd": ".",
                      "capabilities": ["analyze_repository"],
                      "tool_timeouts": {"analyze_repository": 120}}]}

    Relative ``cwd`` values resolve against ``base_dir`` (default: the
    directory holding the file).
    """
    path = Path(path)
    data = json.loads(path.read_text(encoding="utf-8"))
    entries = data.get("servers") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected a top-level 'servers' list")

    root = Path(base_dir) if base_dir else path.parent
    specs = []
    for entry in entries:
        missing = [key for key in ("name", "command") if not entry.get(key)]
        if missing:
            raise ValueError(f"{path}: server entry missing {missing}: {entry}")
        cwd = entry.get("cwd")
        if cwd and not os.path.isabs(cwd):
            cwd = str((root / cwd).resolve())
        specs.append(ServerSpec(
            name=entry["name"],
            command=entry["command"],
            args=[str(a) for a in entry.get("args", [])],
            cwd=cwd,
            capabilities=frozenset(entry.get("capabilities", [])),
            env={k: str(v) for k, v in entry.get("env", {}).items()},
            tool_timeouts={k: float(v) for k, v in entry.get("tool_timeouts", {}).items()},
        ))
    return specs
