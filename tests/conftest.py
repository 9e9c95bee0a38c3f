"""Shared fixtures: scripted tool servers launched with the running interpreter."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

from devtools_mcp.registry import ServerSpec

TESTS_DIR = Path(__file__).parent
PROJECT_ROOT = TESTS_DIR.parent
FAKE_SERVER = TESTS_DIR / "fake_server.py"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def fake_spec(
    mode: str = "normal",
    name: str = "fake",
    capabilities: tuple[str, ...] = ("echo",),
    **kwargs,
) -> ServerSpec:
    return ServerSpec(
        name=name,
        command=sys.executable,
        args=[str(FAKE_SERVER), mode],
        capabilities=frozenset(capabilities),
        env={"PYTHONPATH": str(PROJECT_ROOT)},
        **kwargs,
    )


def missing_spec(name: str = "git-analytics", capabilities: tuple[str, ...] = ("analyze_repository",)) -> ServerSpec:
    return ServerSpec(
        name=name,
        command=str(PROJECT_ROOT / "no-such-dir" / "server"),
        capabilities=frozenset(capabilities),
    )
