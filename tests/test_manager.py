"""Orchestration tests: capability checks, start on demand and fallback."""
from __future__ import annotations

import asyncio

import pytest

from conftest import fake_spec, missing_spec
from devtools_mcp.config import ClientConfig, FallbackMode
from devtools_mcp.fallback import SimulatedResponses
from devtools_mcp.manager import ExecutionResult, ToolServerManager
from devtools_mcp.registry import ServerRegistry, ServerStatus


def make_manager(*specs, **config) -> ToolServerManager:
    return ToolServerManager(ServerRegistry(list(specs)), config=ClientConfig(**config))


@pytest.fixture
def no_spawn(monkeypatch):
    """Fail the test if anything tries to launch a process."""
    async def forbidden(*args, **kwargs):
        raise AssertionError(f"unexpected process spawn: {args}")
    monkeypatch.setattr(asyncio, "create_subprocess_exec", forbidden)


@pytest.mark.anyio
async def test_missing_server_falls_back_to_simulation() -> None:
    manager = make_manager(missing_spec())

    result = await manager.execute_tool("git-analytics", "analyze_repository", {"repoPath": "/x"})

    assert result.success is True
    assert "totalCommits" in result.data
    assert result.error is None
    assert result.degraded is True
    assert manager.server_status("git-analytics") is ServerStatus.ERROR


@pytest.mark.anyio
async def test_mask_mode_hides_provenance() -> None:
    manager = make_manager(missing_spec(), fallback_mode=FallbackMode.MASK)

    result = await manager.execute_tool("git-analytics", "analyze_repository", {"repoPath": "/x"})

    assert result.success is True
    assert result.degraded is False
    assert "degraded" not in result.to_dict()


@pytest.mark.anyio
async def test_off_mode_reports_start_failure() -> None:
    manager = make_manager(missing_spec(), fallback_mode=FallbackMode.OFF)

    result = await manager.execute_tool("git-analytics", "analyze_repository", {"repoPath": "/x"})

    assert result.success is False
    assert result.error_type == "ServerStartFailed"
    assert result.data is None


@pytest.mark.anyio
async def test_unsupported_tool_fails_without_spawning(no_spawn) -> None:
    manager = make_manager(missing_spec())

    result = await manager.execute_tool("git-analytics", "nonexistent_tool", {})

    assert result.success is False
    assert "not available" in result.error
    assert result.error_type == "UnsupportedTool"
    assert manager.server_status("git-analytics") is ServerStatus.STOPPED
    assert not manager.is_running("git-analytics")


@pytest.mark.anyio
async def test_unknown_server(no_spawn) -> None:
    manager = make_manager()

    result = await manager.execute_tool("ghost", "anything", {})

    assert result.success is False
    assert result.error_type == "UnknownServer"
    assert result.to_dict() == {
        "success": False,
        "server": "ghost",
        "tool": "anything",
        "error": "Server ghost not found",
        "errorType": "UnknownServer",
    }


@pytest.mark.anyio
async def test_live_call_returns_server_data() -> None:
    manager = make_manager(fake_spec())
    try:
        result = await manager.execute_tool("fake", "echo", {"message": "hello"})

        assert result.success is True
        assert result.degraded is False
        assert result.data["echo"] == {"message": "hello"}
        assert manager.server_status("fake") is ServerStatus.RUNNING
    finally:
        await manager.stop_all()
    assert manager.server_status("fake") is ServerStatus.STOPPED


@pytest.mark.anyio
async def test_silent_server_resolves_within_timeout_via_fallback() -> None:
    manager = make_manager(
        fake_spec("silent", name="git-analytics", capabilities=("commit_patterns",)),
        request_timeout=0.3,
    )
    try:
        result = await asyncio.wait_for(
            manager.execute_tool("git-analytics", "commit_patterns", {"repoPath": "."}),
            timeout=5,
        )
        assert result.success is True
        assert result.data["totalCommits"] == 45
    finally:
        await manager.stop_all()


@pytest.mark.anyio
async def test_silent_server_without_simulation_keeps_original_error() -> None:
    manager = make_manager(fake_spec("silent"), request_timeout=0.3)
    try:
        result = await asyncio.wait_for(manager.execute_tool("fake", "echo", {}), timeout=5)

        assert result.success is False
        assert result.error_type == "RequestTimeout"
        assert "tools/call" in result.error
    finally:
        await manager.stop_all()


@pytest.mark.anyio
async def test_failing_simulation_keeps_original_error() -> None:
    def broken(params):
        raise KeyError("no canned data")

    simulations = SimulatedResponses({"git-analytics": {"analyze_repository": broken}})
    manager = ToolServerManager(ServerRegistry([missing_spec()]), simulations=simulations)

    result = await manager.execute_tool("git-analytics", "analyze_repository", {})

    assert result.success is False
    assert result.error_type == "ServerStartFailed"


@pytest.mark.anyio
async def test_crashed_server_is_restarted_on_next_call() -> None:
    manager = make_manager(fake_spec("crash", name="git-analytics", capabilities=("analyze_repository",)))
    try:
        first = await manager.execute_tool("git-analytics", "analyze_repository", {})
        assert first.success and first.degraded
        assert manager.server_status("git-analytics") is ServerStatus.ERROR

        second = await manager.execute_tool("git-analytics", "analyze_repository", {})
        assert second.success and second.degraded
    finally:
        await manager.stop_all()


@pytest.mark.anyio
async def test_explicit_lifecycle_control() -> None:
    manager = make_manager(fake_spec())

    assert not await manager.start_server("ghost")
    assert await manager.stop_server("fake")
    assert await manager.start_server("fake")
    try:
        assert manager.is_running("fake")
        tools = await manager.list_tools("fake")
        assert [t["name"] for t in tools] == ["echo"]
    finally:
        assert await manager.stop_server("fake")
    assert manager.server_status("fake") is ServerStatus.STOPPED
    assert await manager.stop_server("fake")


@pytest.mark.anyio
async def test_list_tools_uses_catalog_when_not_running(no_spawn) -> None:
    manager = make_manager(missing_spec(capabilities=("branch_insights", "analyze_repository")))

    tools = await manager.list_tools("git-analytics")

    assert [t["name"] for t in tools] == ["analyze_repository", "branch_insights"]
    assert tools[0]["inputSchema"]["required"] == ["repoPath"]
    assert manager.server_status("git-analytics") is ServerStatus.STOPPED


@pytest.mark.anyio
async def test_register_server_refuses_to_replace_running_server() -> None:
    manager = make_manager(fake_spec())
    assert await manager.start_server("fake")
    try:
        with pytest.raises(ValueError):
            manager.register_server(fake_spec())
    finally:
        await manager.stop_all()

    replacement = fake_spec(capabilities=("echo", "other"))
    manager.register_server(replacement)
    assert manager.registry.get("fake") is replacement
    assert [s.name for s in manager.list_servers()] == ["fake"]


@pytest.mark.anyio
async def test_register_server_refuses_to_replace_starting_server() -> None:
    original = fake_spec("mute")
    manager = make_manager(original, request_timeout=0.5)

    starting = asyncio.create_task(manager.start_server("fake"))
    await asyncio.sleep(0.1)
    try:
        with pytest.raises(ValueError, match="starting"):
            manager.register_server(fake_spec())
        assert manager.registry.get("fake") is original
    finally:
        assert await starting is False
        await manager.stop_all()

    replacement = fake_spec()
    manager.register_server(replacement)
    assert manager.registry.get("fake") is replacement


@pytest.mark.anyio
async def test_context_manager_stops_servers() -> None:
    spec = fake_spec()
    async with make_manager(spec) as manager:
        assert await manager.start_server("fake")
    assert spec.status is ServerStatus.STOPPED


def test_execution_result_envelope() -> None:
    ok = ExecutionResult.ok("s", "t", {"v": 1}, degraded=True)
    assert ok.to_dict() == {"success": True, "server": "s", "tool": "t", "data": {"v": 1}, "degraded": True}
    assert ok.error is None
