"""Tests for the bundled git-analytics server against a throwaway repository."""
from __future__ import annotations

import os
import shutil
import subprocess
import sys

import pytest

from conftest import PROJECT_ROOT
from devtools_mcp.manager import ToolServerManager
from devtools_mcp.registry import ServerRegistry, ServerSpec
from devtools_mcp.servers.git_analytics import (
    AnalyzeRepositoryTool,
    BranchInsightsTool,
    CommitPatternsTool,
    branch_naming,
)

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

GIT_ENV = {
    "GIT_AUTHOR_NAME": "Alice",
    "GIT_AUTHOR_EMAIL": "alice@example.com",
    "GIT_COMMITTER_NAME": "Alice",
    "GIT_COMMITTER_EMAIL": "alice@example.com",
}


def run_git(repo, *args: str) -> None:
    subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True, env={**os.environ, **GIT_ENV})


@pytest.fixture
def repo(tmp_path):
    run_git(tmp_path, "init", "-q", "-b", "main")
    for i in range(2):
        (tmp_path / f"file{i}.txt").write_text(f"content {i}\n")
        run_git(tmp_path, "add", ".")
        run_git(tmp_path, "commit", "-q", "-m", f"commit {i}")
    run_git(tmp_path, "branch", "feature/login")
    (tmp_path / "untracked.txt").write_text("new\n")
    return tmp_path


def test_analyze_repository(repo) -> None:
    stats = AnalyzeRepositoryTool().handle({"repoPath": str(repo)})

    assert stats["totalCommits"] == 2
    assert stats["activeBranches"] == 2
    assert stats["currentBranch"] == "main"
    assert stats["isDirty"] is True
    assert stats["stagedFiles"] == 0
    assert stats["recentCommits"]["message"] == "commit 1"
    assert stats["recentCommits"]["author"] == "Alice"


def test_commit_patterns(repo) -> None:
    patterns = CommitPatternsTool().handle({"repoPath": str(repo), "days": 7})

    assert patterns["totalCommits"] == 2
    assert patterns["topContributors"] == [{"author": "Alice", "commits": 2}]
    assert sum(patterns["commitsByDay"].values()) == 2
    assert patterns["averageCommitsPerDay"] == pytest.approx(2 / 7)


def test_branch_insights(repo) -> None:
    insights = BranchInsightsTool().handle({"repoPath": str(repo)})

    assert insights["totalBranches"] == 2
    assert insights["remoteBranches"] == 0
    assert insights["branchNamingPatterns"]["feature"] == 1
    assert insights["recentMerges"] == []
    assert insights["staleBranches"] == []


def test_missing_repo_path_is_an_error() -> None:
    with pytest.raises(ValueError):
        AnalyzeRepositoryTool().handle({})


def test_not_a_repository(tmp_path) -> None:
    with pytest.raises(RuntimeError):
        AnalyzeRepositoryTool().handle({"repoPath": str(tmp_path)})


def test_branch_naming_counts_other() -> None:
    counts = branch_naming(["feature/a", "release/1.0", "main", "spike"])
    assert counts["feature"] == 1
    assert counts["release"] == 1
    assert counts["other"] == 2


@pytest.mark.anyio
async def test_end_to_end_through_manager(repo) -> None:
    spec = ServerSpec(
        name="git-analytics",
        command=sys.executable,
        args=["-m", "devtools_mcp.servers.git_analytics"],
        capabilities={"analyze_repository", "commit_patterns", "branch_insights"},
        env={"PYTHONPATH": str(PROJECT_ROOT)},
    )
    async with ToolServerManager(ServerRegistry([spec])) as manager:
        result = await manager.execute_tool("git-analytics", "analyze_repository", {"repoPath": str(repo)})
        tools = await manager.list_tools("git-analytics")

    assert result.success is True
    assert result.degraded is False
    assert result.data["totalCommits"] == 2
    assert {t["name"] for t in tools} == {"analyze_repository", "commit_patterns", "branch_insights"}
