"""
Git Analytics MCP Tool Server.

Repository statistics, commit patterns and branch insights, computed by
shelling out to ``git``. Runs as a subprocess, communicates via
stdin/stdout JSON-RPC.

Launch:
    python -m devtools_mcp.servers.git_analytics

Test manually:
    echo '{"jsonrpc":"2.0","method":"tools/call","params":{"name":"analyze_repository","arguments":{"repoPath":"."}},"id":1}' | python -m devtools_mcp.servers.git_analytics
"""

from __future__ import annotations

import logging
import subprocess
import sys
from collections import Counter
from datetime import datetime, timedelta, timezone

from devtools_mcp.server import StdioToolServer, ToolHandler

logger = logging.getLogger(__name__)

FIELD_SEP = "\x1f"
STALE_AFTER_DAYS = 30
PROTECTED_BRANCHES = {"main", "master", "develop"}

_REPO_PATH = {"type": "string", "description": "Path to the git repository"}


def git(repo_path: str, *args: str) -> str:
    """Run a git command in ``repo_path`` and return stdout."""
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=repo_path,
            capture_output=True,
            text=True,
            timeout=60,
            check=True,
        )
    except FileNotFoundError as e:
        raise RuntimeError(f"git is not available or {repo_path} does not exist: {e}") from e
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f"git {' '.join(args)} failed: {e.stderr.strip()}") from e
    return completed.stdout


def _records(output: str) -> list[list[str]]:
    return [line.split(FIELD_SEP) for line in output.splitlines() if line.strip()]


def _parse_date(value: str) -> datetime:
    # git prints "Z" for UTC in iso-strict on newer releases
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _repo_path(params: dict) -> str:
    repo_path = params.get("repoPath")
    if not repo_path:
        raise ValueError("repoPath is required")
    return repo_path


class AnalyzeRepositoryTool(ToolHandler):
    name = "analyze_repository"
    description = "Analyze a git repository for basic statistics and insights"
    parameters = {"repoPath": _REPO_PATH}
    required = ["repoPath"]

    def handle(self, params: dict) -> dict:
        repo = _repo_path(params)
        status = [line for line in git(repo, "status", "--porcelain").splitlines() if line]
        branches = git(repo, "branch", "--format=%(refname:short)").split()
        latest = _records(git(repo, "log", "-1", f"--format=%H{FIELD_SEP}%s{FIELD_SEP}%an{FIELD_SEP}%aI"))
        remotes = {}
        for line in git(repo, "remote", "-v").splitlines():
            parts = line.split()
            if len(parts) >= 2:
                remotes.setdefault(parts[0], parts[1])

        return {
            "totalCommits": int(git(repo, "rev-list", "--count", "HEAD").strip() or 0),
            "activeBranches": len(branches),
            "currentBranch": git(repo, "rev-parse", "--abbrev-ref", "HEAD").strip(),
            "isDirty": bool(status),
            # porcelain: column 1 is the index, column 2 the work tree
            "unstagedFiles": sum(1 for line in status if line[1] != " "),
            "stagedFiles": sum(1 for line in status if line[0] not in (" ", "?")),
            "remotes": [{"name": name, "url": url} for name, url in remotes.items()],
            "recentCommits": {
                "hash": latest[0][0],
                "message": latest[0][1],
                "author": latest[0][2],
                "date": latest[0][3],
            } if latest else None,
        }


class CommitPatternsTool(ToolHandler):
    name = "commit_patterns"
    description = "Analyze commit patterns and frequency over time"
    parameters = {
        "repoPath": _REPO_PATH,
        "days": {"type": "number", "description": "Number of days to analyze", "default": 30},
    }
    required = ["repoPath"]

    def handle(self, params: dict) -> dict:
        repo = _repo_path(params)
        days = max(int(params.get("days") or 30), 1)
        since = datetime.now(timezone.utc) - timedelta(days=days)
        commits = _records(git(
            repo, "log", f"--since={since.isoformat()}", f"--format=%an{FIELD_SEP}%aI"
        ))

        by_day: Counter = Counter()
        by_hour: Counter = Counter()
        by_author: Counter = Counter()
        for author, date in commits:
            stamp = _parse_date(date)
            by_day[stamp.date().isoformat()] += 1
            by_hour[stamp.hour] += 1
            by_author[author] += 1

        return {
            "totalCommits": len(commits),
            "averageCommitsPerDay": len(commits) / days,
            "peakCommitHour": by_hour.most_common(1)[0][0] if by_hour else 0,
            "mostActiveDay": by_day.most_common(1)[0][0] if by_day else None,
            "topContributors": [
                {"author": author, "commits": count}
                for author, count in by_author.most_common(5)
            ],
            "commitsByDay": dict(by_day),
            "commitsByHour": {str(hour): count for hour, count in sorted(by_hour.items())},
        }


class BranchInsightsTool(ToolHandler):
    name = "branch_insights"
    description = "Get insights about branches, merges, and collaboration patterns"
    parameters = {"repoPath": _REPO_PATH}
    required = ["repoPath"]

    def handle(self, params: dict) -> dict:
        repo = _repo_path(params)
        refs = git(repo, "for-each-ref", "--format=%(refname)", "refs/heads", "refs/remotes").split()
        local = [r[len("refs/heads/"):] for r in refs if r.startswith("refs/heads/")]
        remote = [r for r in refs if r.startswith("refs/remotes/")]
        merges = _records(git(
            repo, "log", "--merges", "-n", "10",
            f"--format=%H{FIELD_SEP}%s{FIELD_SEP}%an{FIELD_SEP}%aI",
        ))

        return {
            "totalBranches": len(local),
            "remoteBranches": len(remote),
            "currentBranch": git(repo, "rev-parse", "--abbrev-ref", "HEAD").strip(),
            "recentMerges": [
                {"hash": h[:8], "message": msg, "author": author, "date": date}
                for h, msg, author, date in merges
            ],
            "branchNamingPatterns": branch_naming(local),
            "staleBranches": self._stale_branches(repo),
        }

    def _stale_branches(self, repo: str) -> list[dict]:
        threshold = datetime.now(timezone.utc) - timedelta(days=STALE_AFTER_DAYS)
        stale = []
        for name, date, author in _records(git(
            repo, "for-each-ref", "refs/heads",
            f"--format=%(refname:short){FIELD_SEP}%(committerdate:iso-strict){FIELD_SEP}%(authorname)",
        )):
            if name in PROTECTED_BRANCHES:
                continue
            if _parse_date(date) < threshold:
                stale.append({"name": name, "lastCommit": date, "author": author})
        return stale


def branch_naming(branches: list[str]) -> dict[str, int]:
    """Count branches per naming convention; anything unmatched is 'other'."""
    patterns = {
        "feature": sum(1 for b in branches if "feature" in b),
        "bugfix": sum(1 for b in branches if "bugfix" in b or "fix" in b),
        "hotfix": sum(1 for b in branches if "hotfix" in b),
        "release": sum(1 for b in branches if "release" in b),
        "develop": sum(1 for b in branches if "develop" in b or "dev" in b),
    }
    patterns["other"] = max(len(branches) - sum(patterns.values()), 0)
    return patterns


if __name__ == "__main__":
    logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s: %(message)s")
    server = StdioToolServer("git-analytics")
    server.register(AnalyzeRepositoryTool())
    server.register(CommitPatternsTool())
    server.register(BranchInsightsTool())
    server.run()
