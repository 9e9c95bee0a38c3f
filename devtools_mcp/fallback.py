"""
Simulated tool responses used when a live tool server cannot answer.

Each entry produces a canned result with the same shape the real server
returns, so callers keep working while a server is missing or unhealthy.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from devtools_mcp.errors import FallbackExhausted

Generator = Callable[[dict[str, Any]], Any]


# ============================================================
# GIT-ANALYTICS
# ============================================================

def _analyze_repository(params: dict) -> dict:
    return {
        "totalCommits": 150,
        "activeBranches": 5,
        "currentBranch": "main",
        "isDirty": False,
        "unstagedFiles": 0,
        "stagedFiles": 0,
        "recentCommits": {
            "hash": "abc123",
            "message": "Add new feature",
            "author": "Developer",
            "date": datetime.now(timezone.utc).isoformat(),
        },
    }


def _commit_patterns(params: dict) -> dict:
    return {
        "totalCommits": 45,
        "averageCommitsPerDay": 1.5,
        "peakCommitHour": 14,
        "mostActiveDay": "2024-01-15",
        "topContributors": [
            {"author": "Alice", "commits": 25},
            {"author": "Bob", "commits": 20},
        ],
    }


def _branch_insights(params: dict) -> dict:
    return {
        "totalBranches": 8,
        "remoteBranches": 5,
        "currentBranch": "main",
        "recentMerges": [],
        "branchNamingPatterns": {"feature": 3, "bugfix": 2, "hotfix": 1, "release": 1, "other": 1},
        "staleBranches": [],
    }


# ============================================================
# CODE-QUALITY
# ============================================================

def _analyze_complexity(params: dict) -> dict:
    return {
        "totalFiles": 25,
        "totalComplexity": 150,
        "totalLinesOfCode": 2500,
        "averageComplexity": 6.0,
        "averageLinesOfCode": 100,
        "complexityDistribution": {"low": 15, "medium": 7, "high": 2, "veryHigh": 1},
        "mostComplexFiles": [
            {"file": "complex.ts", "complexity": 25, "linesOfCode": 300},
            {"file": "service.ts", "complexity": 18, "linesOfCode": 250},
        ],
    }


def _detect_tech_debt(params: dict) -> dict:
    return {
        "totalFiles": 25,
        "filesWithIssues": 8,
        "totalIssues": 15,
        "issueTypes": {"high_complexity": 3, "long_file": 2, "duplicate_code": 4, "debug_code": 6},
        "criticalFiles": [
            {"file": "legacy.ts", "complexity": 30, "issues": ["high_complexity", "long_file"]},
        ],
        "recommendations": [
            "Consider breaking down complex functions",
            "Remove debug statements",
            "Extract common utilities",
        ],
    }


def _suggest_refactoring(params: dict) -> dict:
    file_path = params.get("filePath") or ""
    return {
        "file": file_path.split("/")[-1] or "unknown.ts",
        "currentMetrics": {"cyclomaticComplexity": 15, "linesOfCode": 200, "functions": 8, "classes": 2},
        "suggestions": [
            {
                "type": "extract_function",
                "priority": "high",
                "description": "Break down complex logic into smaller functions",
                "benefit": "Improves readability and testability",
            },
            {
                "type": "split_file",
                "priority": "medium",
                "description": "Consider splitting this file into multiple modules",
                "benefit": "Better organization and maintainability",
            },
        ],
        "estimatedImpact": {"complexity": 30, "maintainability": 25, "testability": 40, "readability": 25},
    }


# ============================================================
# KNOWLEDGE-GRAPH
# ============================================================

def _build_knowledge_graph(params: dict) -> dict:
    files = ["app.ts", "service.ts", "utils.ts", "index.ts"]
    return {
        "graphType": "dependency",
        "nodes": [{"id": f, "label": f, "type": "file"} for f in files],
        "edges": [
            {"source": src, "target": dst, "label": "imports"}
            for src, dst in zip(files, files[1:])
        ],
    }


def _query_knowledge(params: dict) -> dict:
    return {
        "query": "What are the dependencies of app.ts?",
        "results": [
            {
                "id": "service.ts",
                "label": "service.ts",
                "type": "file",
                "description": "Service layer for application logic",
            },
            {
                "id": "utils.ts",
                "label": "utils.ts",
                "type": "file",
                "description": "Utility functions and helpers",
            },
        ],
    }


def _analyze_relationships(params: dict) -> dict:
    return {
        "totalRelationships": 10,
        "relationshipTypes": {"imports": 5, "exports": 3, "dependencies": 2},
        "mostCommonRelationships": [
            {"source": "app.ts", "target": "service.ts", "type": "imports"},
            {"source": "service.ts", "target": "utils.ts", "type": "imports"},
        ],
    }


def _find_patterns(params: dict) -> dict:
    return {
        "totalPatterns": 5,
        "patterns": [
            {
                "name": "cyclic_dependency",
                "description": "A dependency cycle found in the graph",
                "files": ["app.ts", "service.ts", "utils.ts"],
            },
            {
                "name": "large_file",
                "description": "A file with excessive complexity",
                "file": "app.ts",
            },
        ],
    }


DEFAULT_SIMULATIONS: dict[str, dict[str, Generator]] = {
    "git-analytics": {
        "analyze_repository": _analyze_repository,
        "commit_patterns": _commit_patterns,
        "branch_insights": _branch_insights,
    },
    "code-quality": {
        "analyze_complexity": _analyze_complexity,
        "detect_tech_debt": _detect_tech_debt,
        "suggest_refactoring": _suggest_refactoring,
    },
    "knowledge-graph": {
        "build_knowledge_graph": _build_knowledge_graph,
        "query_knowledge": _query_knowledge,
        "analyze_relationships": _analyze_relationships,
        "find_patterns": _find_patterns,
    },
}


class SimulatedResponses:
    """Per-server, per-tool table of canned response generators."""

    def __init__(self, table: dict[str, dict[str, Generator]] | None = None):
        source = DEFAULT_SIMULATIONS if table is None else table
        self._table = {server: dict(tools) for server, tools in source.items()}

    def register(self, server: str, tool: str, generator: Generator) -> None:
        self._table.setdefault(server, {})[tool] = generator

    def has(self, server: str, tool: str) -> bool:
        return tool in self._table.get(server, {})

    def generate(self, server: str, tool: str, params: dict[str, Any]) -> Any:
        """
        Raises:
            FallbackExhausted: no generator for this server/tool pair.
        """
        generator = self._table.get(server, {}).get(tool)
        if generator is None:
            raise FallbackExhausted(server, tool)
        return generator(params or {})
