"""
Static catalog of the analysis tools and the servers that provide them.

Descriptions and input schemas are used to describe a server's tools when
the server itself is not running (or does not answer tools/list).
"""

from __future__ import annotations

import sys

from devtools_mcp.registry import ServerSpec

# ============================================================
# TOOL DESCRIPTIONS
# ============================================================

TOOL_DESCRIPTIONS = {
    "analyze_repository": "Analyze a git repository for basic statistics and insights",
    "commit_patterns": "Analyze commit patterns and frequency over time",
    "branch_insights": "Get insights about branches, merges, and collaboration patterns",
    "analyze_complexity": "Analyze code complexity metrics across a project",
    "detect_tech_debt": "Detect technical debt patterns and code smells",
    "suggest_refactoring": "Analyze a specific file and suggest refactoring opportunities",
    "build_knowledge_graph": "Build a comprehensive knowledge graph from project code and git history",
    "query_knowledge": "Query the knowledge graph using natural language",
    "analyze_relationships": "Analyze relationships between different entities in the knowledge graph",
    "find_patterns": "Find patterns and insights in the knowledge graph",
}


def _object(properties: dict, required: list[str]) -> dict:
    return {"type": "object", "properties": properties, "required": required}


_REPO_PATH = {"type": "string", "description": "Path to the git repository"}
_PROJECT_PATH = {"type": "string", "description": "Path to the project directory"}

TOOL_SCHEMAS = {
    "analyze_repository": _object({"repoPath": _REPO_PATH}, ["repoPath"]),
    "commit_patterns": _object({
        "repoPath": _REPO_PATH,
        "days": {"type": "number", "description": "Number of days to analyze", "default": 30},
    }, ["repoPath"]),
    "branch_insights": _object({"repoPath": _REPO_PATH}, ["repoPath"]),
    "analyze_complexity": _object({
        "projectPath": _PROJECT_PATH,
        "extensions": {
            "type": "array",
            "items": {"type": "string"},
            "description": "File extensions to analyze",
            "default": [".js", ".ts", ".jsx", ".tsx"],
        },
    }, ["projectPath"]),
    "detect_tech_debt": _object({
        "projectPath": _PROJECT_PATH,
        "threshold": {
            "type": "number",
            "description": "Complexity threshold for tech debt detection",
            "default": 10,
        },
    }, ["projectPath"]),
    "suggest_refactoring": _object({
        "filePath": {"type": "string", "description": "Path to the specific file to analyze"},
    }, ["filePath"]),
    "build_knowledge_graph": _object({
        "projectPath": _PROJECT_PATH,
        "includeGit": {"type": "boolean", "description": "Include git history analysis", "default": True},
        "includeCode": {"type": "boolean", "description": "Include code structure analysis", "default": True},
    }, ["projectPath"]),
    "query_knowledge": _object({
        "query": {"type": "string", "description": "Natural language query about the codebase"},
        "context": {"type": "string", "description": "Additional context for the query"},
    }, ["query"]),
    "analyze_relationships": _object({
        "entityType": {
            "type": "string",
            "enum": ["files", "functions", "developers", "commits"],
            "description": "Type of entity to analyze",
        },
        "depth": {"type": "number", "description": "Depth of relationship analysis", "default": 2},
    }, ["entityType"]),
    "find_patterns": _object({
        "patternType": {
            "type": "string",
            "enum": ["coupling", "hotspots", "knowledge-silos", "change-patterns"],
            "description": "Type of pattern to find",
        },
        "timeRange": {"type": "number", "description": "Time range in days for analysis", "default": 90},
    }, ["patternType"]),
}


def describe_tool(name: str) -> dict:
    """Tool descriptor in tools/list shape, built from the static catalog."""
    return {
        "name": name,
        "description": TOOL_DESCRIPTIONS.get(name, "Unknown tool"),
        "inputSchema": TOOL_SCHEMAS.get(name, {}),
    }


# ============================================================
# DEFAULT SERVERS
# ============================================================
# git-analytics ships with this package. The other two are external Node
# servers; when they are missing, execute_tool() falls back to simulation.

def default_server_specs() -> list[ServerSpec]:
    return [
        ServerSpec(
            name="git-analytics",
            command=sys.executable,
            args=["-m", "devtools_mcp.servers.git_analytics"],
            capabilities=frozenset({"analyze_repository", "commit_patterns", "branch_insights"}),
        ),
        ServerSpec(
            name="code-quality",
            command="node",
            args=["dist/index.js"],
            cwd="mcp-servers/code-quality",
            capabilities=frozenset({"analyze_complexity", "detect_tech_debt", "suggest_refactoring"}),
        ),
        ServerSpec(
            name="knowledge-graph",
            command="node",
            args=["dist/index.js"],
            cwd="mcp-servers/knowledge-graph",
            capabilities=frozenset({
                "build_knowledge_graph",
                "query_knowledge",
                "analyze_relationships",
                "find_patterns",
            }),
        ),
    ]
