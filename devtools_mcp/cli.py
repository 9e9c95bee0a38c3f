"""
Operator CLI for the analysis tool servers.

Usage:
    # List configured servers and their capabilities
    devtools-mcp servers

    # Describe the tools of one server
    devtools-mcp tools git-analytics

    # Start a server and run the handshake only
    devtools-mcp start git-analytics

    # Execute a tool (starts the server on demand)
    devtools-mcp exec git-analytics analyze_repository --params '{"repoPath": "."}'

Configuration comes from DEVTOOLS_MCP_* environment variables
(see devtools_mcp.config); --servers-file and --timeout override them.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys

from devtools_mcp.config import ClientConfig, FallbackMode
from devtools_mcp.manager import ToolServerManager

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devtools-mcp",
        description="Launch and query analysis tool servers over stdio JSON-RPC.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  devtools-mcp servers
  devtools-mcp tools code-quality
  devtools-mcp exec git-analytics commit_patterns --params '{"repoPath": ".", "days": 7}'
        """,
    )
    parser.add_argument("--servers-file", type=str, default=None, help="JSON file with server definitions")
    parser.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds")
    parser.add_argument(
        "--fallback",
        type=str,
        choices=[m.value for m in FallbackMode],
        default=None,
        help="Behaviour when the live call fails",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("servers", help="List configured servers")

    tools = sub.add_parser("tools", help="List the tools of a server")
    tools.add_argument("server")

    start = sub.add_parser("start", help="Start a server and perform the handshake")
    start.add_argument("server")

    run = sub.add_parser("exec", help="Execute a tool")
    run.add_argument("server")
    run.add_argument("tool")
    run.add_argument("--params", type=str, default="{}", help="Tool arguments as a JSON object")
    return parser


def _config_from_args(args: argparse.Namespace) -> ClientConfig:
    config = ClientConfig.from_env()
    overrides = {}
    if args.servers_file:
        overrides["servers_file"] = args.servers_file
    if args.timeout is not None:
        overrides["request_timeout"] = args.timeout
    if args.fallback:
        overrides["fallback_mode"] = FallbackMode(args.fallback)
    return dataclasses.replace(config, **overrides)


async def run(args: argparse.Namespace) -> int:
    manager = ToolServerManager.from_config(_config_from_args(args))

    async with manager:
        if args.command == "servers":
            for spec in manager.list_servers():
                print(f"  {spec.name:<20} {spec.status.value:<8} {', '.join(sorted(spec.capabilities))}")
            return 0

        if args.command == "tools":
            if args.server not in manager.registry:
                print(f"Error: Server {args.server} not found", file=sys.stderr)
                return 2
            for tool in await manager.list_tools(args.server):
                print(f"  {tool['name']:<25} {tool.get('description', '')}")
            return 0

        if args.command == "start":
            started = await manager.start_server(args.server)
            status = manager.server_status(args.server)
            print(f"{args.server}: {status.value if status else 'not found'}")
            return 0 if started else 1

        try:
            params = json.loads(args.params)
        except json.JSONDecodeError as e:
            print(f"Error: --params is not valid JSON: {e}", file=sys.stderr)
            return 2
        if not isinstance(params, dict):
            print("Error: --params must be a JSON object", file=sys.stderr)
            return 2

        result = await manager.execute_tool(args.server, args.tool, params)
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nShutting down MCP servers...", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
