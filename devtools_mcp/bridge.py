"""
Bridge between the tool-server manager and LangChain.

Each declared capability becomes a LangChain StructuredTool whose
coroutine runs ToolServerManager.execute_tool(), so agents get the same
start-on-demand and fallback behaviour as every other caller.

Usage:
    from devtools_mcp.bridge import langchain_tools

    tools = await langchain_tools(manager)
    agent = create_agent(model, tools=tools)
"""

from __future__ import annotations

import json
from typing import Any

from langchain_core.tools import StructuredTool

from devtools_mcp.manager import ToolServerManager


def mcp_to_langchain_tool(
    manager: ToolServerManager,
    server_name: str,
    tool_schema: dict,
    description_override: str | None = None,
) -> StructuredTool:
    """
    Create a LangChain StructuredTool that proxies one server tool.

    Args:
        manager: The ToolServerManager owning the server
        server_name: Which server the tool lives on
        tool_schema: Descriptor as returned by manager.list_tools()
        description_override: Optional override for the tool description

    Returns:
        A StructuredTool returning the ExecutionResult as JSON text.
    """
    tool_name = tool_schema["name"]
    description = (
        description_override
        or tool_schema.get("description")
        or f"MCP tool: {server_name}/{tool_name}"
    )

    async def _call_mcp(**kwargs: Any) -> str:
        """Proxy call to the MCP tool server."""
        result = await manager.execute_tool(server_name, tool_name, kwargs)
        return json.dumps(result.to_dict(), indent=2, default=str)

    return StructuredTool.from_function(
        coroutine=_call_mcp,
        name=tool_name,
        description=description,
        args_schema=tool_schema.get("inputSchema") or {"type": "object", "properties": {}},
    )


async def langchain_tools(
    manager: ToolServerManager,
    servers: list[str] | None = None,
) -> list[StructuredTool]:
    """
    Wrap every declared tool of the given servers (default: all registered).

    Descriptors come from manager.list_tools(), so no server is started
    just to build the wrappers.
    """
    names = servers if servers is not None else [s.name for s in manager.list_servers()]
    tools = []
    for server_name in names:
        spec = manager.registry.get(server_name)
        for schema in await manager.list_tools(server_name):
            if spec.supports(schema.get("name", "")):
                tools.append(mcp_to_langchain_tool(manager, server_name, schema))
    return tools
