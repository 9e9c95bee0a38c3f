"""Tests for the tool-server side of the protocol."""
from __future__ import annotations

import io
import json

import pytest

from conftest import fake_spec
from devtools_mcp.process import ServerProcess
from devtools_mcp.server import (
    INTERNAL_ERROR,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    StdioToolServer,
    ToolHandler,
)


class EchoTool(ToolHandler):
    name = "echo"
    description = "Echoes back the input message."
    parameters = {"message": {"type": "string", "description": "The message to echo back"}}
    required = ["message"]

    def handle(self, params: dict) -> dict:
        message = params["message"]
        return {"echoed": message, "length": len(message)}


@pytest.fixture
def server() -> StdioToolServer:
    server = StdioToolServer("echo-server", version="2.0.0")
    server.register(EchoTool())
    return server


def request(method: str, params: dict | None = None, request_id: int = 1) -> str:
    return json.dumps({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}})


def test_initialize_reports_identity(server) -> None:
    response = server.handle_line(request("initialize", {"protocolVersion": "2024-11-05"}))
    assert response["result"]["serverInfo"] == {"name": "echo-server", "version": "2.0.0"}
    assert response["result"]["protocolVersion"] == "2024-11-05"


def test_initialize_defaults_to_the_client_protocol_version(server) -> None:
    response = server.handle_line(request("initialize"))
    assert response["result"]["protocolVersion"] == ServerProcess(fake_spec()).protocol_version


def test_tools_list_wraps_descriptors(server) -> None:
    result = server.handle_line(request("tools/list"))["result"]
    assert result["tools"] == [{
        "name": "echo",
        "description": "Echoes back the input message.",
        "inputSchema": {
            "type": "object",
            "properties": {"message": {"type": "string", "description": "The message to echo back"}},
            "required": ["message"],
        },
    }]


def test_tools_call_wraps_content(server) -> None:
    response = server.handle_line(request("tools/call", {"name": "echo", "arguments": {"message": "hey"}}, 7))
    assert response == {"jsonrpc": "2.0", "id": 7, "result": {"content": {"echoed": "hey", "length": 3}}}


def test_handler_failures_become_error_responses(server) -> None:
    unknown_tool = server.handle_line(request("tools/call", {"name": "nope"}))
    assert unknown_tool["error"]["code"] == INTERNAL_ERROR
    assert "Unknown tool" in unknown_tool["error"]["message"]

    bad_args = server.handle_line(request("tools/call", {"name": "echo", "arguments": {}}))
    assert bad_args["error"]["code"] == INTERNAL_ERROR

    unknown_method = server.handle_line(request("resources/list"))
    assert unknown_method["error"]["code"] == METHOD_NOT_FOUND


def test_parse_errors_and_notifications(server) -> None:
    assert server.handle_line("{not json")["error"]["code"] == PARSE_ERROR
    assert server.handle_line("[]")["error"]["code"] == PARSE_ERROR
    assert server.handle_line('{"jsonrpc":"2.0","method":"notifications/initialized"}') is None
    assert server.handle_line("   ") is None


def test_run_loop_writes_one_line_per_reply(server) -> None:
    stdin = io.StringIO("\n".join([
        request("ping", request_id=1),
        '{"jsonrpc":"2.0","method":"notifications/initialized"}',
        request("tools/call", {"name": "echo", "arguments": {"message": "x"}}, 2),
    ]) + "\n")
    stdout = io.StringIO()

    server.run(stdin=stdin, stdout=stdout)

    replies = [json.loads(line) for line in stdout.getvalue().splitlines()]
    assert [r["id"] for r in replies] == [1, 2]
    assert replies[0]["result"]["tools"] == ["echo"]


def test_handler_without_name_is_rejected() -> None:
    class Nameless(ToolHandler):
        def handle(self, params):
            return None

    with pytest.raises(ValueError):
        StdioToolServer().register(Nameless())
