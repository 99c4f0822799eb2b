"""Tests for ProtocolSession."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, call, patch

import pytest
from mcp import types
from mcp.shared.memory import create_connected_server_and_client_session

from mcptools.protocol.errors import SessionClosedError
from mcptools.protocol.models import ToolResult
from mcptools.protocol.registry import ToolRegistry
from mcptools.protocol.session import ProtocolSession, SessionState
from mcptools.utils.telemetry import (
    ATTR_SERVER_NAME,
    ATTR_SERVER_VERSION,
    ATTR_TOOL_IS_ERROR,
    ATTR_TOOL_NAME,
    ATTR_TOOL_SUCCESS,
)

_OBJECT = {"type": "object", "properties": {}}


def _echo(arguments: dict) -> ToolResult:
    return ToolResult.ok(arguments)


def _explode(arguments: dict) -> ToolResult:
    msg = "boom"
    raise RuntimeError(msg)


def _reject(arguments: dict) -> ToolResult:
    return ToolResult.fail("rejected")


def _raw_dict(arguments: dict) -> dict:
    return {"success": True, "result": "plain dict"}


@pytest.fixture
def session() -> ProtocolSession:
    registry = ToolRegistry()
    registry.register(
        types.Tool(name="echo", description="Echo arguments", inputSchema=_OBJECT), _echo
    )
    registry.register(types.Tool(name="explode", inputSchema=_OBJECT), _explode)
    registry.register(types.Tool(name="reject", inputSchema=_OBJECT), _reject)
    registry.register(types.Tool(name="raw", inputSchema=_OBJECT), _raw_dict)
    info = types.Implementation(name="test-server", version="9.9.9")
    return ProtocolSession(registry, info, instructions="Echo things back.")


def _call(session: ProtocolSession, name: str, arguments: dict | None = None) -> types.CallToolResult:
    return session.handle_call_tool(types.CallToolRequestParams(name=name, arguments=arguments))


class TestConstruction:
    def test_freezes_registry(self, session: ProtocolSession) -> None:
        assert session.registry.frozen
        assert session.state is SessionState.READY
        assert not session.closed

    def test_sdk_server_carries_identity(self, session: ProtocolSession) -> None:
        assert session.server.name == "test-server"
        assert session.server.version == "9.9.9"
        assert session.server.instructions == "Echo things back."

    def test_tools_capability_is_advertised(self, session: ProtocolSession) -> None:
        options = session.server.create_initialization_options()

        assert options.capabilities.tools is not None


class TestHandleCallTool:
    def test_success_passes_through(self, session: ProtocolSession) -> None:
        result = _call(session, "echo", {"a": 1})

        assert result.isError is False
        assert json.loads(result.content[0].text) == {"success": True, "result": {"a": 1}}

    def test_missing_arguments(self, session: ProtocolSession) -> None:
        result = _call(session, "echo")

        assert result.isError is True
        assert json.loads(result.content[0].text)["error"] == "No arguments provided"

    def test_missing_arguments_checked_before_name(self, session: ProtocolSession) -> None:
        result = _call(session, "does_not_exist")
        assert json.loads(result.content[0].text)["error"] == "No arguments provided"

    def test_unknown_tool(self, session: ProtocolSession) -> None:
        result = _call(session, "nope", {})

        assert result.isError is True
        assert json.loads(result.content[0].text)["error"] == "Unknown tool: nope"

    def test_handler_fault_is_caught(self, session: ProtocolSession) -> None:
        result = _call(session, "explode", {})

        assert result.isError is True
        assert json.loads(result.content[0].text)["error"] == "Tool execution failed: boom"

    def test_domain_failure_is_not_dispatch_error(self, session: ProtocolSession) -> None:
        result = _call(session, "reject", {})

        assert result.isError is False
        assert json.loads(result.content[0].text) == {"success": False, "error": "rejected"}

    def test_plain_dict_results_are_coerced(self, session: ProtocolSession) -> None:
        result = _call(session, "raw", {})
        assert json.loads(result.content[0].text)["result"] == "plain dict"

    def test_span_records_server_and_outcome(self, session: ProtocolSession) -> None:
        with patch("mcptools.protocol.session._tracer") as tracer:
            _call(session, "nope", {})

        span = tracer.start_as_current_span.return_value.__enter__.return_value
        span.set_attribute.assert_has_calls(
            [
                call(ATTR_TOOL_NAME, "nope"),
                call(ATTR_SERVER_NAME, "test-server"),
                call(ATTR_SERVER_VERSION, "9.9.9"),
                call(ATTR_TOOL_SUCCESS, False),
                call(ATTR_TOOL_IS_ERROR, True),
            ]
        )

    def test_closed_session_raises(self, session: ProtocolSession) -> None:
        session.close()
        with pytest.raises(SessionClosedError, match="test-server"):
            _call(session, "echo", {})


class TestOverMcp:
    """The same dispatch rules, seen by an MCP client session."""

    async def test_list_tools(self, session: ProtocolSession) -> None:
        async with create_connected_server_and_client_session(session.server) as client:
            listed = await client.list_tools()

        assert [tool.name for tool in listed.tools] == ["echo", "explode", "reject", "raw"]
        assert listed.tools[0].description == "Echo arguments"

    async def test_call_tool(self, session: ProtocolSession) -> None:
        async with create_connected_server_and_client_session(session.server) as client:
            result = await client.call_tool("echo", {"x": "y"})

        assert not result.isError
        assert json.loads(result.content[0].text) == {"success": True, "result": {"x": "y"}}

    async def test_absent_arguments_reach_the_session(self, session: ProtocolSession) -> None:
        async with create_connected_server_and_client_session(session.server) as client:
            result = await client.call_tool("echo")

        assert result.isError is True
        assert json.loads(result.content[0].text)["error"] == "No arguments provided"

    async def test_arguments_are_not_schema_checked(self, session: ProtocolSession) -> None:
        async with create_connected_server_and_client_session(session.server) as client:
            result = await client.call_tool("reject", {"unexpected": [1, 2]})

        assert not result.isError
        assert json.loads(result.content[0].text)["success"] is False


class TestLifecycle:
    def test_close_is_idempotent(self, session: ProtocolSession) -> None:
        callback = MagicMock()
        session.on_close(callback)

        session.close(SessionState.CLOSED_BY_SIGNAL)
        session.close(SessionState.CLOSED_BY_REQUEST)

        assert session.state is SessionState.CLOSED_BY_SIGNAL
        callback.assert_called_once_with(SessionState.CLOSED_BY_SIGNAL)

    def test_close_requires_terminal_state(self, session: ProtocolSession) -> None:
        with pytest.raises(ValueError, match="terminal"):
            session.close(SessionState.READY)

    def test_failing_close_callback_is_reported(self, session: ProtocolSession) -> None:
        observer = MagicMock()
        session.on_error(observer)
        session.on_close(MagicMock(side_effect=OSError("handle gone")))

        session.close()

        assert session.closed
        (exc,), _ = observer.call_args
        assert isinstance(exc, OSError)

    def test_default_observer_logs(
        self, session: ProtocolSession, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level("ERROR"):
            session.report_transport_error(ConnectionResetError("peer left"))
        assert "[MCP Error] peer left" in caplog.text
