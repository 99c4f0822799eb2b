"""Tests for the streamable HTTP transport."""

from __future__ import annotations

import contextlib
import json
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER

from mcptools.protocol.errors import StartupError
from mcptools.server import build_session
from mcptools.transports.http import HttpServerTransport, create_app, security_settings

ACCEPT = "application/json, text/event-stream"
INITIALIZE = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "initialize",
    "params": {
        "protocolVersion": "2025-03-26",
        "capabilities": {},
        "clientInfo": {"name": "test-client", "version": "1.0"},
    },
}
INITIALIZED = {"jsonrpc": "2.0", "method": "notifications/initialized"}


def _headers(session_id: str | None = None, **extra: str) -> dict[str, str]:
    headers = {"Accept": ACCEPT, "Content-Type": "application/json"}
    if session_id is not None:
        headers[MCP_SESSION_ID_HEADER] = session_id
    headers.update(extra)
    return headers


def _rpc(method: str, request_id: int = 2, params: dict[str, Any] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def _open(client: TestClient, path: str = "/mcp") -> str:
    response = client.post(path, json=INITIALIZE, headers=_headers())
    assert response.status_code == 200
    session_id = response.headers[MCP_SESSION_ID_HEADER]
    ack = client.post(path, json=INITIALIZED, headers=_headers(session_id))
    assert ack.status_code == 202
    return session_id


@pytest.fixture
def make_client(make_settings):
    """Open a lifespan-managed client for a fresh app; JSON replies unless overridden."""
    stack = contextlib.ExitStack()

    def _make(domain: str = "string", **overrides: Any) -> TestClient:
        overrides.setdefault("allowed_hosts", "testserver")
        overrides.setdefault("http_json_response", True)
        base_url = overrides.pop("base_url", "http://testserver")
        app = create_app(build_session(domain), make_settings(**overrides))
        return stack.enter_context(TestClient(app, base_url=base_url))

    with stack:
        yield _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.text == "ok\n"


class TestSessionLifecycle:
    def test_initialize_issues_session_id(self, client: TestClient) -> None:
        response = client.post("/mcp", json=INITIALIZE, headers=_headers())

        body = response.json()
        assert response.headers[MCP_SESSION_ID_HEADER]
        assert body["result"]["serverInfo"] == {"name": "string-tools-server", "version": "1.0.0"}
        assert body["result"]["protocolVersion"] == "2025-03-26"
        assert "tools" in body["result"]["capabilities"]

    def test_follow_up_request_with_session(self, client: TestClient) -> None:
        session_id = _open(client)

        response = client.post("/mcp", json=_rpc("tools/list"), headers=_headers(session_id))

        assert response.status_code == 200
        names = [tool["name"] for tool in response.json()["result"]["tools"]]
        assert names == [
            "string_compare",
            "string_transform",
            "string_analyze",
            "string_diff",
            "string_validate",
        ]

    def test_tool_call(self, client: TestClient) -> None:
        session_id = _open(client)
        params = {"name": "string_analyze", "arguments": {"text": "hello world"}}

        response = client.post(
            "/mcp", json=_rpc("tools/call", params=params), headers=_headers(session_id)
        )

        result = response.json()["result"]
        assert not result.get("isError")
        assert json.loads(result["content"][0]["text"])["success"] is True

    def test_tool_call_without_arguments(self, client: TestClient) -> None:
        session_id = _open(client)
        message = _rpc("tools/call", params={"name": "string_analyze"})

        response = client.post("/mcp", json=message, headers=_headers(session_id))

        result = response.json()["result"]
        assert result["isError"] is True
        assert json.loads(result["content"][0]["text"])["error"] == "No arguments provided"

    def test_missing_session_id(self, client: TestClient) -> None:
        _open(client)

        response = client.post("/mcp", json=_rpc("tools/list"), headers=_headers())

        assert response.status_code == 400

    def test_unknown_session_id(self, client: TestClient) -> None:
        response = client.post("/mcp", json=_rpc("tools/list"), headers=_headers("nope"))

        assert response.status_code in (400, 404)

    def test_delete_ends_session(self, client: TestClient) -> None:
        session_id = _open(client)

        deleted = client.delete("/mcp", headers=_headers(session_id))
        follow_up = client.post("/mcp", json=_rpc("ping"), headers=_headers(session_id))

        assert deleted.status_code == 200
        assert follow_up.status_code in (400, 404)


class TestRequestChecks:
    def test_accept_must_allow_json(self, client: TestClient) -> None:
        response = client.post("/mcp", json=INITIALIZE, headers=_headers(Accept="text/plain"))

        assert response.status_code == 406

    def test_content_type_must_be_json(self, client: TestClient) -> None:
        response = client.post(
            "/mcp", content=b"{}", headers=_headers(**{"Content-Type": "text/plain"})
        )

        assert response.status_code in (400, 415)

    def test_unsupported_protocol_version(self, client: TestClient) -> None:
        session_id = _open(client)
        headers = _headers(session_id, **{"mcp-protocol-version": "1999-01-01"})

        response = client.post("/mcp", json=_rpc("tools/list"), headers=headers)

        assert response.status_code == 400

    def test_custom_path(self, make_client) -> None:
        client = make_client("math", http_path="rpc")

        assert client.post("/rpc", json=INITIALIZE, headers=_headers()).status_code == 200
        assert client.post("/mcp", json=INITIALIZE, headers=_headers()).status_code == 404


class TestHostGuard:
    def test_unlisted_host_rejected(self, make_client) -> None:
        client = make_client("math", allowed_hosts="127.0.0.1,localhost")

        response = client.post("/mcp", json=INITIALIZE, headers=_headers())

        assert response.status_code == 421
        assert "Invalid Host header" in response.text

    def test_listed_host_matches_any_port(self, make_client) -> None:
        client = make_client(
            "math", allowed_hosts="127.0.0.1,localhost", base_url="http://localhost:3002"
        )

        assert client.post("/mcp", json=INITIALIZE, headers=_headers()).status_code == 200

    def test_unlisted_origin_rejected(self, make_client) -> None:
        client = make_client("math", allowed_origins="http://good.example")

        bad = client.post("/mcp", json=INITIALIZE, headers=_headers(Origin="http://evil.example"))
        good = client.post("/mcp", json=INITIALIZE, headers=_headers(Origin="http://good.example"))

        assert bad.status_code == 403
        assert good.status_code == 200

    def test_any_origin(self, make_client) -> None:
        client = make_client("math", allowed_origins="*")

        response = client.post("/mcp", json=INITIALIZE, headers=_headers(Origin="http://any.example"))

        assert response.status_code == 200

    def test_protection_disabled(self, make_client) -> None:
        client = make_client(
            "math", allowed_hosts="127.0.0.1", enable_dns_rebinding_protection=False
        )

        assert client.post("/mcp", json=INITIALIZE, headers=_headers()).status_code == 200

    def test_health_is_not_guarded(self, make_client) -> None:
        client = make_client("math", allowed_hosts="127.0.0.1,localhost")

        assert client.get("/health").status_code == 200


class TestSecuritySettings:
    def test_hosts_without_port_match_any_port(self, make_settings) -> None:
        settings = make_settings(allowed_hosts="localhost,[::1],api.example:8443")

        security = security_settings(settings)

        assert security.enable_dns_rebinding_protection
        assert security.allowed_hosts == [
            "localhost",
            "localhost:*",
            "[::1]",
            "[::1]:*",
            "api.example:8443",
        ]

    def test_origins(self, make_settings) -> None:
        listed = security_settings(make_settings(allowed_origins="http://a.example"))
        wildcard = security_settings(make_settings(allowed_origins="*"))

        assert listed.allowed_origins == ["http://a.example"]
        assert wildcard.allowed_origins == []

    def test_protection_flag(self, make_settings) -> None:
        settings = make_settings(enable_dns_rebinding_protection=False)

        assert security_settings(settings).enable_dns_rebinding_protection is False


class TestHttpServerTransport:
    async def test_start_serves_and_stops(self, make_settings) -> None:
        settings = make_settings(http_host="127.0.0.1")
        transport = HttpServerTransport(build_session("regex"), settings, port=0)

        await transport.start()
        try:
            assert transport.port != 0
            assert transport.url == f"http://127.0.0.1:{transport.port}/mcp"
            async with httpx.AsyncClient() as http:
                response = await http.get(f"http://127.0.0.1:{transport.port}/health")
            assert response.text == "ok\n"
        finally:
            await transport.stop()

    async def test_initialize_over_event_stream(self, make_settings) -> None:
        settings = make_settings(http_host="127.0.0.1")
        transport = HttpServerTransport(build_session("regex"), settings, port=0)

        await transport.start()
        try:
            async with httpx.AsyncClient(timeout=10) as http:
                response = await http.post(transport.url, json=INITIALIZE, headers=_headers())
        finally:
            await transport.stop()

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers[MCP_SESSION_ID_HEADER]
        [data] = [line[5:] for line in response.text.splitlines() if line.startswith("data:")]
        assert json.loads(data)["result"]["serverInfo"]["name"] == "regex-tools-server"

    async def test_port_in_use_raises_startup_error(self, make_settings) -> None:
        settings = make_settings(http_host="127.0.0.1")
        first = HttpServerTransport(build_session("regex"), settings, port=0)
        await first.start()
        try:
            second = HttpServerTransport(build_session("regex"), settings, port=first.port)
            with pytest.raises(StartupError, match="Cannot listen"):
                await second.start()
        finally:
            await first.stop()

    async def test_stop_without_start(self, make_settings) -> None:
        transport = HttpServerTransport(build_session("date"), make_settings(), port=0)

        await transport.stop()
