"""Shared fixtures."""

from __future__ import annotations

import json
from typing import Any

import pytest
from mcp import types

from mcptools.config import Settings
from mcptools.protocol.session import ProtocolSession
from mcptools.server import build_session


@pytest.fixture
def make_settings(monkeypatch: pytest.MonkeyPatch):
    """Build :class:`Settings` from keyword overrides, ignoring the environment."""
    for name in (
        "MCP_TRANSPORT",
        "TRANSPORT",
        "HTTP_HOST",
        "PORT",
        "HTTP_PORT",
        "HTTP_PATH",
        "ALLOWED_ORIGINS",
        "ALLOWED_HOSTS",
        "ENABLE_DNS_REBINDING_PROTECTION",
        "HTTP_JSON_RESPONSE",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

    def _make(**overrides: Any) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make


@pytest.fixture
def call_tool():
    """Call a tool on a fresh session for *domain* and decode its envelope.

    Returns ``(envelope, call_result)``.
    """
    sessions: dict[str, ProtocolSession] = {}

    def _call(domain: str, name: str, arguments: dict[str, Any] | None) -> tuple[dict[str, Any], Any]:
        if domain not in sessions:
            sessions[domain] = build_session(domain)
        result = sessions[domain].handle_call_tool(
            types.CallToolRequestParams(name=name, arguments=arguments)
        )
        return json.loads(result.content[0].text), result

    return _call
