"""mcptools — regex, math, string and date MCP tool servers."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from mcptools.server import ServerRunner as ServerRunner
    from mcptools.server import build_session as build_session

_SERVER_EXPORTS = {
    "ServerRunner": "mcptools.server",
    "build_session": "mcptools.server",
}


def __getattr__(name: str) -> object:
    module_path = _SERVER_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'mcptools' has no attribute {name!r}")
