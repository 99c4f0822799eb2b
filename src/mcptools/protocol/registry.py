"""ToolRegistry — the static name → (descriptor, handler) table of a server."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from typing import Any, Literal, NamedTuple

from mcp import types

from mcptools.protocol.errors import DuplicateToolError, RegistryFrozenError
from mcptools.protocol.models import ToolResult

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], ToolResult]


class _Lookup(enum.Enum):
    NOT_FOUND = "NOT_FOUND"


NOT_FOUND = _Lookup.NOT_FOUND
"""Returned by :meth:`ToolRegistry.resolve` for names that were never registered."""


class RegisteredTool(NamedTuple):
    descriptor: types.Tool
    handler: ToolHandler


class ToolRegistry:
    """Maintains an ordered name-to-handler map built once at startup.

    Usage::

        registry = ToolRegistry()
        registry.register(descriptor, handler)
        registry.freeze()

        registry.list()             # descriptors, registration order
        registry.resolve("name")    # handler or NOT_FOUND

    After :meth:`freeze` the registry is read-only and safe for
    unsynchronized concurrent reads.
    """

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}
        self._frozen = False

    def register(self, descriptor: types.Tool, handler: ToolHandler) -> None:
        """Bind *handler* to ``descriptor.name``; fails fast on duplicates."""
        if self._frozen:
            raise RegistryFrozenError(descriptor.name)
        if descriptor.name in self._tools:
            raise DuplicateToolError(descriptor.name)
        self._tools[descriptor.name] = RegisteredTool(descriptor, handler)
        logger.debug("Registered tool: %s", descriptor.name)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def list(self) -> list[types.Tool]:
        """Return all descriptors in registration order."""
        return [entry.descriptor for entry in self._tools.values()]

    def resolve(self, name: str) -> ToolHandler | Literal[_Lookup.NOT_FOUND]:
        entry = self._tools.get(name)
        if entry is None:
            return NOT_FOUND
        return entry.handler

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
