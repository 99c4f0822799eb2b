"""Protocol layer — registry, envelope codec, and the MCP session."""

from mcptools.protocol.codec import MISSING_ARGUMENTS, EnvelopeCodec, result_text
from mcptools.protocol.errors import (
    DuplicateToolError,
    ProtocolError,
    RegistryError,
    RegistryFrozenError,
    SessionClosedError,
    StartupError,
    TransportError,
)
from mcptools.protocol.models import ToolResult
from mcptools.protocol.registry import NOT_FOUND, ToolHandler, ToolRegistry
from mcptools.protocol.session import ProtocolSession, SessionState

__all__ = [
    "MISSING_ARGUMENTS",
    "NOT_FOUND",
    "DuplicateToolError",
    "EnvelopeCodec",
    "ProtocolError",
    "ProtocolSession",
    "RegistryError",
    "RegistryFrozenError",
    "SessionClosedError",
    "SessionState",
    "StartupError",
    "ToolHandler",
    "ToolRegistry",
    "ToolResult",
    "TransportError",
    "result_text",
]
