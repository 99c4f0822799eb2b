"""Tool result envelope shared by every tool handler.

Wire-level MCP types (tool descriptors, ``tools/call`` params and
results) come from :mod:`mcp.types`; only the ``{success, result|error,
metadata}`` payload that travels inside the text content part is
defined here.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class ToolResult(BaseModel):
    """The uniform ``{success, result|error, metadata}`` envelope every tool returns."""

    model_config = ConfigDict(frozen=True)

    success: bool
    result: Any = None
    error: str | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def ok(cls, result: Any, metadata: dict[str, Any] | None = None) -> ToolResult:
        return cls(success=True, result=result, metadata=metadata)

    @classmethod
    def fail(cls, error: str, metadata: dict[str, Any] | None = None) -> ToolResult:
        return cls(success=False, error=error, metadata=metadata)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON shape, omitting the fields that do not apply."""
        payload: dict[str, Any] = {"success": self.success}
        if self.success or self.result is not None:
            payload["result"] = self.result
        if self.error is not None:
            payload["error"] = self.error
        if self.metadata is not None:
            payload["metadata"] = self.metadata
        return payload
