"""EnvelopeCodec — between native :class:`ToolResult` values and ``tools/call`` results.

``encode`` never fails: anything a tool returns is rendered into the single
text content part as pretty-printed JSON.  ``isError`` is *not* derived from
``success``; it is set only when the caller reports that dispatch itself
failed (missing arguments, unknown tool, handler fault).
"""

from __future__ import annotations

import enum
import json
import math
from datetime import date, datetime
from typing import Any, Literal

from mcp import types

from mcptools.protocol.models import ToolResult


class _Decoded(enum.Enum):
    MISSING_ARGUMENTS = "MISSING_ARGUMENTS"


MISSING_ARGUMENTS = _Decoded.MISSING_ARGUMENTS


class EnvelopeCodec:
    def __init__(self, indent: int = 2) -> None:
        self._indent = indent

    def encode(self, result: ToolResult, *, is_error: bool = False) -> types.CallToolResult:
        """Wrap *result* as ``{content: [{type: "text", text: <json>}]}``."""
        text = json.dumps(
            _finite(result.to_payload()),
            indent=self._indent,
            ensure_ascii=False,
            default=_json_default,
        )
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=text)], isError=is_error
        )

    def decode(
        self, raw_arguments: dict[str, Any] | None
    ) -> dict[str, Any] | Literal[_Decoded.MISSING_ARGUMENTS]:
        """Check that arguments were supplied at all; no per-field validation."""
        if raw_arguments is None:
            return MISSING_ARGUMENTS
        return raw_arguments


def result_text(result: types.CallToolResult) -> str:
    """Concatenated text of all text content parts."""
    return "".join(part.text for part in result.content if isinstance(part, types.TextContent))


def _finite(value: Any) -> Any:
    """Replace NaN/Infinity with ``None`` (JSON has no literal for them)."""
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {key: _finite(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(item) for item in value]
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return str(value)
