"""Tool function sets, one per server domain."""

from __future__ import annotations

from mcptools.tools.base import ToolArgs, ToolDef, ToolsetSpec
from mcptools.tools.date_tools import date_toolset
from mcptools.tools.math_tools import math_toolset
from mcptools.tools.regex_tools import regex_toolset
from mcptools.tools.string_tools import string_toolset

TOOLSETS: dict[str, ToolsetSpec] = {
    toolset.domain: toolset
    for toolset in (regex_toolset, math_toolset, string_toolset, date_toolset)
}


def get_toolset(domain: str) -> ToolsetSpec:
    """Look up a toolset by domain name (``regex``, ``math``, ``string``, ``date``)."""
    try:
        return TOOLSETS[domain]
    except KeyError:
        msg = f"Unknown tool domain: {domain!r} (expected one of {', '.join(TOOLSETS)})"
        raise KeyError(msg) from None


__all__ = ["TOOLSETS", "ToolArgs", "ToolDef", "ToolsetSpec", "get_toolset"]
