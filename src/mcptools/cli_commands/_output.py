"""Shared CLI output formatters."""

from __future__ import annotations

import json
from typing import Any

from mcp import types  # noqa: TC002
from rich.console import Console
from rich.table import Table

from mcptools.protocol.codec import result_text

console = Console()
# ``serve`` may own stdout for the stdio transport
err_console = Console(stderr=True)


def print_tools_table(server_name: str, tools: list[types.Tool]) -> None:
    """Pretty-print tool descriptors as a table."""
    table = Table(title=f"{server_name} tools")
    table.add_column("Name", style="cyan")
    table.add_column("Arguments")
    table.add_column("Description")

    for tool in tools:
        required = set(tool.inputSchema.get("required", []))
        args = [
            name if name in required else f"[dim]{name}?[/dim]"
            for name in tool.inputSchema.get("properties", {})
        ]
        table.add_row(tool.name, ", ".join(args) or "-", _truncate(tool.description or ""))

    console.print(table)


def print_tools_json(tools: list[types.Tool]) -> None:
    wire = [tool.model_dump(by_alias=True, exclude_none=True) for tool in tools]
    console.print_json(json.dumps(wire))


def print_call_result(result: types.CallToolResult) -> None:
    """Print a tool result envelope, flagging dispatch failures."""
    if result.isError:
        console.print("[red]Tool call failed:[/red]")
    payload: Any = result_text(result)
    try:
        console.print_json(payload)
    except json.JSONDecodeError:
        console.print(payload)


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
