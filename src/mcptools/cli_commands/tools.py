"""``mcptools tools`` — list and call tools without starting a server."""

from __future__ import annotations

import json
import sys

import click

from mcptools.cli_commands._output import (
    console,
    print_call_result,
    print_tools_json,
    print_tools_table,
)
from mcptools.tools import TOOLSETS

_DOMAINS = click.Choice(list(TOOLSETS))


@click.group()
def tools() -> None:
    """List and call tools."""


@tools.command("list")
@click.argument("domain", type=_DOMAINS)
@click.option("--json", "as_json", is_flag=True, help="Print descriptors as JSON.")
def list_tools(domain: str, as_json: bool) -> None:
    """List the tools of the DOMAIN server."""
    from mcptools.server import build_session

    session = build_session(domain)
    descriptors = session.handle_list_tools()
    if as_json:
        print_tools_json(descriptors)
        return
    print_tools_table(session.server_info.name, descriptors)


@tools.command("call")
@click.argument("domain", type=_DOMAINS)
@click.argument("name")
@click.option("--args", "raw_args", default="{}", help="Tool arguments as a JSON object.")
def call_tool(domain: str, name: str, raw_args: str) -> None:
    """Call tool NAME of the DOMAIN server once and print its result."""
    from mcp import types

    from mcptools.server import build_session

    try:
        arguments = json.loads(raw_args)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid --args JSON:[/red] {exc}")
        sys.exit(2)
    if not isinstance(arguments, dict):
        console.print("[red]Invalid --args JSON:[/red] expected an object")
        sys.exit(2)

    session = build_session(domain)
    result = session.handle_call_tool(types.CallToolRequestParams(name=name, arguments=arguments))
    print_call_result(result)
    if result.isError:
        sys.exit(1)
