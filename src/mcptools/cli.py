"""mcptools CLI entrypoint."""

from __future__ import annotations

import click

from mcptools import __version__


@click.group()
@click.version_option(version=__version__, prog_name="mcptools")
def main() -> None:
    """mcptools — regex, math, string and date MCP tool servers."""


# Register subcommands
from mcptools.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
