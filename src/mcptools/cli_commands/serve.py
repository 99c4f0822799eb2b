"""``mcptools serve`` — run one tool server over stdio and/or HTTP."""

from __future__ import annotations

import sys
from typing import Any

import click
from pydantic import ValidationError

from mcptools.cli_commands._output import err_console
from mcptools.tools import TOOLSETS


@click.command()
@click.argument("domain", type=click.Choice(list(TOOLSETS)))
@click.option(
    "--transport",
    type=click.Choice(["stdio", "http", "both"]),
    default=None,
    help="Transports to serve (default: MCP_TRANSPORT or both).",
)
@click.option("--host", default=None, help="HTTP bind address.")
@click.option("--port", type=int, default=None, help="HTTP port (default: per-domain port).")
@click.option("--path", "http_path", default=None, help="HTTP endpoint path.")
@click.option("--log-level", default=None, help="Log level for stderr output.")
@click.option("--telemetry", is_flag=True, help="Export OpenTelemetry spans to stderr.")
@click.option("--otlp-endpoint", default=None, help="Also export spans via OTLP/gRPC.")
def serve(
    domain: str,
    transport: str | None,
    host: str | None,
    port: int | None,
    http_path: str | None,
    log_level: str | None,
    telemetry: bool,
    otlp_endpoint: str | None,
) -> None:
    """Serve the DOMAIN tool set (regex, math, string or date)."""
    from mcptools.config import Settings, get_settings
    from mcptools.server import build_session, serve_session
    from mcptools.utils.log import configure_logging

    overrides: dict[str, Any] = {
        key: value
        for key, value in {
            "transport": transport,
            "http_host": host,
            "http_port": port,
            "http_path": http_path,
            "log_level": log_level,
        }.items()
        if value is not None
    }

    try:
        settings = get_settings()
        if overrides:
            settings = Settings(**{**settings.model_dump(), **overrides})
        configure_logging(settings.log_level, console=err_console)
    except (ValidationError, ValueError) as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)

    toolset = TOOLSETS[domain]
    if telemetry or otlp_endpoint:
        from mcptools.utils.telemetry import configure_telemetry

        try:
            configure_telemetry(
                service_name=toolset.server_name,
                export_to_console=telemetry,
                otlp_endpoint=otlp_endpoint,
            )
        except ImportError as exc:
            err_console.print(f"[red]Telemetry error:[/red] {exc}")
            sys.exit(1)

    try:
        session = build_session(toolset)
    except Exception as exc:
        err_console.print(f"[red]Startup error:[/red] {exc}")
        sys.exit(1)

    sys.exit(serve_session(session, settings, default_port=toolset.default_port))
