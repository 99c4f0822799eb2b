"""Process entrypoint — builds a server for one tool domain and runs it.

:func:`build_session` assembles registry, codec and session for a
toolset.  :class:`ServerRunner` owns the transports and the signal
handlers, and shuts down in a fixed order: the session is closed first,
then the HTTP server, then stdio.

Usage::

    settings = get_settings()
    runner = ServerRunner(build_session("math"), settings, default_port=3002)
    exit_code = asyncio.run(runner.run())
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING, TextIO

from mcp import types

from mcptools.protocol.errors import StartupError
from mcptools.protocol.registry import ToolRegistry
from mcptools.protocol.session import ProtocolSession, SessionState
from mcptools.tools import ToolsetSpec, get_toolset
from mcptools.transports.http import HttpServerTransport
from mcptools.transports.stdio import StdioServerTransport
from mcptools.utils.telemetry import ATTR_SERVER_NAME, ATTR_TRANSPORT, get_tracer

if TYPE_CHECKING:
    from mcptools.config import Settings
    from mcptools.transports.base import ServerTransport

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

EXIT_OK = 0
EXIT_STARTUP_FAILURE = 1


def build_session(
    toolset: ToolsetSpec | str, *, instructions: str | None = None
) -> ProtocolSession:
    """Register every tool of *toolset* and wrap the frozen registry in a session.

    Raises
    ------
    KeyError
        If *toolset* is a domain name that does not exist.
    DuplicateToolError
        If the toolset declares the same tool name twice.
    """
    if isinstance(toolset, str):
        toolset = get_toolset(toolset)
    registry = ToolRegistry()
    toolset.register(registry)
    info = types.Implementation(name=toolset.server_name, version=toolset.version)
    logger.debug("Built %s with %d tools", info.name, len(registry))
    return ProtocolSession(registry, info, instructions=instructions)


class ServerRunner:
    """Lifecycle owner for one server process.

    Starts the transports enabled in *settings* against one shared
    session and waits until the session is closed, either by a signal
    (``SIGINT`` / ``SIGTERM``), by :meth:`request_stop`, or by stdin
    reaching end of file when stdio is the only transport.
    """

    def __init__(
        self,
        session: ProtocolSession,
        settings: Settings,
        *,
        default_port: int,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self._session = session
        self._settings = settings
        self._stopped = asyncio.Event()
        self._transports: list[ServerTransport] = []

        if settings.http_enabled:
            self._transports.append(
                HttpServerTransport(session, settings, port=settings.http_port or default_port)
            )
        if settings.stdio_enabled:
            self._transports.append(
                StdioServerTransport(
                    session,
                    stdin=stdin,
                    stdout=stdout,
                    close_on_eof=not settings.http_enabled,
                )
            )
        session.on_close(lambda _reason: self._stopped.set())

    @property
    def session(self) -> ProtocolSession:
        return self._session

    @property
    def transports(self) -> list[ServerTransport]:
        return list(self._transports)

    async def start(self) -> None:
        """Start every transport, HTTP first so a busy port fails fast.

        Raises
        ------
        StartupError
            If a transport cannot start; already started ones are stopped.
        """
        started: list[ServerTransport] = []
        for transport in self._transports:
            with _tracer.start_as_current_span("mcptools.transport.start") as span:
                span.set_attribute(ATTR_SERVER_NAME, self._session.server_info.name)
                span.set_attribute(ATTR_TRANSPORT, transport.name)
                try:
                    await transport.start()
                except StartupError:
                    for running in reversed(started):
                        await running.stop()
                    raise
            started.append(transport)

    def request_stop(self, reason: SessionState = SessionState.CLOSED_BY_SIGNAL) -> None:
        """Close the session; :meth:`run` then finishes the shutdown."""
        self._session.close(reason)
        self._stopped.set()

    async def stop(self, reason: SessionState = SessionState.CLOSED_BY_SIGNAL) -> None:
        """Close the session, then stop the transports in start order."""
        self._session.close(reason)
        for transport in self._transports:
            await transport.stop()

    async def run(self) -> int:
        """Serve until stopped; returns the process exit code."""
        try:
            await self.start()
        except StartupError as exc:
            logger.error("Startup failed: %s", exc)
            return EXIT_STARTUP_FAILURE

        installed = self._install_signal_handlers()
        try:
            await self._stopped.wait()
        finally:
            self._remove_signal_handlers(installed)
            await self.stop()
        logger.info("%s shut down (%s)", self._session.server_info.name, self._session.state.value)
        return EXIT_OK

    # ------------------------------------------------------------------

    def _install_signal_handlers(self) -> list[signal.Signals]:
        loop = asyncio.get_running_loop()
        installed: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("Cannot install handler for %s", sig.name)
                continue
            installed.append(sig)
        return installed

    def _remove_signal_handlers(self, installed: list[signal.Signals]) -> None:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down", sig.name)
        self.request_stop(SessionState.CLOSED_BY_SIGNAL)


def serve_session(session: ProtocolSession, settings: Settings, *, default_port: int) -> int:
    """Blocking helper used by the CLI: run *session* and return an exit code."""
    runner = ServerRunner(session, settings, default_port=default_port)
    return asyncio.run(runner.run())
