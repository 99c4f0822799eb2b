"""stdio transport — newline-delimited JSON-RPC over stdin/stdout.

Framing and message parsing are done by :func:`mcp.server.stdio.stdio_server`;
this adapter owns the task that runs it and decides what end of input
means for the session.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TextIO

import anyio
from mcp.server.stdio import stdio_server

from mcptools.protocol.session import SessionState

if TYPE_CHECKING:
    from mcptools.protocol.session import ProtocolSession

logger = logging.getLogger(__name__)


class StdioServerTransport:
    """Serves a session over a pair of text streams.

    Defaults to the process stdin/stdout.  End of input closes the session
    with ``CLOSED_BY_REQUEST`` unless ``close_on_eof`` is false, which
    keeps it open for another transport.
    """

    name = "stdio"

    def __init__(
        self,
        session: ProtocolSession,
        *,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        close_on_eof: bool = True,
    ) -> None:
        self._session = session
        self._close_on_eof = close_on_eof
        self._stdin = stdin
        self._stdout = stdout
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._serve(), name="mcptools-stdio")
        logger.info("%s listening on stdio", self._session.server_info.name)

    async def wait_closed(self) -> None:
        """Block until input is exhausted or the transport is stopped."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def serve(self) -> None:
        """Start and run until end of input."""
        await self.start()
        await self.wait_closed()

    # ------------------------------------------------------------------

    async def _serve(self) -> None:
        stdin = anyio.wrap_file(self._stdin) if self._stdin is not None else None
        stdout = anyio.wrap_file(self._stdout) if self._stdout is not None else None
        try:
            async with stdio_server(stdin=stdin, stdout=stdout) as (read_stream, write_stream):
                async with write_stream:
                    await self._session.run(read_stream, write_stream)
        except Exception as exc:  # noqa: BLE001
            # broken pipe or closed stream
            self._session.report_transport_error(exc)

        logger.info("stdin closed")
        if self._close_on_eof:
            self._session.close(SessionState.CLOSED_BY_REQUEST)
