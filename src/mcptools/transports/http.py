"""Streamable HTTP transport — FastAPI app plus an embedded uvicorn server.

:func:`create_app` builds the ASGI application: ``GET /health`` and the
MCP endpoint (``/mcp`` by default), served by the SDK's
:class:`~mcp.server.streamable_http_manager.StreamableHTTPSessionManager`.
Session ids, content negotiation and the Host/Origin checks are the
manager's; the app's lifespan runs the manager.
:class:`HttpServerTransport` runs that app on the caller's event loop with
explicit ``start()`` / ``stop()``.

Usage::

    app = create_app(session, settings)

    transport = HttpServerTransport(session, settings, port=3002)
    await transport.start()
    ...
    await transport.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from collections.abc import AsyncIterator, Iterator
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from mcp.server.transport_security import TransportSecuritySettings

from mcptools.protocol.errors import StartupError

if TYPE_CHECKING:
    from starlette.types import Receive, Scope, Send

    from mcptools.config import Settings
    from mcptools.protocol.session import ProtocolSession

logger = logging.getLogger(__name__)

_MCP_METHODS = ["GET", "POST", "DELETE"]


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def security_settings(settings: Settings) -> TransportSecuritySettings:
    """Translate the allow-lists into the SDK's DNS rebinding settings.

    A host listed without a port also matches it on any port.  With
    ``ALLOWED_ORIGINS=*`` the origin list stays empty; :class:`McpEndpoint`
    then withholds the Origin header from the check.
    """
    hosts: list[str] = []
    for host in settings.host_list:
        hosts.append(host)
        if ":" not in host.rsplit("]", 1)[-1]:
            hosts.append(f"{host}:*")
    return TransportSecuritySettings(
        enable_dns_rebinding_protection=settings.enable_dns_rebinding_protection,
        allowed_hosts=hosts,
        allowed_origins=[] if settings.allows_any_origin else settings.origin_list,
    )


class McpEndpoint:
    """ASGI app that hands every request on the MCP path to the session manager."""

    def __init__(self, manager: StreamableHTTPSessionManager, *, any_origin: bool) -> None:
        self._manager = manager
        self._any_origin = any_origin

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self._any_origin:
            headers = [(key, value) for key, value in scope["headers"] if key != b"origin"]
            scope = {**scope, "headers": headers}
        await self._manager.handle_request(scope, receive, send)


def create_app(session: ProtocolSession, settings: Settings) -> FastAPI:
    """Build the ASGI app serving *session* on ``settings.http_path``.

    The session manager only accepts requests while the app's lifespan is
    running; use ``with TestClient(app)`` rather than a bare ``TestClient``.
    """
    manager = StreamableHTTPSessionManager(
        app=session.server,
        json_response=settings.http_json_response,
        stateless=False,
        security_settings=security_settings(settings),
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with manager.run():
            logger.debug("Streamable HTTP session manager started")
            yield
        logger.debug("Streamable HTTP session manager stopped")

    info = session.server_info
    app = FastAPI(
        title=info.name,
        version=info.version,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.session = session
    app.state.session_manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.allows_any_origin else settings.origin_list,
        allow_credentials=True,
        allow_methods=_MCP_METHODS,
        allow_headers=["Content-Type", "Accept", "Authorization", MCP_SESSION_ID_HEADER,
                       "mcp-protocol-version", "Last-Event-ID"],
        expose_headers=[MCP_SESSION_ID_HEADER],
    )

    @app.get("/health", response_class=PlainTextResponse)
    async def health() -> str:
        return "ok\n"

    app.add_route(
        settings.http_path, McpEndpoint(manager, any_origin=settings.allows_any_origin)
    )
    return app


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to its owner."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class HttpServerTransport:
    """Serves a session over streamable HTTP on ``host:port``.

    The listening socket is bound inside :meth:`start`, so an address that
    is already in use surfaces as :class:`StartupError` there rather than
    from a background task.
    """

    name = "http"

    def __init__(
        self,
        session: ProtocolSession,
        settings: Settings,
        *,
        port: int,
        host: str | None = None,
    ) -> None:
        self._session = session
        self._settings = settings
        self._host = host or settings.http_host
        self._port = port
        self._server: _EmbeddedServer | None = None
        self._task: asyncio.Task[None] | None = None
        self.app = create_app(session, settings)

    @property
    def port(self) -> int:
        """The bound port (resolved after :meth:`start` when ``0`` was asked for)."""
        return self._port

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}{self._settings.http_path}"

    async def start(self) -> None:
        if self._task is not None:
            return
        sock = self._bind()
        self._port = sock.getsockname()[1]
        config = uvicorn.Config(
            self.app,
            log_config=None,
            log_level=self._settings.log_level.lower(),
            lifespan="on",
            timeout_graceful_shutdown=5,
        )
        self._server = _EmbeddedServer(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]), name="mcptools-http")

        while not self._server.started:
            if self._task.done():
                exc = self._task.exception()
                self._task = None
                msg = f"HTTP server on {self._host}:{self._port} exited during startup"
                raise StartupError(msg) from exc
            await asyncio.sleep(0.01)
        logger.info("%s listening on %s", self._session.server_info.name, self.url)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or self._server is None:
            return
        self._server.should_exit = True
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("HTTP server on port %d stopped", self._port)

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self._host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self._host, self._port))
        except OSError as exc:
            sock.close()
            msg = f"Cannot listen on {self._host}:{self._port}: {exc.strerror or exc}"
            raise StartupError(msg) from exc
        sock.set_inheritable(True)
        return sock
