"""ProtocolSession — the transport-agnostic MCP dispatcher.

One session answers every tool call for a server process, whichever
transport delivered it.  JSON-RPC framing, ``initialize`` and ``ping``
belong to the low-level :class:`mcp.server.lowlevel.Server` the session
owns; the session only supplies the ``tools/list`` and ``tools/call``
handlers.  Constructing a session performs no I/O; the registry it is
given is frozen on the spot.

Usage::

    info = types.Implementation(name="math-tools-server", version="1.0.0")
    session = ProtocolSession(registry, info)

    session.handle_list_tools()
    session.handle_call_tool(types.CallToolRequestParams(name="math_calculate", arguments={...}))

    # transports hand the SDK server to stdio_server / StreamableHTTPSessionManager
    await session.run(read_stream, write_stream)
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from mcp import types
from mcp.server.lowlevel import Server

from mcptools.protocol.codec import MISSING_ARGUMENTS, EnvelopeCodec
from mcptools.protocol.errors import SessionClosedError
from mcptools.protocol.models import ToolResult
from mcptools.protocol.registry import NOT_FOUND, ToolRegistry
from mcptools.utils.telemetry import (
    ATTR_SERVER_NAME,
    ATTR_SERVER_VERSION,
    ATTR_TOOL_IS_ERROR,
    ATTR_TOOL_NAME,
    ATTR_TOOL_SUCCESS,
    get_tracer,
)

if TYPE_CHECKING:
    from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
    from mcp.shared.message import SessionMessage

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

ErrorObserver = Callable[[BaseException], None]
CloseCallback = Callable[["SessionState"], None]


class SessionState(enum.Enum):
    READY = "ready"
    CLOSED_BY_REQUEST = "closed_by_request"
    CLOSED_BY_SIGNAL = "closed_by_signal"


class ProtocolSession:
    """Binds a frozen :class:`ToolRegistry` to an MCP server.

    Tool faults never propagate past :meth:`handle_call_tool`; they come
    back as ``isError`` results.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        server_info: types.Implementation,
        *,
        codec: EnvelopeCodec | None = None,
        instructions: str | None = None,
    ) -> None:
        registry.freeze()
        self._registry = registry
        self._server_info = server_info
        self._codec = codec or EnvelopeCodec()
        self._state = SessionState.READY
        self._observers: list[ErrorObserver] = [_log_transport_error]
        self._close_callbacks: list[CloseCallback] = []
        self._server: Server = Server(
            server_info.name, version=server_info.version, instructions=instructions
        )
        self._register_handlers()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def server_info(self) -> types.Implementation:
        return self._server_info

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def server(self) -> Server:
        """The SDK server the transports drive."""
        return self._server

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is not SessionState.READY

    def close(self, reason: SessionState = SessionState.CLOSED_BY_REQUEST) -> None:
        """Move to a terminal state and run the close callbacks.

        Idempotent: only the first call changes the state and runs the
        close callbacks.
        """
        if reason is SessionState.READY:
            msg = "close() needs a terminal state"
            raise ValueError(msg)
        if self.closed:
            return
        self._state = reason
        logger.info("Session %s closed (%s)", self._server_info.name, reason.value)
        for callback in self._close_callbacks:
            try:
                callback(reason)
            except Exception as exc:  # noqa: BLE001
                self.report_transport_error(exc)

    def on_close(self, callback: CloseCallback) -> None:
        """Register *callback* to run once when the session closes."""
        self._close_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Error observer
    # ------------------------------------------------------------------

    def on_error(self, observer: ErrorObserver) -> None:
        """Add an observer for transport-level faults (never tool faults)."""
        self._observers.append(observer)

    def report_transport_error(self, exc: BaseException) -> None:
        for observer in self._observers:
            observer(exc)

    # ------------------------------------------------------------------
    # MCP operations
    # ------------------------------------------------------------------

    def handle_list_tools(self) -> list[types.Tool]:
        return self._registry.list()

    def handle_call_tool(self, params: types.CallToolRequestParams) -> types.CallToolResult:
        """Dispatch one tool call; always returns a well-formed result.

        Raises
        ------
        SessionClosedError
            If the session has already been closed.
        """
        if self.closed:
            raise SessionClosedError(self._server_info.name)

        with _tracer.start_as_current_span("mcptools.tool.call") as span:
            span.set_attribute(ATTR_TOOL_NAME, params.name)
            span.set_attribute(ATTR_SERVER_NAME, self._server_info.name)
            span.set_attribute(ATTR_SERVER_VERSION, self._server_info.version)
            result, is_error = self._dispatch(params)
            span.set_attribute(ATTR_TOOL_SUCCESS, result.success)
            span.set_attribute(ATTR_TOOL_IS_ERROR, is_error)
        return self._codec.encode(result, is_error=is_error)

    def _dispatch(self, params: types.CallToolRequestParams) -> tuple[ToolResult, bool]:
        arguments = self._codec.decode(params.arguments)
        if arguments is MISSING_ARGUMENTS:
            return ToolResult.fail("No arguments provided"), True

        handler = self._registry.resolve(params.name)
        if handler is NOT_FOUND:
            return ToolResult.fail(f"Unknown tool: {params.name}"), True

        try:
            result = handler(arguments)
            if not isinstance(result, ToolResult):
                result = ToolResult.model_validate(result)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Tool %s raised: %s", params.name, exc)
            return ToolResult.fail(f"Tool execution failed: {exc}"), True
        return result, False

    # ------------------------------------------------------------------
    # SDK wiring
    # ------------------------------------------------------------------

    async def run(
        self,
        read_stream: MemoryObjectReceiveStream[SessionMessage | Exception],
        write_stream: MemoryObjectSendStream[SessionMessage],
    ) -> None:
        """Serve one client connection until *read_stream* is exhausted."""
        await self._server.run(
            read_stream, write_stream, self._server.create_initialization_options()
        )

    def _register_handlers(self) -> None:
        @self._server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return self.handle_list_tools()

        async def call_tool(request: types.CallToolRequest) -> types.ServerResult:
            return types.ServerResult(self.handle_call_tool(request.params))

        # Registered directly: the call_tool() decorator turns absent arguments into {}
        self._server.request_handlers[types.CallToolRequest] = call_tool


def _log_transport_error(exc: BaseException) -> None:
    logger.error("[MCP Error] %s", exc)
