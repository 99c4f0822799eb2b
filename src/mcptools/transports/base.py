"""Transport adapter contract shared by the stdio and HTTP servers."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ServerTransport(Protocol):
    """A channel that feeds one :class:`~mcptools.protocol.ProtocolSession`.

    ``start`` returns once the transport is accepting traffic; ``stop``
    releases every handle it holds and is safe to call more than once.
    """

    name: str

    async def start(self) -> None: ...
    async def stop(self) -> None: ...
