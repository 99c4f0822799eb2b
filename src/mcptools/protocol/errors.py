"""Shared error types for the protocol and transport layers."""


class ProtocolError(Exception):
    """Base error for all protocol-layer failures."""


class RegistryError(ProtocolError):
    """The tool registry was misused during startup."""


class DuplicateToolError(RegistryError):
    """A tool name was registered twice."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool already registered: {name}")


class RegistryFrozenError(RegistryError):
    """A tool was registered after the registry was handed to a session."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Registry is frozen, cannot register: {name}")


class SessionClosedError(ProtocolError):
    """A request reached a protocol session that has already been closed."""

    def __init__(self, server_name: str = "") -> None:
        self.server_name = server_name
        super().__init__("Session closed" + (f": {server_name}" if server_name else ""))


class TransportError(ProtocolError):
    """A transport adapter failed outside of any single tool call."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Transport error" + (f": {detail}" if detail else ""))


class StartupError(TransportError):
    """A transport could not be started (e.g. the port is already in use)."""
