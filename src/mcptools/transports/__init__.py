"""Transport adapters — stdio and streamable HTTP."""

from mcptools.transports.base import ServerTransport
from mcptools.transports.http import HttpServerTransport, create_app, security_settings
from mcptools.transports.stdio import StdioServerTransport

__all__ = [
    "HttpServerTransport",
    "ServerTransport",
    "StdioServerTransport",
    "create_app",
    "security_settings",
]
