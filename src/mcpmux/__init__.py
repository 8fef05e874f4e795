"""mcpmux - client-side multiplexer for MCP tool servers."""

__version__ = "0.1.0"

from .errors import MuxError, create_error
from .mcp import MCPClient, MCPClientManager
from .types import ConnectionState, TransportKind

__all__ = [
    "__version__",
    "MuxError",
    "create_error",
    "MCPClient",
    "MCPClientManager",
    "ConnectionState",
    "TransportKind",
]
