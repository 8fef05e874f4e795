"""MCP client layer: transports, per-server clients and the manager."""

from .client import MCPClient
from .manager import MCPClientManager
from .protocol import CLIENT_INFO, PROTOCOL_VERSION, JSONRPCMessage
from .transports import HTTPTransport, StdioTransport, Transport, create_transport
from .types import BringUpSummary, ServerFailure, ServerStatus, ToolDescriptor, ToolIndexEntry

__all__ = [
    "BringUpSummary",
    "CLIENT_INFO",
    "HTTPTransport",
    "JSONRPCMessage",
    "MCPClient",
    "MCPClientManager",
    "PROTOCOL_VERSION",
    "ServerFailure",
    "ServerStatus",
    "StdioTransport",
    "ToolDescriptor",
    "ToolIndexEntry",
    "Transport",
    "create_transport",
]
