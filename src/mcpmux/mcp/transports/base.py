"""Transport contract shared by the HTTP and stdio variants."""

from abc import ABC, abstractmethod
from typing import Any

from mcpmux.errors import ErrorCategory, MuxError
from mcpmux.logging.logger import MuxLogger
from mcpmux.types import LogLevel

from ..protocol import (
    METHOD_INITIALIZE,
    METHOD_INITIALIZED,
    METHOD_PROMPTS_LIST,
    METHOD_RESOURCES_LIST,
    METHOD_RESOURCES_READ,
    METHOD_TOOLS_CALL,
    METHOD_TOOLS_LIST,
    JSONRPCMessage,
)
from ..types import ToolDescriptor


class Transport(ABC):
    """Sends protocol messages to one server and returns protocol results.

    Every operation raises ``MuxError`` when the channel is unusable; the
    error code says why (``TRANSPORT_CLOSED``, ``AUTH_REQUIRED``, ...).
    """

    server: str

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while the channel can carry requests."""

    @abstractmethod
    async def initialize(self) -> dict[str, Any]:
        """Perform the protocol handshake and return the server capabilities."""

    @abstractmethod
    async def list_tools(self) -> list[ToolDescriptor]:
        """List the server's tools."""

    @abstractmethod
    async def list_resources(self) -> list[dict[str, Any]]:
        """List resources; empty when the server does not support them."""

    @abstractmethod
    async def list_prompts(self) -> list[dict[str, Any]]:
        """List prompts; empty when the server does not support them."""

    @abstractmethod
    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """Invoke a tool and return the raw ``tools/call`` result."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the channel. Idempotent."""

    def set_auth_token(self, token: str | None) -> None:
        """Replace the credential used for later requests."""


class JSONRPCTransport(Transport):
    """Implements the contract on top of a request/notify primitive pair."""

    # Upper bound on tools/list pages followed via nextCursor
    MAX_PAGES = 50

    def __init__(self, server: str, logger: MuxLogger | None = None):
        self.server = server
        self.server_info: dict[str, Any] = {}
        self._logger = logger

    def _log(self, level: LogLevel, message: str, **context: Any) -> None:
        """Log message if logger available."""
        if self._logger:
            self._logger._log(level, f"transport.{self.server}", message, context or None)

    @abstractmethod
    async def _request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a request and return its ``result``."""

    @abstractmethod
    async def _notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification (no response expected)."""

    async def initialize(self) -> dict[str, Any]:
        result = await self._request(METHOD_INITIALIZE, JSONRPCMessage.initialize_params())
        self.server_info = result if isinstance(result, dict) else {}

        try:
            await self._notify(METHOD_INITIALIZED)
        except MuxError as e:
            self._log(LogLevel.DEBUG, f"initialized notification not accepted: {e}")

        return self.server_info

    async def list_tools(self) -> list[ToolDescriptor]:
        tools: list[ToolDescriptor] = []
        cursor: str | None = None
        seen_cursors: set[str] = set()

        for _ in range(self.MAX_PAGES):
            params = {"cursor": cursor} if cursor else None
            result = await self._request(METHOD_TOOLS_LIST, params) or {}
            tools.extend(ToolDescriptor.from_dict(t, self.server) for t in result.get("tools") or [])

            cursor = result.get("nextCursor")
            if not cursor or cursor in seen_cursors:
                break
            seen_cursors.add(cursor)

        return tools

    async def list_resources(self) -> list[dict[str, Any]]:
        return await self._list_optional(METHOD_RESOURCES_LIST, "resources")

    async def list_prompts(self) -> list[dict[str, Any]]:
        return await self._list_optional(METHOD_PROMPTS_LIST, "prompts")

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        result = await self._request(METHOD_TOOLS_CALL, {"name": name, "arguments": arguments or {}})
        return result if isinstance(result, dict) else {"content": result}

    async def read_resource(self, uri: str) -> dict[str, Any]:
        result = await self._request(METHOD_RESOURCES_READ, {"uri": uri})
        return result or {}

    async def _list_optional(self, method: str, key: str) -> list[dict[str, Any]]:
        """List a capability that servers may not implement.

        A protocol-level error (typically method-not-found) means
        "unsupported" and yields an empty list; channel faults propagate.
        """
        try:
            result = await self._request(method) or {}
        except MuxError as e:
            if e.category != ErrorCategory.PROTOCOL:
                raise
            self._log(LogLevel.DEBUG, f"{method} unsupported: {e}")
            return []

        return [item for item in result.get(key) or [] if isinstance(item, dict)]
