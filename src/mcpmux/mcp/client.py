"""MCP Client - one named server, its transport and its connection state."""

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from mcpmux.config.models import ServerConfig
from mcpmux.errors import MuxError, create_error, get_error_factory
from mcpmux.logging.logger import MuxLogger
from mcpmux.types import ConnectionState, LogLevel

from .transports import Transport, create_transport
from .types import ServerStatus, ToolDescriptor

if TYPE_CHECKING:
    from mcpmux.oauth.manager import CredentialManager

TransportFactory = Callable[[ServerConfig, MuxLogger | None], Transport]


class MCPClient:
    """Per-server state machine wrapping one Transport.

    ``disconnected -> connecting -> connected | auth_required | error``.
    Only an explicit ``connect()`` leaves ``auth_required`` or ``error``.
    """

    def __init__(
        self,
        config: ServerConfig,
        logger: MuxLogger | None = None,
        credentials: "CredentialManager | None" = None,
        transport_factory: TransportFactory = create_transport,
    ):
        """Initialize MCP client.

        Args:
            config: Server configuration
            logger: Optional logger
            credentials: Optional credential manager consulted before connecting
            transport_factory: Builds the transport for ``config``
        """
        self.config = config
        self.credentials = credentials
        self._logger = logger
        self._transport_factory = transport_factory

        self.transport: Transport | None = None
        self.tools: list[ToolDescriptor] = []
        self.resources: list[dict[str, Any]] = []
        self.prompts: list[dict[str, Any]] = []
        self.server_info: dict[str, Any] = {}

        self._state = ConnectionState.DISCONNECTED
        self._last_error: MuxError | None = None
        self._last_connected: datetime | None = None
        self._connect_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_error(self) -> MuxError | None:
        return self._last_error

    @property
    def auth_required(self) -> bool:
        return self.config.oauth.required

    def _log(self, level: LogLevel, message: str, **context: Any) -> None:
        """Log message if logger available."""
        if self._logger:
            self._logger._log(level, f"client.{self.name}", message, context or None)

    def _set_state(self, state: ConnectionState, error: MuxError | None = None) -> None:
        self._state = state
        self._last_error = error
        if self._logger:
            self._logger.state_change(self.name, state, str(error) if error else None)

    async def connect(self) -> bool:
        """Bring the server up: handshake, then capability discovery.

        Concurrent callers are serialized, so at most one transport is ever
        open; a caller that waited behind a successful attempt returns True.

        Returns:
            True when connected, False when the server awaits authorization

        Raises:
            MuxError: Any failure other than an expected authorization failure
        """
        async with self._connect_lock:
            if self._state == ConnectionState.CONNECTED:
                self._log(LogLevel.DEBUG, "Already connected")
                return True
            return await self._connect()

    async def _connect(self) -> bool:
        self._set_state(ConnectionState.CONNECTING)

        try:
            await self._inject_credentials()
            transport = self._transport_factory(self.config, self._logger)
            self.transport = transport
            self.server_info = await transport.initialize()
            await self.discover_capabilities()
        except Exception as e:
            error = get_error_factory().from_exception(e, server=self.name)
            await self._close_transport()

            if self.auth_required and error.is_auth_error:
                self._set_state(ConnectionState.AUTH_REQUIRED, error)
                return False

            self._set_state(ConnectionState.ERROR, error)
            if isinstance(e, MuxError):
                raise
            raise error from e

        self._last_connected = datetime.now()
        self._set_state(ConnectionState.CONNECTED)
        self._log(LogLevel.INFO, f"Connected ({len(self.tools)} tools)")
        return True

    async def _inject_credentials(self) -> None:
        """Use a fresh token from the credential manager when one exists."""
        if self.credentials is None or not self.credentials.has_tokens():
            return
        token = await self.credentials.get_valid_token()
        tokens = self.credentials.tokens
        self.config.auth_token = tokens.authorization_header() if tokens else token

    async def discover_capabilities(self) -> dict[str, list[Any]]:
        """Fetch tools (mandatory), then resources and prompts (best-effort).

        The cached lists are replaced only after every fetch has finished.
        """
        transport = self.transport
        if transport is None:
            raise create_error("TRANSPORT_CLOSED", server=self.name)
        tools = await transport.list_tools()

        resources: list[dict[str, Any]] = []
        try:
            resources = await transport.list_resources()
        except MuxError as e:
            self._log(LogLevel.DEBUG, f"resources/list failed: {e}")

        prompts: list[dict[str, Any]] = []
        try:
            prompts = await transport.list_prompts()
        except MuxError as e:
            self._log(LogLevel.DEBUG, f"prompts/list failed: {e}")

        self.tools, self.resources, self.prompts = tools, resources, prompts
        self._log(
            LogLevel.DEBUG,
            f"{len(tools)} tools, {len(resources)} resources, {len(prompts)} prompts",
        )
        return {"tools": tools, "resources": resources, "prompts": prompts}

    async def call_tool(self, tool_name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Call a tool, connecting first if this client never connected.

        Args:
            tool_name: Name of tool to call
            arguments: Tool arguments

        Returns:
            Raw ``tools/call`` result (``content``, ``isError``, ...)

        Raises:
            MuxError(AUTH_REQUIRED): OAuth is required and no credential is set
            MuxError(TOOL_EXECUTION_FAILED): The call failed; ``cause`` has the reason
        """
        if self._state != ConnectionState.CONNECTED:
            await self._ensure_connected(tool_name)

        transport = self.transport
        if transport is None:
            raise create_error(
                "TOOL_EXECUTION_FAILED",
                server=self.name,
                tool_name=tool_name,
                detail="Server disconnected before the call was sent",
            )
        try:
            result = await transport.call_tool(tool_name, arguments or {})
        except MuxError as e:
            self._log(LogLevel.ERROR, f"Tool '{tool_name}' failed: {e}", code=e.code)
            raise create_error(
                "TOOL_EXECUTION_FAILED",
                server=self.name,
                tool_name=tool_name,
                detail=str(e),
                cause=e,
            ) from e

        if isinstance(result, dict) and result.get("isError"):
            self._log(LogLevel.WARN, f"Tool '{tool_name}' reported an error result")
        return result

    async def _ensure_connected(self, tool_name: str) -> None:
        """Make at most one implicit connect attempt.

        A client already in ``error`` or ``auth_required`` is not retried
        here; only an explicit ``connect()`` leaves those states.
        """
        if self._state == ConnectionState.CONNECTING:
            # Another caller is bringing the server up; share its outcome
            async with self._connect_lock:
                pass
            if self._state == ConnectionState.CONNECTED:
                return

        if self.auth_required and not self.config.auth_token and not self._has_credentials():
            raise create_error(
                "AUTH_REQUIRED",
                server=self.name,
                tool_name=tool_name,
                detail=f"{self.name} requires OAuth authentication. Run OAuth setup first.",
            )

        if self._state in (ConnectionState.ERROR, ConnectionState.AUTH_REQUIRED):
            raise create_error(
                "TOOL_EXECUTION_FAILED",
                server=self.name,
                tool_name=tool_name,
                detail=f"Server is in state '{self._state.value}'; call connect() to retry",
                cause=self._last_error,
            )

        try:
            connected = await self.connect()
        except MuxError as e:
            raise create_error(
                "TOOL_EXECUTION_FAILED",
                server=self.name,
                tool_name=tool_name,
                detail=str(e),
                cause=e,
            ) from e

        if not connected:
            raise create_error(
                "AUTH_REQUIRED",
                server=self.name,
                tool_name=tool_name,
                cause=self._last_error,
            )

    def _has_credentials(self) -> bool:
        return self.credentials is not None and self.credentials.has_tokens()

    def set_auth_token(self, token: str | None) -> None:
        """Update the credential on the transport and in the stored config."""
        if self.transport is not None:
            self.transport.set_auth_token(token)
        self.config.auth_token = token

    def get_tool(self, name: str) -> ToolDescriptor | None:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None

    def get_status(self) -> ServerStatus:
        """Get a status snapshot."""
        return ServerStatus(
            name=self.name,
            state=self._state,
            tools=[tool.name for tool in self.tools],
            error=str(self._last_error) if self._last_error else None,
            error_code=self._last_error.code if self._last_error else None,
            last_connected=self._last_connected.isoformat() if self._last_connected else None,
        )

    async def disconnect(self) -> None:
        """Release the transport and clear cached capabilities."""
        await self._close_transport()
        self.tools, self.resources, self.prompts = [], [], []
        if self._state != ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)

    async def _close_transport(self) -> None:
        transport, self.transport = self.transport, None
        if transport is None:
            return
        try:
            await transport.disconnect()
        except Exception as e:
            self._log(LogLevel.WARN, f"Error during disconnect: {e}")

