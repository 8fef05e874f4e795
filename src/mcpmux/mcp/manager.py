"""MCP Client Manager - brings up every configured server and indexes tools."""

import asyncio
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from mcpmux.config.models import ServerConfig
from mcpmux.errors import MuxError, create_error, get_error_factory
from mcpmux.logging.logger import MuxLogger
from mcpmux.types import ConnectionState, LogLevel

from .client import MCPClient
from .types import BringUpSummary, ServerFailure, ServerStatus, ToolIndexEntry

if TYPE_CHECKING:
    from mcpmux.oauth.manager import CredentialManager
    from mcpmux.oauth.store import TokenStore

ClientFactory = Callable[..., MCPClient]
CredentialsFactory = Callable[[ServerConfig], "CredentialManager | None"]


class MCPClientManager:
    """Manages all MCP server clients.

    One misbehaving or unauthenticated server never blocks the others:
    bring-up failures are recorded per server and the batch always completes.
    """

    def __init__(
        self,
        logger: MuxLogger | None = None,
        token_store: "TokenStore | None" = None,
        client_factory: ClientFactory = MCPClient,
        credentials_factory: CredentialsFactory | None = None,
    ):
        """Initialize MCP client manager.

        Args:
            logger: Optional logger
            token_store: Credential cache consulted before connecting
            client_factory: Builds an MCPClient from (config, logger, credentials)
            credentials_factory: Optional per-server CredentialManager builder
        """
        self._logger = logger
        self._token_store = token_store
        self._client_factory = client_factory
        self._credentials_factory = credentials_factory

        self._clients: dict[str, MCPClient] = {}
        self._index: dict[tuple[str, str], ToolIndexEntry] = {}
        self.errors: list[ServerFailure] = []

    def _log(self, level: LogLevel, message: str, **context: Any) -> None:
        """Log message if logger available."""
        if self._logger:
            self._logger._log(level, "manager", message, context or None)

    async def load_and_connect_all(self, configs: Iterable[ServerConfig]) -> BringUpSummary:
        """Create a client per enabled config and connect them concurrently.

        Args:
            configs: Server configurations

        Returns:
            BringUpSummary with per-state counts and recorded failures
        """
        summary = BringUpSummary()
        clients: list[MCPClient] = []
        for config in configs:
            if not config.enabled:
                self._log(LogLevel.INFO, f"Skipping disabled server '{config.name}'")
                continue
            if config.name in self._clients:
                self._log(LogLevel.WARN, f"Server '{config.name}' already loaded, skipping")
                continue

            try:
                client = self._build_client(config)
            except Exception as e:
                self._record_failure(summary, config.name, e)
                continue
            self._clients[config.name] = client
            clients.append(client)

        if not clients:
            self._log(LogLevel.INFO, "No MCP servers to connect")
            self._rebuild_index()
            return summary

        self._log(LogLevel.INFO, f"Connecting to {len(clients)} MCP servers")
        results = await asyncio.gather(
            *(client.connect() for client in clients), return_exceptions=True
        )

        for client, result in zip(clients, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                self._record_failure(summary, client.name, result)
            elif client.state == ConnectionState.AUTH_REQUIRED:
                summary.auth_required += 1
                self._log(LogLevel.WARN, f"'{client.name}' requires authorization")
            else:
                summary.connected += 1

        self._rebuild_index()
        self._log(
            LogLevel.INFO,
            f"Connected to {summary.connected}/{summary.total} servers "
            f"({len(self._index)} tools)",
        )
        return summary

    def _build_client(self, config: ServerConfig) -> MCPClient:
        self._inject_cached_token(config)
        credentials = self._credentials_factory(config) if self._credentials_factory else None
        return self._client_factory(config, self._logger, credentials)

    def _record_failure(self, summary: BringUpSummary, server: str, exc: Exception) -> None:
        error = get_error_factory().from_exception(exc, server=server)
        failure = ServerFailure(server=server, error=str(error), code=error.code)
        self.errors.append(failure)
        summary.failures.append(failure)
        summary.failed += 1
        self._log(LogLevel.ERROR, f"Failed to connect to '{server}': {error}")

    def _inject_cached_token(self, config: ServerConfig) -> None:
        if self._token_store is None:
            return
        tokens = self._token_store.load(config.name)
        if tokens is None:
            return
        config.auth_token = tokens.authorization_header()
        self._log(LogLevel.DEBUG, f"Loaded cached OAuth token for '{config.name}'")

    def _rebuild_index(self) -> None:
        """Swap in a freshly built index in one assignment."""
        index: dict[tuple[str, str], ToolIndexEntry] = {}
        for name, client in self._clients.items():
            if client.state != ConnectionState.CONNECTED:
                continue
            for tool in client.tools:
                index[(name, tool.name)] = ToolIndexEntry(server=name, tool=tool)
        self._index = index

    async def call_tool(
        self,
        server_name: str,
        tool_name: str,
        arguments: dict[str, Any] | None = None,
    ) -> Any:
        """Call a tool on a specific server.

        Raises:
            MuxError(SERVER_NOT_FOUND): If no client has that name
        """
        client = self.get_client(server_name)
        if client is None:
            raise create_error("SERVER_NOT_FOUND", server=server_name, tool_name=tool_name)
        return await client.call_tool(tool_name, arguments or {})

    def get_client(self, name: str) -> MCPClient | None:
        return self._clients.get(name)

    def list_clients(self) -> list[MCPClient]:
        return list(self._clients.values())

    def all_tools(self) -> list[ToolIndexEntry]:
        """All indexed tools across connected servers."""
        return list(self._index.values())

    def search_tools(self, query: str) -> list[ToolIndexEntry]:
        """Case-insensitive substring match on tool name or description."""
        needle = query.lower()
        return [
            entry
            for entry in self._index.values()
            if needle in entry.name.lower() or needle in (entry.description or "").lower()
        ]

    def statuses(self) -> dict[str, ServerStatus]:
        """Snapshot of every client's state."""
        return {name: client.get_status() for name, client in self._clients.items()}

    async def authorize(
        self,
        server_name: str,
        credentials: "CredentialManager",
        open_browser: bool = True,
        timeout: float = 300.0,
    ) -> bool:
        """Run the interactive OAuth flow for a server, then reconnect it.

        Returns:
            True if the server is connected afterwards
        """
        client = self.get_client(server_name)
        if client is None:
            raise create_error("SERVER_NOT_FOUND", server=server_name)

        tokens = await credentials.authorize_interactive(open_browser=open_browser, timeout=timeout)
        client.credentials = credentials
        client.set_auth_token(tokens.authorization_header())

        await client.disconnect()
        try:
            connected = await client.connect()
        except MuxError as e:
            self._log(LogLevel.ERROR, f"Reconnect after authorization failed: {e}")
            connected = False
        finally:
            self._rebuild_index()
        return connected

    async def disconnect_all(self, timeout: float = 10.0) -> None:
        """Disconnect every client and clear the index. Idempotent.

        Args:
            timeout: Maximum time to wait for all disconnects in seconds
        """
        clients, self._clients = list(self._clients.values()), {}
        self._index = {}
        self.errors = []
        if not clients:
            return

        self._log(LogLevel.INFO, "Disconnecting from all MCP servers")
        try:
            await asyncio.wait_for(
                asyncio.gather(*(c.disconnect() for c in clients), return_exceptions=True),
                timeout=timeout,
            )
        except TimeoutError:
            self._log(LogLevel.WARN, f"Timeout ({timeout}s) waiting for all servers to disconnect")
        self._log(LogLevel.INFO, "Disconnected from all servers")
