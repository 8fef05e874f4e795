"""mcpmux Application - wires config, logging, credentials and the manager.

This is what CLIs and scripts use instead of assembling the pieces by hand.
"""

import sys
from typing import TextIO

from mcpmux.config import ConfigLoader, MuxConfig, ServerConfig
from mcpmux.errors import create_error
from mcpmux.logging import LogConfig, MuxLogger
from mcpmux.mcp import BringUpSummary, MCPClientManager
from mcpmux.oauth import CredentialManager, FileTokenStore, TokenStore


class MuxApplication:
    """
    mcpmux application orchestrator.

    Initialization sequence:

    1. Config loading
    2. Logger setup
    3. Token store (credential cache)
    4. MCP client manager bring-up
    """

    def __init__(
        self,
        config_path: str | None = None,
        log_output: TextIO | None = None,
        connect: bool = True,
    ):
        """Initialize application.

        Args:
            config_path: Path to config file (optional)
            log_output: Output stream for logs (default: sys.stderr)
            connect: Bring servers up during initialize()
        """
        self._config_path = config_path
        self._log_output = log_output or sys.stderr
        self._connect = connect
        self._initialized = False

        # Components (initialized in initialize())
        self.config_loader: ConfigLoader | None = None
        self.config: MuxConfig | None = None
        self.logger: MuxLogger | None = None
        self.token_store: TokenStore | None = None
        self.manager: MCPClientManager | None = None
        self.summary: BringUpSummary | None = None

    async def initialize(self) -> None:
        """Initialize all components. Safe to call more than once."""
        if self._initialized:
            return

        # 1. Config Loader
        self.config_loader = ConfigLoader()
        self.config = self.config_loader.load(self._config_path)

        # 2. Logger
        self.logger = MuxLogger(
            LogConfig(
                level=self.config.logging.level,
                format=self.config.logging.format,
                components=dict(self.config.logging.components),
                output=self._log_output,
            )
        )

        # 3. Token store
        self.token_store = FileTokenStore(self.config.token_cache, logger=self.logger)

        # 4. MCP client manager
        self.manager = MCPClientManager(
            logger=self.logger,
            token_store=self.token_store,
            credentials_factory=self._credentials_for,
        )
        if self._connect:
            self.summary = await self.manager.load_and_connect_all(self.config.servers)

        self._initialized = True

    def _credentials_for(self, config: ServerConfig) -> CredentialManager | None:
        if not config.oauth.can_authorize:
            return None
        return self.credential_manager(config.name)

    def credential_manager(self, server_name: str) -> CredentialManager:
        """Build a CredentialManager for a configured server.

        Raises:
            MuxError(SERVER_NOT_FOUND): Unknown server
        """
        if self.config is None or self.token_store is None:
            raise RuntimeError("Application not initialized")
        server = self.config.get_server(server_name)
        if server is None:
            raise create_error("SERVER_NOT_FOUND", server=server_name)
        return CredentialManager(
            server_name=server.name,
            oauth_config=server.oauth,
            store=self.token_store,
            logger=self.logger,
        )

    async def setup_oauth(
        self,
        server_name: str,
        open_browser: bool = True,
        timeout: float = 300.0,
    ) -> bool:
        """Authorize a server interactively and reconnect it.

        Returns:
            True if the server is connected afterwards
        """
        await self.initialize()
        if self.manager is None:
            raise RuntimeError("Application not initialized")

        credentials = self.credential_manager(server_name)
        if self.manager.get_client(server_name) is None:
            # Servers not brought up yet (connect=False) are authorized standalone
            await credentials.authorize_interactive(open_browser=open_browser, timeout=timeout)
            return False
        return await self.manager.authorize(
            server_name, credentials, open_browser=open_browser, timeout=timeout
        )

    async def shutdown(self) -> None:
        """Disconnect every server."""
        if self.manager:
            await self.manager.disconnect_all()
        self._initialized = False
