"""mcpmux configuration data models."""

from dataclasses import dataclass, field

from mcpmux.types import LogFormat, LogLevel, TransportKind

DEFAULT_REDIRECT_URI = "http://127.0.0.1:3000/oauth/callback"
DEFAULT_TOKEN_CACHE = "~/.mcpmux/tokens.json"


@dataclass
class OAuthConfig:
    """OAuth requirement descriptor for one server."""

    required: bool = False
    auth_url: str | None = None
    token_url: str | None = None
    scopes: list[str] = field(default_factory=list)
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str = DEFAULT_REDIRECT_URI
    # Servers that trust the same identity provider; tokens are replicated to them
    share_with: list[str] = field(default_factory=list)

    @property
    def can_authorize(self) -> bool:
        """True when enough is configured to run the PKCE flow."""
        return bool(self.auth_url and self.token_url and self.client_id)


@dataclass
class ServerConfig:
    """Identity and connection recipe for one MCP server.

    Immutable after load except ``auth_token``, which is injected from the
    credential cache or after an authorization flow.
    """

    name: str
    transport: TransportKind = TransportKind.HTTP
    url: str | None = None  # For http
    command: str | None = None  # For stdio: executable
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    auth_token: str | None = None
    enabled: bool = True
    timeout: float = 30.0
    oauth: OAuthConfig = field(default_factory=OAuthConfig)

    @property
    def auth_required(self) -> bool:
        return self.oauth.required

    def endpoint(self) -> str:
        """Human-readable endpoint (URL or command line)."""
        if self.transport == TransportKind.HTTP:
            return self.url or ""
        return " ".join([self.command or "", *self.args]).strip()


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    components: dict[str, bool] = field(default_factory=dict)


@dataclass
class MuxConfig:
    """Root mcpmux configuration."""

    servers: list[ServerConfig] = field(default_factory=list)
    servers_dir: str | None = None
    token_cache: str = DEFAULT_TOKEN_CACHE
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def get_server(self, name: str) -> ServerConfig | None:
        for server in self.servers:
            if server.name == name:
                return server
        return None
