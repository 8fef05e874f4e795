"""Shared enumerations for mcpmux."""

from enum import Enum


class LogLevel(str, Enum):
    """Log verbosity level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Log output format."""

    COLORED = "colored"
    JSON = "json"


class TransportKind(str, Enum):
    """How a server is reached.

    ``http`` is the request-response variant (one POST per protocol method),
    ``stdio`` the process-pipe variant (newline-delimited JSON over pipes).
    """

    HTTP = "http"
    STDIO = "stdio"

    @classmethod
    def parse(cls, value: "str | TransportKind") -> "TransportKind":
        """Parse a transport tag, accepting the long-form aliases.

        Args:
            value: ``http``, ``stdio``, ``request-response`` or ``process-pipe``

        Returns:
            TransportKind

        Raises:
            ValueError: If the tag is unknown
        """
        if isinstance(value, TransportKind):
            return value
        normalized = value.strip().lower()
        aliases = {
            "request-response": cls.HTTP,
            "streamable-http": cls.HTTP,
            "process-pipe": cls.STDIO,
        }
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


class ConnectionState(str, Enum):
    """Per-server connection state.

    ``connected``, ``auth_required`` and ``error`` are terminal for a single
    ``connect()`` attempt; only an explicit ``connect()`` leaves them.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTH_REQUIRED = "auth_required"
    ERROR = "error"


class OAuthState(str, Enum):
    """Credential manager flow state."""

    IDLE = "idle"
    AWAITING_CODE = "awaiting_code"
    EXCHANGING = "exchanging"
    AUTHORIZED = "authorized"
    REFRESHING = "refreshing"
    FAILED = "failed"
