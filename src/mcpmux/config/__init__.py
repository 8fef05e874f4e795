"""mcpmux configuration - models and loading."""

from .loader import (
    ConfigLoader,
    load_config,
    parse_oauth_config,
    parse_server_config,
    resolve_env_vars,
)
from .models import (
    DEFAULT_REDIRECT_URI,
    DEFAULT_TOKEN_CACHE,
    LoggingConfig,
    MuxConfig,
    OAuthConfig,
    ServerConfig,
)

__all__ = [
    # Config models
    "MuxConfig",
    "ServerConfig",
    "OAuthConfig",
    "LoggingConfig",
    "DEFAULT_REDIRECT_URI",
    "DEFAULT_TOKEN_CACHE",
    # Loader
    "ConfigLoader",
    "load_config",
    "parse_server_config",
    "parse_oauth_config",
    # Utilities
    "resolve_env_vars",
]
