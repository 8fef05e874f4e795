"""mcpmux configuration loader."""

import json
import os
import re
import shlex
from pathlib import Path
from typing import Any

import yaml

from mcpmux.errors import create_error
from mcpmux.types import LogFormat, LogLevel, TransportKind, ValidationIssue, ValidationResult

from .models import (
    DEFAULT_REDIRECT_URI,
    DEFAULT_TOKEN_CACHE,
    LoggingConfig,
    MuxConfig,
    OAuthConfig,
    ServerConfig,
)

_TOP_LEVEL_KEYS = {"servers", "servers_dir", "token_cache", "logging"}


def resolve_env_vars(value: str) -> str:
    """Resolve environment variable references in string.

    Supports:
    - ${VAR} - Required, error if not set
    - ${VAR:-default} - With default value
    - ${VAR:?error message} - Required with custom error

    Args:
        value: String with potential env var references

    Returns:
        String with env vars resolved

    Raises:
        MuxError(CONFIG_INVALID): If a required var is not set
    """
    pattern = r"\$\{([^}:]+)(?::([?-])([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        operator = match.group(2)  # '-' or '?' or None
        operand = match.group(3)

        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value

        if operator == "-":
            return operand or ""
        if operator == "?":
            raise create_error(
                "CONFIG_INVALID",
                detail=operand or f"Required environment variable {var_name} not set",
            )
        raise create_error(
            "CONFIG_INVALID",
            detail=f"Required environment variable {var_name} not set",
        )

    return re.sub(pattern, replacer, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    if isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key; records may use snake_case or camelCase."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _as_bool(value: Any, default: bool) -> bool:
    """Coerce a flag; strings come from env substitution such as ``${VAR:-false}``."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _server_records(servers: Any) -> list[dict[str, Any]]:
    """Normalize ``servers`` given as a list of records or a name->record map."""
    if isinstance(servers, dict):
        records = []
        for name, record in servers.items():
            record = dict(record or {})
            record.setdefault("name", name)
            records.append(record)
        return records
    if isinstance(servers, list):
        return [dict(record) for record in servers if isinstance(record, dict)]
    return []


def parse_oauth_config(data: dict[str, Any] | None) -> OAuthConfig:
    """Build an OAuthConfig from a server record's ``oauth`` block."""
    if not data:
        return OAuthConfig()

    scopes = _pick(data, "scopes", "scope", default=[])
    if isinstance(scopes, str):
        scopes = scopes.split()

    return OAuthConfig(
        required=_as_bool(data.get("required"), False),
        auth_url=_pick(data, "auth_url", "authUrl", "authorization_url"),
        token_url=_pick(data, "token_url", "tokenUrl"),
        scopes=list(scopes),
        client_id=_pick(data, "client_id", "clientId"),
        client_secret=_pick(data, "client_secret", "clientSecret"),
        redirect_uri=_pick(data, "redirect_uri", "redirectUri", default=DEFAULT_REDIRECT_URI),
        share_with=list(_pick(data, "share_with", "shareWith", default=[])),
    )


def parse_server_config(data: dict[str, Any]) -> ServerConfig:
    """Build a ServerConfig from one server record.

    Args:
        data: Server record (snake_case or camelCase keys)

    Returns:
        ServerConfig

    Raises:
        MuxError(CONFIG_INVALID): If the record is incomplete
    """
    name = data.get("name")
    if not name:
        raise create_error("CONFIG_INVALID", detail="Server record is missing 'name'")

    try:
        transport = TransportKind.parse(_pick(data, "transport", "type", default="http"))
    except ValueError as e:
        raise create_error(
            "CONFIG_INVALID",
            detail=f"Unsupported transport type for '{name}': {e}",
        ) from e

    command = data.get("command")
    args = list(data.get("args") or [])
    if transport == TransportKind.STDIO:
        if not command:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"STDIO transport requires 'command' in config for '{name}'",
            )
        if isinstance(command, list):
            command, args = command[0], [*command[1:], *args]
        elif not args:
            try:
                parts = shlex.split(command)
            except ValueError as e:
                raise create_error(
                    "CONFIG_INVALID",
                    detail=f"Invalid command for stdio server '{name}': {e}",
                ) from e
            command, args = parts[0], parts[1:]
    elif not data.get("url"):
        raise create_error(
            "CONFIG_INVALID",
            detail=f"HTTP transport requires 'url' in config for '{name}'",
        )

    options = data.get("options") or {}

    return ServerConfig(
        name=name,
        transport=transport,
        url=data.get("url"),
        command=command,
        args=[str(a) for a in args],
        env=dict(_pick(data, "env", default=options.get("env", {}))),
        cwd=_pick(data, "cwd", default=options.get("cwd")),
        headers=dict(data.get("headers") or {}),
        auth_token=_pick(data, "auth_token", "authToken"),
        enabled=_as_bool(data.get("enabled"), True),
        timeout=float(data.get("timeout", 30.0)),
        oauth=parse_oauth_config(data.get("oauth")),
    )


class ConfigLoader:
    """Load and validate mcpmux configuration."""

    def __init__(self, logger: Any = None):
        """Initialize config loader.

        Args:
            logger: Optional MuxLogger instance
        """
        self._config: MuxConfig | None = None
        self._config_path: Path | None = None
        self._logger = logger

    def load(self, path: str | Path | None = None, use_defaults: bool = True) -> MuxConfig:
        """Load configuration from file.

        Resolution order if path not specified:
        1. MCPMUX_CONFIG_PATH environment variable
        2. ./mcpmux.yaml
        3. ~/.mcpmux/config.yaml
        4. If use_defaults=True and no file found, use default configuration

        Args:
            path: Optional path to config file
            use_defaults: If True, use default config when no file found

        Returns:
            Loaded MuxConfig instance

        Raises:
            MuxError(CONFIG_INVALID): If file not found (when use_defaults=False) or invalid
        """
        if path is None:
            path = self._resolve_config_path()

        config_path = Path(path).expanduser()

        if not config_path.exists():
            if use_defaults:
                if self._logger:
                    self._logger.info("config", "No config file found, using defaults")
                return self.load_from_dict({})
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Configuration file not found: {config_path}",
            )

        data = self._read_document(config_path)
        data = _resolve_env_vars_recursive(data)

        return self.load_from_dict(data, config_path)

    def load_from_dict(self, data: dict[str, Any], config_path: Path | None = None) -> MuxConfig:
        """Load configuration from dictionary.

        Args:
            data: Configuration dictionary
            config_path: Optional path of the source file; relative
                ``servers_dir`` entries resolve against its directory

        Returns:
            Loaded MuxConfig instance

        Raises:
            MuxError(CONFIG_INVALID): If configuration is invalid
        """
        records = _server_records(data.get("servers"))

        servers_dir = data.get("servers_dir")
        if servers_dir:
            base = config_path.parent if config_path else Path.cwd()
            directory = (base / Path(servers_dir).expanduser()).resolve()
            records.extend(self._read_servers_dir(directory))

        validation = self.validate({**data, "servers": records})
        if not validation.valid:
            error_messages = [f"- {issue.path}: {issue.message}" for issue in validation.errors]
            raise create_error(
                "CONFIG_INVALID",
                detail="Configuration validation failed:\n" + "\n".join(error_messages),
            )
        if self._logger:
            for issue in validation.warnings:
                self._logger.warn("config", f"{issue.path}: {issue.message}")

        logging_data = data.get("logging") or {}
        config = MuxConfig(
            servers=[parse_server_config(record) for record in records],
            servers_dir=servers_dir,
            token_cache=data.get("token_cache") or DEFAULT_TOKEN_CACHE,
            logging=LoggingConfig(
                level=LogLevel(str(logging_data.get("level", "INFO")).upper()),
                format=LogFormat(logging_data.get("format", "colored")),
                components=dict(logging_data.get("components") or {}),
            ),
        )

        self._config = config
        self._config_path = config_path

        if self._logger:
            self._logger.debug("config", f"Configuration loaded ({len(config.servers)} servers)")

        return config

    def validate(self, data: dict[str, Any]) -> ValidationResult:
        """Validate config data without loading.

        Args:
            data: Configuration dictionary

        Returns:
            ValidationResult with errors and warnings
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        for key in data:
            if key not in _TOP_LEVEL_KEYS:
                warnings.append(
                    ValidationIssue(
                        path=key,
                        message=f"Unknown configuration key: {key}",
                        severity="warning",
                    )
                )

        servers = data.get("servers")
        if servers is not None and not isinstance(servers, (list, dict)):
            errors.append(ValidationIssue(path="servers", message="servers must be a list"))
            servers = None

        seen: set[str] = set()
        for index, record in enumerate(_server_records(servers)):
            path = f"servers[{index}]"
            name = record.get("name")
            if not name:
                errors.append(ValidationIssue(path=path, message="server name is required"))
                continue
            if name in seen:
                errors.append(
                    ValidationIssue(path=path, message=f"duplicate server name '{name}'")
                )
            seen.add(name)

            try:
                transport = TransportKind.parse(_pick(record, "transport", "type", default="http"))
            except ValueError:
                errors.append(
                    ValidationIssue(
                        path=f"{path}.transport",
                        message=f"unsupported transport for '{name}'",
                    )
                )
                continue

            if transport == TransportKind.HTTP and not record.get("url"):
                errors.append(
                    ValidationIssue(path=f"{path}.url", message=f"'{name}' needs a url")
                )
            if transport == TransportKind.STDIO and not record.get("command"):
                errors.append(
                    ValidationIssue(path=f"{path}.command", message=f"'{name}' needs a command")
                )

            oauth = record.get("oauth") or {}
            if _as_bool(oauth.get("required"), False) and not _pick(oauth, "token_url", "tokenUrl"):
                warnings.append(
                    ValidationIssue(
                        path=f"{path}.oauth",
                        message=f"'{name}' requires OAuth but has no token URL",
                        severity="warning",
                    )
                )

        logging_data = data.get("logging") or {}
        if "level" in logging_data:
            level = str(logging_data["level"]).upper()
            if level not in LogLevel.__members__:
                errors.append(
                    ValidationIssue(path="logging.level", message=f"unknown log level {level}")
                )
        if "format" in logging_data and logging_data["format"] not in {f.value for f in LogFormat}:
            errors.append(
                ValidationIssue(
                    path="logging.format",
                    message=f"unknown log format {logging_data['format']}",
                )
            )

        return ValidationResult(valid=True, errors=errors, warnings=warnings)

    def get(self) -> MuxConfig:
        """Get current configuration.

        Raises:
            MuxError(CONFIG_INVALID): If configuration not loaded
        """
        if self._config is None:
            raise create_error("CONFIG_INVALID", detail="Configuration not loaded")
        return self._config

    def _read_document(self, path: Path) -> dict[str, Any]:
        """Read a YAML or JSON document into a dict."""
        try:
            with path.open() as f:
                if path.suffix == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Invalid document in {path}: {e}",
            ) from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise create_error("CONFIG_INVALID", detail=f"{path} must contain a mapping")
        return data

    def _read_servers_dir(self, directory: Path) -> list[dict[str, Any]]:
        """Load one server record per *.json / *.yaml file in a directory."""
        if not directory.is_dir():
            raise create_error(
                "CONFIG_INVALID",
                detail=f"servers_dir does not exist: {directory}",
            )

        records = []
        for path in sorted(directory.iterdir()):
            if path.suffix not in (".json", ".yaml", ".yml"):
                continue
            record = _resolve_env_vars_recursive(self._read_document(path))
            record.setdefault("name", path.stem)
            records.append(record)
        return records

    def _resolve_config_path(self) -> Path:
        env_path = os.environ.get("MCPMUX_CONFIG_PATH")
        if env_path:
            return Path(env_path)

        local_path = Path("mcpmux.yaml")
        if local_path.exists():
            return local_path

        home_path = Path.home() / ".mcpmux" / "config.yaml"
        if home_path.exists():
            return home_path

        return local_path


def load_config(path: str | Path | None = None, logger: Any = None) -> MuxConfig:
    """Convenience function to load config.

    Args:
        path: Optional path to config file
        logger: Optional MuxLogger

    Returns:
        Loaded MuxConfig instance
    """
    return ConfigLoader(logger=logger).load(path)
