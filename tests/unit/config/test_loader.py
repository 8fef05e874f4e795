"""Unit tests for ConfigLoader and server record parsing."""

import json

import pytest
import yaml

from mcpmux.config import (
    DEFAULT_REDIRECT_URI,
    ConfigLoader,
    load_config,
    parse_server_config,
    resolve_env_vars,
)
from mcpmux.errors import MuxError
from mcpmux.types import LogFormat, LogLevel, TransportKind


class TestResolveEnvVars:
    """Tests for ${VAR} resolution."""

    def test_set_variable(self, monkeypatch):
        monkeypatch.setenv("MUX_TOKEN", "abc")
        assert resolve_env_vars("Bearer ${MUX_TOKEN}") == "Bearer abc"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("MUX_MISSING", raising=False)
        assert resolve_env_vars("${MUX_MISSING:-fallback}") == "fallback"

    def test_required_missing(self, monkeypatch):
        monkeypatch.delenv("MUX_MISSING", raising=False)
        with pytest.raises(MuxError) as exc_info:
            resolve_env_vars("${MUX_MISSING}")
        assert exc_info.value.code == "CONFIG_INVALID"

    def test_custom_message(self, monkeypatch):
        monkeypatch.delenv("MUX_MISSING", raising=False)
        with pytest.raises(MuxError, match="set it please"):
            resolve_env_vars("${MUX_MISSING:?set it please}")


class TestParseServerConfig:
    """Tests for parse_server_config."""

    def test_http_record(self):
        config = parse_server_config(
            {"name": "weather", "type": "request-response", "url": "https://w.example.com/mcp"}
        )
        assert config.transport == TransportKind.HTTP
        assert config.url == "https://w.example.com/mcp"
        assert config.enabled is True

    def test_stdio_command_list(self):
        """A list-form command splits into executable and args."""
        config = parse_server_config(
            {"name": "fs", "transport": "process-pipe", "command": ["echo-server", "--root", "/"]}
        )
        assert config.transport == TransportKind.STDIO
        assert config.command == "echo-server"
        assert config.args == ["--root", "/"]

    def test_stdio_command_string_is_split(self):
        config = parse_server_config({"name": "fs", "transport": "stdio", "command": "npx -y srv"})
        assert config.command == "npx"
        assert config.args == ["-y", "srv"]

    def test_stdio_command_with_args_kept(self):
        config = parse_server_config(
            {"name": "fs", "transport": "stdio", "command": "my server", "args": ["--x"]}
        )
        assert config.command == "my server"
        assert config.args == ["--x"]

    def test_camel_case_oauth(self):
        """camelCase keys from JSON server files are accepted."""
        config = parse_server_config(
            {
                "name": "swiggy-food",
                "type": "http",
                "url": "https://mcp.example.com/food",
                "authToken": "tok",
                "oauth": {
                    "required": True,
                    "authUrl": "https://auth.example.com/authorize",
                    "tokenUrl": "https://auth.example.com/token",
                    "clientId": "cid",
                    "scopes": "read write",
                    "shareWith": ["swiggy-instamart"],
                },
            }
        )
        assert config.auth_token == "tok"
        assert config.auth_required is True
        assert config.oauth.client_id == "cid"
        assert config.oauth.scopes == ["read", "write"]
        assert config.oauth.share_with == ["swiggy-instamart"]
        assert config.oauth.redirect_uri == DEFAULT_REDIRECT_URI
        assert config.oauth.can_authorize

    def test_missing_url(self):
        with pytest.raises(MuxError, match="requires 'url'"):
            parse_server_config({"name": "weather", "type": "http"})

    def test_missing_command(self):
        with pytest.raises(MuxError, match="requires 'command'"):
            parse_server_config({"name": "fs", "type": "stdio"})

    def test_unknown_transport(self):
        with pytest.raises(MuxError) as exc_info:
            parse_server_config({"name": "x", "type": "carrier-pigeon"})
        assert exc_info.value.code == "CONFIG_INVALID"

    def test_disabled(self):
        config = parse_server_config({"name": "w", "url": "https://x", "enabled": False})
        assert config.enabled is False

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("false", False),
            ("False", False),
            ("0", False),
            ("no", False),
            ("", False),
            ("true", True),
            ("yes", True),
            ("1", True),
        ],
    )
    def test_string_flags(self, value, expected):
        config = parse_server_config(
            {"name": "w", "url": "https://x", "enabled": value, "oauth": {"required": value}}
        )
        assert config.enabled is expected
        assert config.oauth.required is expected


class TestConfigLoader:
    """Tests for ConfigLoader."""

    @pytest.fixture
    def loader(self):
        return ConfigLoader()

    def test_load_yaml(self, loader, tmp_path):
        path = tmp_path / "mcpmux.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "servers": [
                        {"name": "weather", "url": "https://w.example.com/mcp"},
                        {"name": "fs", "transport": "stdio", "command": "fs-server"},
                    ],
                    "token_cache": str(tmp_path / "tokens.json"),
                    "logging": {"level": "debug", "format": "json"},
                }
            )
        )

        config = loader.load(path)

        assert [s.name for s in config.servers] == ["weather", "fs"]
        assert config.token_cache == str(tmp_path / "tokens.json")
        assert config.logging.level == LogLevel.DEBUG
        assert config.logging.format == LogFormat.JSON
        assert loader.get() is config

    def test_servers_mapping(self, loader):
        """servers may be a name -> record mapping."""
        config = loader.load_from_dict({"servers": {"weather": {"url": "https://w"}}})
        assert config.servers[0].name == "weather"

    def test_servers_dir(self, loader, tmp_path):
        """servers_dir loads one file per server, relative to the config file."""
        servers = tmp_path / "servers"
        servers.mkdir()
        (servers / "food.json").write_text(
            json.dumps({"name": "swiggy-food", "type": "http", "url": "https://f"})
        )
        (servers / "fs.yaml").write_text(yaml.safe_dump({"transport": "stdio", "command": "fs"}))
        (servers / "README.md").write_text("ignored")
        path = tmp_path / "mcpmux.yaml"
        path.write_text(yaml.safe_dump({"servers_dir": "servers"}))

        config = loader.load(path)

        assert sorted(s.name for s in config.servers) == ["fs", "swiggy-food"]

    def test_env_resolution(self, loader, tmp_path, monkeypatch):
        monkeypatch.setenv("WEATHER_TOKEN", "secret")
        path = tmp_path / "mcpmux.yaml"
        path.write_text(
            "servers:\n"
            "  - name: weather\n"
            "    url: https://w\n"
            "    auth_token: ${WEATHER_TOKEN}\n"
        )
        assert loader.load(path).servers[0].auth_token == "secret"

    def test_enabled_from_env_default(self, loader, tmp_path, monkeypatch):
        monkeypatch.delenv("WEATHER_ENABLED", raising=False)
        path = tmp_path / "mcpmux.yaml"
        path.write_text(
            "servers:\n"
            "  - name: weather\n"
            "    url: https://w\n"
            "    enabled: ${WEATHER_ENABLED:-false}\n"
        )
        assert loader.load(path).servers[0].enabled is False

    def test_duplicate_names_rejected(self, loader):
        with pytest.raises(MuxError, match="duplicate server name"):
            loader.load_from_dict(
                {"servers": [{"name": "a", "url": "https://x"}, {"name": "a", "url": "https://y"}]}
            )

    def test_validate_collects_issues(self, loader):
        result = loader.validate(
            {
                "servers": [{"name": "a"}, {"name": "b", "transport": "stdio"}],
                "logging": {"level": "loud", "format": "xml"},
                "extra": 1,
            }
        )
        assert not result.valid
        paths = {issue.path for issue in result.errors}
        assert {"servers[0].url", "servers[1].command", "logging.level", "logging.format"} <= paths
        assert [w.path for w in result.warnings] == ["extra"]

    def test_missing_file_uses_defaults(self, loader, tmp_path):
        config = loader.load(tmp_path / "absent.yaml")
        assert config.servers == []

    def test_missing_file_strict(self, loader, tmp_path):
        with pytest.raises(MuxError, match="not found"):
            loader.load(tmp_path / "absent.yaml", use_defaults=False)

    def test_invalid_yaml(self, loader, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("servers: [unclosed")
        with pytest.raises(MuxError) as exc_info:
            loader.load(path)
        assert exc_info.value.code == "CONFIG_INVALID"

    def test_config_path_env(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump({"servers": [{"name": "w", "url": "https://w"}]}))
        monkeypatch.setenv("MCPMUX_CONFIG_PATH", str(path))
        assert load_config().servers[0].name == "w"

    def test_get_before_load(self, loader):
        with pytest.raises(MuxError):
            loader.get()
