"""Unit tests for MuxApplication."""

import io
import sys

import pytest
import yaml

from mcpmux.application import MuxApplication
from mcpmux.errors import MuxError
from mcpmux.oauth import CredentialManager, FileTokenStore, TokenSet
from mcpmux.types import ConnectionState


@pytest.fixture
def config_file(tmp_path, fake_server_path):
    path = tmp_path / "mcpmux.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "servers": [
                    {
                        "name": "fs",
                        "transport": "stdio",
                        "command": sys.executable,
                        "args": [str(fake_server_path)],
                    },
                    {
                        "name": "food",
                        "url": "https://food.example.com/mcp",
                        "enabled": False,
                        "oauth": {
                            "required": True,
                            "auth_url": "https://auth.example.com/authorize",
                            "token_url": "https://auth.example.com/token",
                            "client_id": "cid",
                        },
                    },
                ],
                "token_cache": str(tmp_path / "tokens.json"),
                "logging": {"level": "DEBUG", "format": "json"},
            }
        )
    )
    return path


class TestMuxApplication:
    """Tests for MuxApplication wiring."""

    @pytest.mark.asyncio
    async def test_initialize_and_shutdown(self, config_file):
        output = io.StringIO()
        app = MuxApplication(config_path=str(config_file), log_output=output)
        try:
            await app.initialize()
            await app.initialize()

            assert app.summary.connected == 1
            assert app.manager.statuses()["fs"].state == ConnectionState.CONNECTED
            assert "food" not in app.manager.statuses()
            assert isinstance(app.token_store, FileTokenStore)
            assert '"component": "manager"' in output.getvalue()
        finally:
            await app.shutdown()
        assert app.manager.statuses() == {}

    @pytest.mark.asyncio
    async def test_credential_manager(self, config_file):
        app = MuxApplication(config_path=str(config_file), connect=False)
        await app.initialize()

        credentials = app.credential_manager("food")
        assert isinstance(credentials, CredentialManager)
        assert credentials.oauth_config.client_id == "cid"

        app.token_store.save("food", TokenSet(access_token="a"))
        assert credentials.has_tokens()

        with pytest.raises(MuxError) as exc_info:
            app.credential_manager("nope")
        assert exc_info.value.code == "SERVER_NOT_FOUND"

    def test_credential_manager_before_initialize(self, config_file):
        app = MuxApplication(config_path=str(config_file), connect=False)
        with pytest.raises(RuntimeError, match="not initialized"):
            app.credential_manager("food")
