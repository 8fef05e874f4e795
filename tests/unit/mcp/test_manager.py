"""Unit tests for MCPClientManager."""

import time
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

from mcpmux.errors import MuxError
from mcpmux.mcp import MCPClient, MCPClientManager
from mcpmux.mcp.transports import HTTPTransport
from mcpmux.oauth import FileTokenStore, MemoryTokenStore, TokenSet
from mcpmux.types import ConnectionState


def _client_factory(handlers):
    """client_factory whose transports talk to a per-server mock handler."""

    def build(config, logger, credentials):
        def transport_factory(cfg, log):
            http = httpx.AsyncClient(transport=httpx.MockTransport(handlers[cfg.name]))
            return HTTPTransport(cfg.name, cfg.url, auth_token=cfg.auth_token, logger=log, client=http)

        return MCPClient(config, logger, credentials, transport_factory=transport_factory)

    return build


class TestLoadAndConnectAll:
    """Tests for bring-up and the partial-failure contract."""

    @pytest.mark.asyncio
    async def test_auth_required_and_healthy(self, http_config, fake_mcp_handler, logger):
        """One unauthorized server does not block the healthy one."""
        handlers = {
            "weather": fake_mcp_handler(),
            "food": fake_mcp_handler(status=401, tools=[{"name": "order"}]),
        }
        manager = MCPClientManager(logger=logger, client_factory=_client_factory(handlers))

        summary = await manager.load_and_connect_all(
            [http_config("weather"), http_config("food", oauth_required=True)]
        )

        assert (summary.connected, summary.auth_required, summary.failed) == (1, 1, 0)
        statuses = manager.statuses()
        assert statuses["weather"].state == ConnectionState.CONNECTED
        assert statuses["food"].state == ConnectionState.AUTH_REQUIRED
        assert [entry.key for entry in manager.all_tools()] == ["weather:get_forecast"]

    @pytest.mark.asyncio
    async def test_failures_recorded_not_raised(self, http_config, fake_mcp_handler):
        handlers = {"weather": fake_mcp_handler(), "down": fake_mcp_handler(status=503)}
        manager = MCPClientManager(client_factory=_client_factory(handlers))

        summary = await manager.load_and_connect_all([http_config("weather"), http_config("down")])

        assert summary.failed == 1
        assert summary.failures[0].server == "down"
        assert summary.failures[0].code == "SERVER_UNAVAILABLE"
        assert manager.errors == summary.failures
        assert manager.statuses()["down"].state == ConnectionState.ERROR

    @pytest.mark.asyncio
    async def test_disabled_servers_skipped(self, http_config, fake_mcp_handler):
        handlers = {"weather": fake_mcp_handler(), "off": fake_mcp_handler()}
        manager = MCPClientManager(client_factory=_client_factory(handlers))

        summary = await manager.load_and_connect_all(
            [http_config("weather"), http_config("off", enabled=False)]
        )

        assert summary.total == 1
        assert manager.get_client("off") is None
        assert handlers["off"].requests == []

    @pytest.mark.asyncio
    async def test_duplicate_tool_names_do_not_collide(self, http_config, fake_mcp_handler):
        tools = [{"name": "search", "description": "Search things"}]
        handlers = {"a": fake_mcp_handler(tools=tools), "b": fake_mcp_handler(tools=tools)}
        manager = MCPClientManager(client_factory=_client_factory(handlers))

        await manager.load_and_connect_all([http_config("a"), http_config("b")])

        assert sorted(entry.key for entry in manager.all_tools()) == ["a:search", "b:search"]

    @pytest.mark.asyncio
    async def test_no_servers(self):
        manager = MCPClientManager()
        summary = await manager.load_and_connect_all([])
        assert summary.total == 0
        assert manager.all_tools() == []

    @pytest.mark.asyncio
    async def test_cached_token_injected(self, http_config, fake_mcp_handler):
        handlers = {"food": fake_mcp_handler()}
        store = MemoryTokenStore({"food": TokenSet(access_token="cached", token_type="Bearer")})
        manager = MCPClientManager(token_store=store, client_factory=_client_factory(handlers))

        summary = await manager.load_and_connect_all([http_config("food", oauth_required=True)])

        assert summary.connected == 1
        assert handlers["food"].requests[0].headers["Authorization"] == "Bearer cached"

    @pytest.mark.asyncio
    async def test_token_cache_round_trip(self, http_config, fake_mcp_handler, tmp_path):
        """A token written to disk is reused by a fresh manager without a new flow."""
        path = tmp_path / "tokens.json"
        FileTokenStore(path).save(
            "food",
            TokenSet(access_token="persisted", expires_at=time.time() + 3600),
        )

        handlers = {"food": fake_mcp_handler()}
        manager = MCPClientManager(
            token_store=FileTokenStore(path), client_factory=_client_factory(handlers)
        )
        await manager.load_and_connect_all([http_config("food", oauth_required=True)])

        assert manager.get_client("food").config.auth_token == "Bearer persisted"
        assert handlers["food"].requests[0].headers["Authorization"] == "Bearer persisted"

    @pytest.mark.asyncio
    async def test_undecodable_token_cache_does_not_abort(
        self, http_config, fake_mcp_handler, tmp_path
    ):
        path = tmp_path / "tokens.json"
        path.write_bytes(b'{"weather": "\xff\xfe"}')
        handlers = {"weather": fake_mcp_handler()}
        manager = MCPClientManager(
            token_store=FileTokenStore(path), client_factory=_client_factory(handlers)
        )

        summary = await manager.load_and_connect_all([http_config("weather")])

        assert summary.connected == 1
        assert "Authorization" not in handlers["weather"].requests[0].headers

    @pytest.mark.asyncio
    async def test_client_construction_failure_recorded(self, http_config, fake_mcp_handler):
        handlers = {"weather": fake_mcp_handler()}

        def credentials_factory(config):
            if config.name == "broken":
                raise RuntimeError("bad credentials setup")
            return None

        manager = MCPClientManager(
            client_factory=_client_factory(handlers), credentials_factory=credentials_factory
        )

        summary = await manager.load_and_connect_all([http_config("broken"), http_config("weather")])

        assert (summary.connected, summary.failed) == (1, 1)
        assert summary.failures[0].server == "broken"
        assert summary.failures[0].code == "INTERNAL_ERROR"
        assert manager.get_client("broken") is None
        assert manager.errors == summary.failures


class TestManagerQueries:
    """Tests for lookup, search and calls."""

    @pytest_asyncio.fixture
    async def manager(self, http_config, fake_mcp_handler):
        handlers = {
            "weather": fake_mcp_handler(
                tools=[
                    {"name": "get_forecast", "description": "Weather FORECAST"},
                    {"name": "get_alerts", "description": "Storm warnings"},
                ]
            ),
            "food": fake_mcp_handler(tools=[{"name": "search_restaurants"}]),
        }
        manager = MCPClientManager(client_factory=_client_factory(handlers))
        await manager.load_and_connect_all([http_config("weather"), http_config("food")])
        return manager

    @pytest.mark.asyncio
    async def test_search_by_name_case_insensitive(self, manager):
        assert [e.key for e in manager.search_tools("SEARCH")] == ["food:search_restaurants"]

    @pytest.mark.asyncio
    async def test_search_by_description(self, manager):
        assert [e.key for e in manager.search_tools("storm")] == ["weather:get_alerts"]
        assert [e.key for e in manager.search_tools("forecast")] == ["weather:get_forecast"]

    @pytest.mark.asyncio
    async def test_call_tool_routes_to_server(self, manager):
        result = await manager.call_tool("food", "search_restaurants", {"q": "dosa"})
        assert result["content"][0]["text"] == "called search_restaurants"

    @pytest.mark.asyncio
    async def test_call_tool_unknown_server(self, manager):
        with pytest.raises(MuxError) as exc_info:
            await manager.call_tool("nope", "x", {})
        assert exc_info.value.code == "SERVER_NOT_FOUND"
        assert exc_info.value.message == "MCP server not found: nope"

    @pytest.mark.asyncio
    async def test_disconnect_all_idempotent(self, manager):
        await manager.disconnect_all()
        await manager.disconnect_all()
        assert manager.all_tools() == []
        assert manager.statuses() == {}


class TestAuthorize:
    """Tests for authorize()."""

    @pytest.mark.asyncio
    async def test_authorize_reconnects(self, http_config, fake_mcp_handler):
        handler = fake_mcp_handler(status=401)
        manager = MCPClientManager(client_factory=_client_factory({"food": handler}))
        await manager.load_and_connect_all([http_config("food", oauth_required=True)])
        assert manager.statuses()["food"].state == ConnectionState.AUTH_REQUIRED

        tokens = TokenSet(access_token="granted")
        credentials = MagicMock()
        credentials.authorize_interactive = AsyncMock(return_value=tokens)
        credentials.has_tokens.return_value = True
        credentials.get_valid_token = AsyncMock(return_value="granted")
        credentials.tokens = tokens
        handler.status = 200

        assert await manager.authorize("food", credentials, open_browser=False) is True
        assert manager.statuses()["food"].state == ConnectionState.CONNECTED
        assert [e.key for e in manager.all_tools()] == ["food:get_forecast"]
        assert handler.requests[-1].headers["Authorization"] == "Bearer granted"

    @pytest.mark.asyncio
    async def test_authorize_unknown_server(self):
        with pytest.raises(MuxError) as exc_info:
            await MCPClientManager().authorize("nope", MagicMock())
        assert exc_info.value.code == "SERVER_NOT_FOUND"
