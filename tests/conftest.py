"""
Pytest configuration and shared fixtures for mcpmux tests.
"""

import io
import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from mcpmux.config import OAuthConfig, ServerConfig
from mcpmux.logging import LogConfig, MuxLogger
from mcpmux.types import LogFormat, LogLevel, TransportKind

# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def tests_dir() -> Path:
    """Return the tests directory."""
    return Path(__file__).parent


@pytest.fixture(scope="session")
def fixtures_dir(tests_dir: Path) -> Path:
    """Return the fixtures directory."""
    return tests_dir / "fixtures"


@pytest.fixture(scope="session")
def fake_server_path(fixtures_dir: Path) -> Path:
    """Return the path of the fake stdio MCP server script."""
    return fixtures_dir / "fake_stdio_server.py"


# =============================================================================
# Logging Fixtures
# =============================================================================


@pytest.fixture
def log_output() -> io.StringIO:
    """Captured log stream."""
    return io.StringIO()


@pytest.fixture
def logger(log_output: io.StringIO) -> MuxLogger:
    """JSON logger writing to ``log_output`` at DEBUG level."""
    return MuxLogger(LogConfig(level=LogLevel.DEBUG, format=LogFormat.JSON, output=log_output))


# =============================================================================
# Server Config Fixtures
# =============================================================================


@pytest.fixture
def stdio_config(fake_server_path: Path) -> Callable[..., ServerConfig]:
    """Factory for stdio configs that run the fake server."""

    def _make(name: str = "fs", *extra_args: str, **kwargs: Any) -> ServerConfig:
        return ServerConfig(
            name=name,
            transport=TransportKind.STDIO,
            command=sys.executable,
            args=[str(fake_server_path), *extra_args],
            **kwargs,
        )

    return _make


@pytest.fixture
def http_config() -> Callable[..., ServerConfig]:
    """Factory for HTTP configs."""

    def _make(name: str = "weather", oauth_required: bool = False, **kwargs: Any) -> ServerConfig:
        return ServerConfig(
            name=name,
            transport=TransportKind.HTTP,
            url=f"https://{name}.example.com/mcp",
            oauth=OAuthConfig(required=oauth_required),
            **kwargs,
        )

    return _make


# =============================================================================
# Fake HTTP MCP Server
# =============================================================================


class FakeMCPHandler:
    """``httpx.MockTransport`` handler speaking just enough MCP.

    Records every request; ``status`` forces an HTTP status for all calls.
    """

    def __init__(
        self,
        tools: list[dict[str, Any]] | None = None,
        status: int = 200,
        tool_results: dict[str, Any] | None = None,
    ):
        self.tools = tools if tools is not None else [
            {"name": "get_forecast", "description": "Weather forecast", "inputSchema": {}}
        ]
        self.status = status
        self.tool_results = tool_results or {}
        self.requests: list[httpx.Request] = []

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, text="nope")

        body = json.loads(request.content)
        if "id" not in body:
            return httpx.Response(202)

        method = body["method"]
        if method == "initialize":
            result: Any = {
                "protocolVersion": "2024-11-05",
                "capabilities": {"tools": {}},
                "serverInfo": {"name": "fake-http", "version": "1.0"},
            }
        elif method == "tools/list":
            result = {"tools": self.tools}
        elif method == "tools/call":
            name = body["params"]["name"]
            result = self.tool_results.get(
                name, {"content": [{"type": "text", "text": f"called {name}"}]}
            )
        else:
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": body["id"],
                    "error": {"code": -32601, "message": f"Method not found: {method}"},
                },
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


@pytest.fixture
def fake_mcp_handler() -> type[FakeMCPHandler]:
    """The FakeMCPHandler class."""
    return FakeMCPHandler


# =============================================================================
# Markers Configuration
# =============================================================================


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "property: Hypothesis property-based tests")
    config.addinivalue_line("markers", "stdio: Tests that spawn a fake stdio server")
