import asyncio
import time
from datetime import datetime
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mcpmux.application import MuxApplication
from mcpmux.config import load_config
from mcpmux.errors import MuxError
from mcpmux.mcp import MCPClientManager
from mcpmux.oauth import FileTokenStore
from mcpmux.types import ConnectionState

app = typer.Typer(help="Connect to MCP tool servers and inspect them.")
console = Console()

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to config file")

_STATE_STYLES = {
    ConnectionState.CONNECTED: "green",
    ConnectionState.AUTH_REQUIRED: "yellow",
    ConnectionState.ERROR: "red",
    ConnectionState.CONNECTING: "cyan",
    ConnectionState.DISCONNECTED: "dim",
}


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except MuxError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        if e.suggestion:
            console.print(f"[dim]{escape(e.suggestion)}[/dim]")
        raise typer.Exit(code=1) from e


def _manager(application: MuxApplication) -> MCPClientManager:
    if application.manager is None:
        raise RuntimeError("Application not initialized")
    return application.manager


async def _with_app(config: str | None, action: Any) -> Any:
    application = MuxApplication(config_path=config)
    try:
        await application.initialize()
        return await action(application)
    finally:
        await application.shutdown()


@app.command()
def status(config: str | None = CONFIG_OPTION) -> None:
    """
    Connect to every enabled server and show its state.
    """

    async def collect(application: MuxApplication) -> Any:
        return _manager(application).statuses()

    statuses = _run(_with_app(config, collect))
    table = Table("Server", "State", "Tools", "Error")
    for name, server_status in statuses.items():
        style = _STATE_STYLES.get(server_status.state, "")
        table.add_row(
            name,
            f"[{style}]{server_status.state.value}[/{style}]" if style else server_status.state.value,
            str(len(server_status.tools)),
            escape(server_status.error or ""),
        )
    console.print(table)


@app.command()
def tools(
    query: str | None = typer.Argument(None, help="Filter by name or description"),
    config: str | None = CONFIG_OPTION,
) -> None:
    """
    List tools from every connected server.
    """

    async def collect(application: MuxApplication) -> Any:
        manager = _manager(application)
        if query:
            return manager.search_tools(query)
        return manager.all_tools()

    entries = _run(_with_app(config, collect))
    table = Table("Tool", "Description")
    for entry in sorted(entries, key=lambda e: e.key):
        table.add_row(entry.key, escape(entry.description or ""))
    console.print(table)


@app.command("auth-status")
def auth_status(config: str | None = CONFIG_OPTION) -> None:
    """
    Show which servers have cached OAuth tokens.
    """
    try:
        mux_config = load_config(config)
    except MuxError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    store = FileTokenStore(mux_config.token_cache)
    cached = store.load_all()
    now = time.time()

    table = Table("Server", "Status", "Expires", "Action")
    for server in mux_config.servers:
        if not server.enabled:
            continue
        tokens = cached.get(server.name)
        if tokens is not None:
            expired = tokens.is_expired(now)
            state = "[yellow]Expired[/yellow]" if expired else "[green]Authenticated[/green]"
            expires = (
                datetime.fromtimestamp(tokens.expires_at).isoformat(timespec="seconds")
                if tokens.expires_at
                else "never"
            )
            action = "Re-authorize" if expired and not tokens.refresh_token else ""
        elif server.auth_required:
            state, expires, action = "[red]Needs auth[/red]", "", f"mcpmux authorize {server.name}"
        else:
            state, expires, action = "[dim]No auth[/dim]", "", ""
        table.add_row(server.name, state, expires, action)

    console.print(table)
    console.print(f"[dim]Token cache: {store.path}[/dim]")


@app.command()
def authorize(
    server: str = typer.Argument(..., help="Server name"),
    open_browser: bool = typer.Option(True, "--browser/--no-browser"),
    timeout: float = typer.Option(300.0, help="Seconds to wait for the redirect"),
    config: str | None = CONFIG_OPTION,
) -> None:
    """
    Run the OAuth flow for a server and cache its tokens.
    """

    async def run(application: MuxApplication) -> bool:
        return await application.setup_oauth(server, open_browser=open_browser, timeout=timeout)

    connected = _run(_with_app(config, run))
    console.print(f"[green]Authorized {server}[/green]")
    if connected:
        console.print(f"{server} is now connected")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
