"""One-shot local HTTP listener that receives the OAuth redirect."""

import asyncio
import html
import socket
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from urllib.parse import urlparse

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse
from starlette.routing import Route

from mcpmux.errors import MuxError, create_error
from mcpmux.logging.logger import MuxLogger
from mcpmux.types import LogLevel

T = TypeVar("T")
CodeHandler = Callable[[str, str | None], Awaitable[T]]

SUCCESS_PAGE = "<h1>Success!</h1><p>You can close this window and return to the terminal.</p>"


def _page(title: str, body: str = "") -> str:
    return f"<h1>{html.escape(title)}</h1><p>{html.escape(body)}</p>"


class CallbackListener:
    """Serves the redirect URI for exactly one authorization flow.

    The listener is shut down when the flow ends, whether it succeeded,
    was denied, failed during exchange, timed out or was cancelled.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 3000,
        path: str = "/oauth/callback",
        logger: MuxLogger | None = None,
    ):
        """Initialize callback listener.

        Args:
            host: Interface to bind
            port: Port to bind (0 picks a free port)
            path: Callback path from the redirect URI
            logger: Optional logger
        """
        self.host = host
        self.port = port
        self.path = path or "/"
        self._logger = logger
        self._result: asyncio.Future[Any] | None = None
        self._on_code: CodeHandler[Any] | None = None

    @classmethod
    def from_redirect_uri(cls, redirect_uri: str, logger: MuxLogger | None = None) -> "CallbackListener":
        parsed = urlparse(redirect_uri)
        return cls(
            host=parsed.hostname or "127.0.0.1",
            # The provider redirects to the registered URI, so its port is used as-is
            port=parsed.port or (443 if parsed.scheme == "https" else 80),
            path=parsed.path or "/",
            logger=logger,
        )

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}{self.path}"

    def _log(self, level: LogLevel, message: str) -> None:
        if self._logger:
            self._logger._log(level, "oauth.callback", message, None)

    def _build_app(self) -> Starlette:
        return Starlette(routes=[Route(self.path, self._handle_callback, methods=["GET"])])

    async def _handle_callback(self, request: Request) -> HTMLResponse:
        result, on_code = self._result, self._on_code
        if result is None or on_code is None or result.done():
            return HTMLResponse(_page("Authorization already handled"), status_code=409)

        params = request.query_params
        error = params.get("error")
        if error:
            description = params.get("error_description") or ""
            self._log(LogLevel.WARN, f"Authorization denied: {error}")
            result.set_exception(
                create_error(
                    "AUTHORIZATION_DENIED",
                    detail=f"OAuth error: {error}" + (f" ({description})" if description else ""),
                )
            )
            return HTMLResponse(_page("Authorization Failed", error), status_code=400)

        code = params.get("code")
        if not code:
            return HTMLResponse(_page("Missing authorization code"), status_code=400)

        try:
            value = await on_code(code, params.get("state"))
        except MuxError as e:
            if not result.done():
                result.set_exception(e)
            return HTMLResponse(_page("Token Exchange Failed", str(e)), status_code=500)

        if not result.done():
            result.set_result(value)
        return HTMLResponse(SUCCESS_PAGE)

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise create_error(
                "INTERNAL_ERROR",
                detail=f"Cannot listen for the OAuth callback on {self.host}:{self.port}: {e}",
                cause=e,
            ) from e
        self.port = sock.getsockname()[1]
        return sock

    async def wait_for_code(
        self,
        on_code: CodeHandler[T],
        timeout: float = 300.0,
        on_ready: Callable[[], None] | None = None,
    ) -> T:
        """Serve until the redirect arrives, then return ``on_code``'s value.

        Args:
            on_code: Called with ``(code, state)``; its result is returned
            timeout: Seconds to wait for the redirect
            on_ready: Called once the listener accepts connections

        Raises:
            MuxError(AUTHORIZATION_DENIED): Redirect carried an ``error``
            MuxError(AUTHORIZATION_TIMEOUT): No redirect within ``timeout``
        """
        sock = self._bind()
        self._result = asyncio.get_running_loop().create_future()
        self._on_code = on_code

        config = uvicorn.Config(
            self._build_app(),
            log_level="warning",
            lifespan="off",
            timeout_graceful_shutdown=2,
        )
        server = uvicorn.Server(config)
        serve_task = asyncio.create_task(server.serve(sockets=[sock]))

        try:
            while not server.started:
                if serve_task.done():
                    serve_task.result()
                    raise create_error("INTERNAL_ERROR", detail="OAuth callback server stopped")
                await asyncio.sleep(0.01)

            self._log(LogLevel.INFO, f"Callback server listening on {self.redirect_uri}")
            if on_ready is not None:
                on_ready()

            try:
                return await asyncio.wait_for(asyncio.shield(self._result), timeout=timeout)
            except TimeoutError:
                raise create_error("AUTHORIZATION_TIMEOUT", timeout_seconds=timeout) from None
        finally:
            server.should_exit = True
            try:
                await asyncio.wait_for(serve_task, timeout=5)
            except TimeoutError:
                serve_task.cancel()
            except Exception as e:
                self._log(LogLevel.DEBUG, f"Callback server shutdown error: {e}")
            sock.close()
            if not self._result.done():
                self._result.cancel()
            self._result = None
            self._on_code = None
            self._log(LogLevel.DEBUG, "Callback server closed")
