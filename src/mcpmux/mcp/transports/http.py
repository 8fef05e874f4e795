"""Request-response transport: one HTTP POST per protocol method."""

import itertools
import json
from typing import Any

import httpx

from mcpmux.errors import create_error, get_error_factory
from mcpmux.logging.logger import MuxLogger
from mcpmux.types import LogLevel

from ..protocol import JSONRPCMessage
from .base import JSONRPCTransport

SESSION_HEADER = "Mcp-Session-Id"


def authorization_header(token: str) -> str:
    """Render a token as an Authorization header value.

    Tokens that already carry a scheme (``Bearer abc``) are used verbatim.
    """
    token = token.strip()
    if " " in token:
        return token
    return f"Bearer {token}"


class HTTPTransport(JSONRPCTransport):
    """MCP over stateless HTTP requests.

    Status codes and network failures are mapped to typed ``MuxError``s by
    the error matchers; a JSON-RPC ``error`` envelope in a 2xx response
    becomes ``PROTOCOL_ERROR``.
    """

    def __init__(
        self,
        server: str,
        url: str,
        headers: dict[str, str] | None = None,
        auth_token: str | None = None,
        timeout: float = 30.0,
        logger: MuxLogger | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize HTTP transport.

        Args:
            server: Server name (for errors and logs)
            url: Endpoint URL receiving every JSON-RPC POST
            headers: Static headers sent with every request
            auth_token: Optional bearer token
            timeout: Per-request timeout in seconds
            logger: Optional logger
            client: Optional pre-built httpx client (not closed by disconnect)
        """
        super().__init__(server, logger)
        self.url = url
        self._static_headers = dict(headers or {})
        self._auth_token = auth_token
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._ids = itertools.count(1)
        self._session_id: str | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    def set_auth_token(self, token: str | None) -> None:
        self._auth_token = token

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            **self._static_headers,
        }
        if self._auth_token:
            headers["Authorization"] = authorization_header(self._auth_token)
        if self._session_id:
            headers[SESSION_HEADER] = self._session_id
        return headers

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        if self._closed:
            raise create_error("TRANSPORT_CLOSED", server=self.server)

        try:
            response = await self._client.post(self.url, json=payload, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            error = get_error_factory().from_exception(e, server=self.server)
            self._log(LogLevel.DEBUG, f"{payload.get('method')} failed: {error}", code=error.code)
            raise error from e

        session_id = response.headers.get(SESSION_HEADER)
        if session_id:
            self._session_id = session_id
        return response

    async def _request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        request_id = next(self._ids)
        response = await self._post(JSONRPCMessage.request(method, params, request_id))
        message = self._decode(response, request_id)

        if JSONRPCMessage.is_error(message):
            error = JSONRPCMessage.get_error(message)
            raise create_error(
                "PROTOCOL_ERROR",
                server=self.server,
                message=error.get("message") or json.dumps(error),
                status_code=error.get("code"),
            )

        return message.get("result")

    async def _notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        await self._post(JSONRPCMessage.notification(method, params))

    def _decode(self, response: httpx.Response, request_id: int) -> dict[str, Any]:
        """Decode a JSON or event-stream response body into one message."""
        content_type = response.headers.get("content-type", "")

        if content_type.startswith("text/event-stream"):
            for line in response.text.splitlines():
                if not line.startswith("data:"):
                    continue
                try:
                    message = JSONRPCMessage.parse(line[5:].strip())
                except ValueError:
                    continue
                if message.get("id") == request_id:
                    return message
            raise create_error(
                "PROTOCOL_ERROR",
                server=self.server,
                message=f"no response for request {request_id} in event stream",
            )

        try:
            return JSONRPCMessage.parse(response.content)
        except ValueError as e:
            raise create_error(
                "PROTOCOL_ERROR",
                server=self.server,
                message="invalid JSON response",
                detail=response.text[:100] or "empty body",
                cause=e,
            ) from e

    async def disconnect(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            await self._client.aclose()
        self._log(LogLevel.DEBUG, "Closed")
