"""Credential Manager - OAuth 2.0 authorization code flow with PKCE."""

import time
import webbrowser
from collections.abc import Callable, Iterable
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx

from mcpmux.config.models import OAuthConfig
from mcpmux.errors import MuxError, create_error, get_error_factory
from mcpmux.logging.logger import MuxLogger
from mcpmux.types import LogLevel, OAuthState

from .callback import CallbackListener
from .pkce import code_challenge, generate_code_verifier, generate_state
from .store import TokenStore
from .tokens import TokenSet

TOKEN_REQUEST_TIMEOUT = 30.0


class CredentialManager:
    """Owns the OAuth tokens of one server.

    ``idle -> awaiting_code -> exchanging -> authorized | failed`` and later
    ``authorized -> refreshing -> authorized | failed``.
    """

    def __init__(
        self,
        server_name: str,
        oauth_config: OAuthConfig,
        store: TokenStore,
        logger: MuxLogger | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
        siblings: Iterable[str] = (),
    ):
        """Initialize credential manager.

        Args:
            server_name: Server whose tokens are managed
            oauth_config: Provider endpoints and client registration
            store: Token cache
            logger: Optional logger
            http_client: Client for token endpoint calls (one is created per call if None)
            clock: Returns current epoch seconds
            siblings: Other servers that receive a copy of every new TokenSet
        """
        self.server_name = server_name
        self.oauth_config = oauth_config
        self.store = store
        shared = dict.fromkeys([*siblings, *oauth_config.share_with])
        self.siblings = [name for name in shared if name != server_name]
        self._logger = logger
        self._http_client = http_client
        self._clock = clock

        self.state = OAuthState.IDLE
        self.tokens: TokenSet | None = None
        self._code_verifier: str | None = None
        self._expected_state: str | None = None

    def _log(self, level: LogLevel, message: str, **context: Any) -> None:
        """Log message if logger available."""
        if self._logger:
            self._logger._log(level, f"oauth.{self.server_name}", message, context or None)

    def _set_state(self, state: OAuthState) -> None:
        if state != self.state:
            self._log(LogLevel.DEBUG, f"{self.state.value} -> {state.value}")
        self.state = state

    @property
    def scope(self) -> str:
        return " ".join(self.oauth_config.scopes)

    def has_tokens(self) -> bool:
        """True if a TokenSet is in memory or in the store."""
        return self._load() is not None

    def _load(self) -> TokenSet | None:
        if self.tokens is None:
            self.tokens = self.store.load(self.server_name)
            if self.tokens is not None and self.state == OAuthState.IDLE:
                self.state = OAuthState.AUTHORIZED
        return self.tokens

    def build_authorization_url(self) -> str:
        """Start a flow: fresh verifier and state, returns the URL to visit.

        Raises:
            MuxError(CONFIG_INVALID): If the provider endpoints are not configured
        """
        if not self.oauth_config.can_authorize:
            raise create_error(
                "CONFIG_INVALID",
                server=self.server_name,
                detail="oauth.auth_url, oauth.token_url and oauth.client_id are required",
            )

        self._code_verifier = generate_code_verifier()
        self._expected_state = generate_state()

        params = {
            "response_type": "code",
            "client_id": self.oauth_config.client_id,
            "redirect_uri": self.oauth_config.redirect_uri,
            "scope": self.scope,
            "code_challenge": code_challenge(self._code_verifier),
            "code_challenge_method": "S256",
            "state": self._expected_state,
        }
        parsed = urlparse(self.oauth_config.auth_url or "")
        query = parse_qsl(parsed.query, keep_blank_values=True) + list(params.items())

        self._set_state(OAuthState.AWAITING_CODE)
        return urlunparse(parsed._replace(query=urlencode(query)))

    async def exchange_code_for_token(self, code: str, state: str | None = None) -> TokenSet:
        """Trade an authorization code for tokens, then persist them.

        Raises:
            MuxError(AUTHORIZATION_DENIED): ``state`` does not match the flow
            MuxError(TOKEN_EXCHANGE_FAILED): Token endpoint rejected the request
        """
        if state is not None and state != self._expected_state:
            self._set_state(OAuthState.FAILED)
            raise create_error(
                "AUTHORIZATION_DENIED",
                server=self.server_name,
                detail="State parameter mismatch (possible CSRF)",
            )

        self._set_state(OAuthState.EXCHANGING)
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.oauth_config.redirect_uri,
            "client_id": self.oauth_config.client_id or "",
        }
        if self._code_verifier:
            form["code_verifier"] = self._code_verifier
        if self.oauth_config.client_secret:
            form["client_secret"] = self.oauth_config.client_secret

        try:
            data = await self._post_token_request(form)
            tokens = TokenSet.from_token_response(data, self._clock(), self.scope or None)
        except ValueError as e:
            self._set_state(OAuthState.FAILED)
            raise create_error(
                "TOKEN_EXCHANGE_FAILED", server=self.server_name, detail=str(e), cause=e
            ) from e
        except MuxError:
            self._set_state(OAuthState.FAILED)
            raise

        self._code_verifier = None
        self._expected_state = None
        self._persist(tokens)
        self._set_state(OAuthState.AUTHORIZED)
        self._log(LogLevel.INFO, "Authorization complete")
        return tokens

    async def refresh_token(self) -> TokenSet:
        """Use the refresh token for a new access token.

        Raises:
            MuxError(NO_REFRESH_TOKEN): Nothing to refresh with (no request is made)
            MuxError(TOKEN_EXCHANGE_FAILED): Token endpoint rejected the request
        """
        current = self._load()
        if current is None or not current.refresh_token:
            raise create_error("NO_REFRESH_TOKEN", server=self.server_name)

        self._set_state(OAuthState.REFRESHING)
        form = {
            "grant_type": "refresh_token",
            "refresh_token": current.refresh_token,
            "client_id": self.oauth_config.client_id or "",
        }
        if self.oauth_config.client_secret:
            form["client_secret"] = self.oauth_config.client_secret

        try:
            data = await self._post_token_request(form)
        except MuxError:
            self._set_state(OAuthState.FAILED)
            raise

        tokens = current.merged_with(data, self._clock())
        self._persist(tokens)
        self._set_state(OAuthState.AUTHORIZED)
        self._log(LogLevel.INFO, "Access token refreshed")
        return tokens

    async def get_valid_token(self) -> str:
        """Current access token, refreshed first when it has expired.

        Raises:
            MuxError(AUTH_REQUIRED): No token has ever been obtained
        """
        tokens = self._load()
        if tokens is None:
            raise create_error("AUTH_REQUIRED", server=self.server_name)

        if tokens.is_expired(self._clock()):
            if tokens.refresh_token:
                tokens = await self.refresh_token()
            else:
                self._log(LogLevel.WARN, "Access token expired and no refresh token is available")
        return tokens.access_token

    async def authorize_interactive(
        self,
        open_browser: bool = True,
        timeout: float = 300.0,
        listener: CallbackListener | None = None,
    ) -> TokenSet:
        """Run the whole flow through a local callback listener.

        The authorization URL is always logged so it can be opened by hand.
        """
        listener = listener or CallbackListener.from_redirect_uri(
            self.oauth_config.redirect_uri, logger=self._logger
        )
        url = self.build_authorization_url()

        def announce() -> None:
            self._log(LogLevel.INFO, f"Open this URL to authorize: {url}")
            if open_browser:
                webbrowser.open(url)

        try:
            return await listener.wait_for_code(
                self.exchange_code_for_token, timeout=timeout, on_ready=announce
            )
        except MuxError:
            self._set_state(OAuthState.FAILED)
            raise

    async def _post_token_request(self, form: dict[str, str]) -> dict[str, Any]:
        token_url = self.oauth_config.token_url
        if not token_url:
            raise create_error(
                "CONFIG_INVALID",
                server=self.server_name,
                detail="oauth.token_url is required to request tokens",
            )
        try:
            if self._http_client is not None:
                response = await self._http_client.post(token_url, data=form)
            else:
                async with httpx.AsyncClient(timeout=TOKEN_REQUEST_TIMEOUT) as client:
                    response = await client.post(token_url, data=form)
        except httpx.HTTPError as e:
            raise get_error_factory().from_exception(e, server=self.server_name) from e

        if not response.is_success:
            raise create_error(
                "TOKEN_EXCHANGE_FAILED",
                server=self.server_name,
                status_code=response.status_code,
                detail=f"HTTP {response.status_code}: {response.text[:200]}",
            )
        try:
            data = response.json()
        except ValueError as e:
            raise create_error(
                "TOKEN_EXCHANGE_FAILED",
                server=self.server_name,
                detail=f"Token endpoint returned invalid JSON: {e}",
                cause=e,
            ) from e
        if not isinstance(data, dict):
            raise create_error(
                "TOKEN_EXCHANGE_FAILED",
                server=self.server_name,
                detail="Token endpoint returned a non-object body",
            )
        return data

    def _persist(self, tokens: TokenSet) -> None:
        self.tokens = tokens
        self.store.save(self.server_name, tokens)
        for sibling in self.siblings:
            self.store.save(sibling, tokens)
        if self.siblings:
            self._log(LogLevel.DEBUG, f"Tokens shared with {', '.join(self.siblings)}")
