"""TokenSet - an OAuth token response with an absolute expiry."""

from dataclasses import dataclass
from typing import Any

DEFAULT_EXPIRES_IN = 3600
DEFAULT_TOKEN_TYPE = "Bearer"

# Epoch values above this are milliseconds (older caches stored Date.now())
_MILLISECOND_THRESHOLD = 1e11


def _epoch_seconds(value: Any) -> float | None:
    if value is None:
        return None
    seconds = float(value)
    if seconds > _MILLISECOND_THRESHOLD:
        seconds /= 1000
    return seconds


@dataclass
class TokenSet:
    """Tokens for one server.

    ``expires_at`` and ``created_at`` are epoch seconds. ``expires_at`` of
    ``None`` means the token never expires.
    """

    access_token: str
    refresh_token: str | None = None
    token_type: str = DEFAULT_TOKEN_TYPE
    expires_at: float | None = None
    scope: str | None = None
    created_at: float | None = None

    @classmethod
    def from_token_response(
        cls,
        data: dict[str, Any],
        now: float,
        default_scope: str | None = None,
    ) -> "TokenSet":
        """Build from a token endpoint response.

        Args:
            data: Parsed JSON body
            now: Current epoch seconds
            default_scope: Scope to record when the response omits one

        Raises:
            ValueError: If ``access_token`` is missing
        """
        access_token = data.get("access_token")
        if not access_token:
            raise ValueError("Token response has no access_token")

        expires_in = data.get("expires_in")
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or DEFAULT_TOKEN_TYPE,
            expires_at=now + float(expires_in if expires_in is not None else DEFAULT_EXPIRES_IN),
            scope=data.get("scope") or default_scope,
            created_at=now,
        )

    def merged_with(self, data: dict[str, Any], now: float) -> "TokenSet":
        """Apply a refresh response; fields it omits are carried over."""
        expires_in = data.get("expires_in")
        return TokenSet(
            access_token=data.get("access_token") or self.access_token,
            refresh_token=data.get("refresh_token") or self.refresh_token,
            token_type=data.get("token_type") or self.token_type,
            expires_at=(
                now + float(expires_in) if expires_in is not None else now + DEFAULT_EXPIRES_IN
            ),
            scope=data.get("scope") or self.scope,
            created_at=now,
        )

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "access_token": self.access_token,
            "token_type": self.token_type,
        }
        if self.refresh_token is not None:
            data["refresh_token"] = self.refresh_token
        if self.expires_at is not None:
            data["expires_at"] = self.expires_at
        if self.scope is not None:
            data["scope"] = self.scope
        if self.created_at is not None:
            data["created_at"] = self.created_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenSet":
        """Load a cached record.

        Raises:
            ValueError: If the record has no access token
        """
        if not isinstance(data, dict) or not data.get("access_token"):
            raise ValueError("Cached token record has no access_token")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or DEFAULT_TOKEN_TYPE,
            expires_at=_epoch_seconds(data.get("expires_at")),
            scope=data.get("scope"),
            created_at=_epoch_seconds(data.get("created_at")),
        )
