"""Error matchers for converting exceptions to MuxErrors.

The HTTP status table and the network failure split live here so that
transports never classify failures by looking at message text.
"""

import asyncio
import errno
import socket

import httpx

from .errors import ErrorMatcher, MatchResult

# HTTP status -> error code. 5xx is handled as a range.
HTTP_STATUS_CODES: dict[int, str] = {
    401: "AUTH_REQUIRED",
    403: "PERMISSION_DENIED",
    404: "ENDPOINT_MISSING",
    429: "RATE_LIMITED",
}


def _exception_chain(error: BaseException) -> list[BaseException]:
    """Walk __cause__/__context__ links, guarding against cycles."""
    chain: list[BaseException] = []
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def _unmatched(error: BaseException) -> MatchResult:
    return MatchResult(
        code="INTERNAL_ERROR",
        context={"detail": str(error), "error_type": type(error).__name__},
    )


def _request_url(error: httpx.HTTPError) -> str:
    try:
        return str(error.request.url)
    except RuntimeError:
        # .request raises when the exception was built without one
        return "unknown"


class HTTPStatusMatcher(ErrorMatcher):
    """Matches non-2xx responses raised via ``Response.raise_for_status()``."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, httpx.HTTPStatusError)

    def extract(self, error: BaseException) -> MatchResult:
        if not isinstance(error, httpx.HTTPStatusError):
            return _unmatched(error)
        response = error.response
        status = response.status_code
        context: dict[str, object] = {
            "status_code": status,
            "url": _request_url(error),
        }

        if status in HTTP_STATUS_CODES:
            code = HTTP_STATUS_CODES[status]
        elif 500 <= status < 600:
            code = "SERVER_UNAVAILABLE"
        else:
            code = "HTTP_ERROR"
            context["detail"] = response.text[:100]

        if status == 429:
            context["retry_after"] = response.headers.get("Retry-After", "a few")

        return MatchResult(code=code, context=context)


class HTTPTimeoutMatcher(ErrorMatcher):
    """Matches httpx connect/read/write/pool timeouts."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, httpx.TimeoutException)

    def extract(self, error: BaseException) -> MatchResult:
        if not isinstance(error, httpx.TimeoutException):
            return _unmatched(error)
        return MatchResult(code="NETWORK_TIMEOUT", context={"url": _request_url(error)})


class HTTPConnectMatcher(ErrorMatcher):
    """Matches connection failures and splits refused from unreachable."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, (httpx.ConnectError, httpx.NetworkError))

    def extract(self, error: BaseException) -> MatchResult:
        if not isinstance(error, httpx.HTTPError):
            return _unmatched(error)
        context = {"url": _request_url(error), "detail": str(error) or None}

        for link in _exception_chain(error):
            if isinstance(link, ConnectionRefusedError) or (
                isinstance(link, OSError) and link.errno == errno.ECONNREFUSED
            ):
                return MatchResult(code="CONNECTION_REFUSED", context=context)
            if isinstance(link, socket.gaierror):
                break

        return MatchResult(code="NETWORK_UNREACHABLE", context=context)


class TimeoutErrorMatcher(ErrorMatcher):
    """Matches asyncio / builtin timeouts raised while awaiting a response."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, (asyncio.TimeoutError, TimeoutError))

    def extract(self, error: BaseException) -> MatchResult:
        return MatchResult(code="REQUEST_TIMEOUT", context={"detail": str(error) or None})


class BrokenChannelMatcher(ErrorMatcher):
    """Matches OS-level pipe and spawn failures."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, (BrokenPipeError, ConnectionResetError, FileNotFoundError))

    def extract(self, error: BaseException) -> MatchResult:
        return MatchResult(code="TRANSPORT_CLOSED", context={"detail": str(error)})


class GenericErrorMatcher(ErrorMatcher):
    """Fallback matcher for any exception."""

    def matches(self, error: BaseException) -> bool:
        return True

    def extract(self, error: BaseException) -> MatchResult:
        return _unmatched(error)


class ErrorMatcherChain:
    """Ordered chain of matchers. First match wins."""

    def __init__(self) -> None:
        """Initialize matcher chain with built-in matchers."""
        self.matchers: list[ErrorMatcher] = []
        self._load_builtin_matchers()

    def match(self, error: BaseException) -> MatchResult:
        """Find first matching matcher and extract result.

        Args:
            error: Exception to match

        Returns:
            MatchResult from first matching matcher
        """
        for matcher in self.matchers:
            if matcher.matches(error):
                return matcher.extract(error)

        # Unreachable while GenericErrorMatcher is last
        return _unmatched(error)

    def _load_builtin_matchers(self) -> None:
        """Load built-in matchers in priority order."""
        # Order matters - more specific matchers first
        self.matchers = [
            HTTPStatusMatcher(),
            HTTPTimeoutMatcher(),
            HTTPConnectMatcher(),
            TimeoutErrorMatcher(),
            BrokenChannelMatcher(),
            GenericErrorMatcher(),  # Fallback - must be last
        ]
