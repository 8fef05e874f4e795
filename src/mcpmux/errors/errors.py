"""mcpmux error types."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error source categories.

    The category is what callers branch on: NETWORK and RATE_LIMITED style
    faults are transient, AUTH faults need a human, PROTOCOL faults are the
    server's own answer, TRANSPORT faults mean the channel is gone.
    """

    NETWORK = "NETWORK"
    AUTH = "AUTH"
    PROTOCOL = "PROTOCOL"
    TRANSPORT = "TRANSPORT"
    TOOL = "TOOL"
    CONFIG = "CONFIG"
    SYSTEM = "SYSTEM"


@dataclass(eq=False)
class MuxError(Exception):
    """Structured error with context. Base exception for all mcpmux errors."""

    # Identity
    code: str  # e.g., "AUTH_REQUIRED"
    category: ErrorCategory

    # Messages
    message: str  # Human-readable summary
    detail: str | None = None  # Extended explanation
    suggestion: str | None = None  # Actionable fix

    # Context
    retryable: bool = False
    server: str | None = None
    tool_name: str | None = None
    status_code: int | None = None  # HTTP status or JSON-RPC error code

    # Underlying exception, if any
    cause: BaseException | None = None

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Set Exception message."""
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.detail and self.detail != self.message:
            return f"{self.message}: {self.detail}"
        return self.message

    @property
    def is_auth_error(self) -> bool:
        """True when the fault needs (re)authorization by a human."""
        return self.category == ErrorCategory.AUTH

    def to_dict(self) -> dict[str, Any]:
        """Serialize for status reports and JSON logs.

        Returns:
            Dictionary representation of the error
        """
        cause: Any = None
        if isinstance(self.cause, MuxError):
            cause = self.cause.to_dict()
        elif self.cause is not None:
            cause = {"type": type(self.cause).__name__, "message": str(self.cause)}

        return {
            "code": self.code,
            "category": self.category.value,
            "message": self.message,
            "detail": self.detail,
            "suggestion": self.suggestion,
            "retryable": self.retryable,
            "server": self.server,
            "tool_name": self.tool_name,
            "status_code": self.status_code,
            "timestamp": self.timestamp.isoformat(),
            "cause": cause,
        }

    def with_context(
        self,
        server: str | None = None,
        tool_name: str | None = None,
    ) -> "MuxError":
        """Return copy with additional context.

        Args:
            server: Optional server name
            tool_name: Optional tool name

        Returns:
            New MuxError instance with updated context
        """
        return MuxError(
            code=self.code,
            category=self.category,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
            retryable=self.retryable,
            server=server or self.server,
            tool_name=tool_name or self.tool_name,
            status_code=self.status_code,
            cause=self.cause,
            timestamp=self.timestamp,
        )


@dataclass
class ErrorTemplate:
    """Template for creating errors."""

    code: str
    category: ErrorCategory
    message_template: str  # "Server '{server}' requires authorization"
    detail_template: str | None = None
    suggestion_template: str | None = None
    default_retryable: bool = False


@dataclass
class MatchResult:
    """Result of matching an exception."""

    code: str
    context: dict[str, Any]
    retryable: bool | None = None  # None = use template default


class ErrorMatcher(ABC):
    """Base class for exception matchers."""

    @abstractmethod
    def matches(self, error: BaseException) -> bool:
        """Check if this matcher handles the error."""

    @abstractmethod
    def extract(self, error: BaseException) -> MatchResult:
        """Extract the mcpmux error code and context from the exception."""
