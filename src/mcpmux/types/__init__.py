"""Shared types for mcpmux.

Import from here rather than submodules:
    from mcpmux.types import ConnectionState, TransportKind
"""

from .enums import ConnectionState, LogFormat, LogLevel, OAuthState, TransportKind
from .validation import ValidationIssue, ValidationResult

__all__ = [
    # Enums
    "LogLevel",
    "LogFormat",
    "TransportKind",
    "ConnectionState",
    "OAuthState",
    # Validation
    "ValidationIssue",
    "ValidationResult",
]
