"""Shared validation types for mcpmux."""

from dataclasses import dataclass, field


@dataclass
class ValidationIssue:
    """Single config validation issue (error or warning)."""

    path: str  # e.g., "servers[2].url"
    message: str
    severity: str = "error"  # "error" | "warning"


@dataclass
class ValidationResult:
    """Result of validating a configuration document."""

    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Ensure valid is False if there are errors."""
        if self.errors:
            self.valid = False
