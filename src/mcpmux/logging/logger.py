"""mcpmux logger - component-scoped colored or JSON logging."""

import json
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TextIO

from mcpmux.logging.colors import (
    COMPONENT_COLORS,
    CYAN,
    LIGHT_BLUE,
    RED,
    RESET,
    STATE_COLORS,
    YELLOW,
)
from mcpmux.types import ConnectionState, LogFormat, LogLevel

_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}

_LEVEL_COLORS = {
    LogLevel.DEBUG: LIGHT_BLUE,
    LogLevel.INFO: CYAN,
    LogLevel.WARN: YELLOW,
    LogLevel.ERROR: RED,
}


@dataclass
class LogConfig:
    """Logger configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    show_context: bool = True
    truncate_at: int = 200
    components: dict[str, bool] = field(default_factory=dict)
    output: TextIO = field(default=sys.stderr)

    def __post_init__(self) -> None:
        """Initialize default components if not provided."""
        if not self.components:
            self.components = {
                "transport": True,
                "client": True,
                "manager": True,
                "oauth": True,
                "config": True,
            }


class MuxLogger:
    """Logger facade shared by transports, clients, the manager and OAuth.

    Component names are dotted, e.g. ``client.weather`` or
    ``transport.fs``; the part before the first dot selects the
    component switch in ``LogConfig.components``.
    """

    def __init__(self, config: LogConfig | None = None):
        """Initialize logger with configuration.

        Args:
            config: Logger configuration (defaults to LogConfig())
        """
        self.config = config or LogConfig()

    def configure(self, config: LogConfig) -> None:
        """Replace the configuration."""
        self.config = config

    def debug(self, component: str, message: str, **context: Any) -> None:
        self._log(LogLevel.DEBUG, component, message, context or None)

    def info(self, component: str, message: str, **context: Any) -> None:
        self._log(LogLevel.INFO, component, message, context or None)

    def warn(self, component: str, message: str, **context: Any) -> None:
        self._log(LogLevel.WARN, component, message, context or None)

    def error(self, component: str, message: str, **context: Any) -> None:
        self._log(LogLevel.ERROR, component, message, context or None)

    def state_change(
        self,
        server: str,
        state: ConnectionState,
        detail: str | None = None,
    ) -> None:
        """Log a connection state transition for one server.

        Args:
            server: Server name
            state: New connection state
            detail: Optional error detail
        """
        level = {
            ConnectionState.ERROR: LogLevel.ERROR,
            ConnectionState.AUTH_REQUIRED: LogLevel.WARN,
            ConnectionState.CONNECTING: LogLevel.DEBUG,
        }.get(state, LogLevel.INFO)

        message = f"{server}: {state.value}"
        if detail:
            message += f" ({detail})"

        context: dict[str, Any] = {"server": server, "state": state.value}
        if detail:
            context["error"] = detail

        if self.config.format == LogFormat.COLORED and self._should_log(level, "client"):
            color = STATE_COLORS.get(state, RESET)
            tag_color = COMPONENT_COLORS["client"]
            print(f"{tag_color}[CLIENT]{RESET} {color}{message}{RESET}", file=self.config.output)
            return

        self._log(level, f"client.{server}", message, context)

    def _should_log(self, level: LogLevel, component: str) -> bool:
        if _LEVEL_ORDER.get(level, 0) < _LEVEL_ORDER.get(self.config.level, 1):
            return False
        root = component.split(".", 1)[0]
        return self.config.components.get(root, True)

    def _log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Internal logging method.

        Args:
            level: Log level
            component: Dotted component name
            message: Log message
            context: Additional context data
        """
        if not self._should_log(level, component):
            return

        if self.config.format == LogFormat.JSON:
            self._log_json(level, component, message, context)
        else:
            self._log_colored(level, component, message, context)

    def _log_json(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": level.value,
            "component": component,
            "message": message,
        }
        if context:
            log_entry.update(context)

        print(json.dumps(log_entry, default=str), file=self.config.output)

    def _log_colored(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        color = _LEVEL_COLORS.get(level, RESET)
        root = component.split(".", 1)[0]
        component_color = COMPONENT_COLORS.get(root, RESET)

        # Format: [COMPONENT] message
        output = f"{component_color}[{component.upper()}]{RESET} {color}{message}{RESET}"

        if context and self.config.show_context:
            context_str = str(context)
            if len(context_str) > self.config.truncate_at:
                context_str = context_str[: self.config.truncate_at] + "..."
            output += f" {LIGHT_BLUE}{context_str}{RESET}"

        print(output, file=self.config.output)
