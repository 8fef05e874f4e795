"""ANSI color codes for terminal output.

All colors use the 256-color palette.

Usage:
    from mcpmux.logging.colors import GREEN, RESET

    print(f"{GREEN}connected{RESET}")
"""

from mcpmux.types import ConnectionState

RESET = "\033[0m"

GREEN = "\033[38;5;82m"
RED = "\033[38;5;196m"
YELLOW = "\033[38;5;226m"
ORANGE = "\033[38;5;208m"
LIGHT_BLUE = "\033[38;5;153m"
CYAN = "\033[38;5;51m"
MAGENTA = "\033[38;5;201m"
GRAY = "\033[38;5;245m"

# Connection state -> color used in state-change log lines
STATE_COLORS: dict[ConnectionState, str] = {
    ConnectionState.CONNECTED: GREEN,
    ConnectionState.CONNECTING: LIGHT_BLUE,
    ConnectionState.AUTH_REQUIRED: YELLOW,
    ConnectionState.ERROR: RED,
    ConnectionState.DISCONNECTED: GRAY,
}

# Component prefix -> color of the [COMPONENT] tag
COMPONENT_COLORS: dict[str, str] = {
    "transport": LIGHT_BLUE,
    "client": CYAN,
    "manager": MAGENTA,
    "oauth": ORANGE,
    "config": GRAY,
}

__all__ = [
    "RESET",
    "GREEN",
    "RED",
    "YELLOW",
    "ORANGE",
    "LIGHT_BLUE",
    "CYAN",
    "MAGENTA",
    "GRAY",
    "STATE_COLORS",
    "COMPONENT_COLORS",
]
