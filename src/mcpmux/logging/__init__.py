"""mcpmux logging - component-scoped colored or JSON output."""

from .colors import COMPONENT_COLORS, RESET, STATE_COLORS
from .logger import LogConfig, MuxLogger

__all__ = [
    "MuxLogger",
    "LogConfig",
    "RESET",
    "STATE_COLORS",
    "COMPONENT_COLORS",
]
