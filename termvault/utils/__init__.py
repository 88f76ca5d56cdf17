"""Utility modules for Termvault."""

from .logging import (
    console,
    escape_control,
    get_logger,
    setup_logging,
)


__all__ = [
    "setup_logging",
    "get_logger",
    "console",
    "escape_control",
]
