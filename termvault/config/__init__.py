"""Configuration for Termvault."""

from .settings import (
    Settings,
    SSHConfig,
    TerminalConfig,
    configure,
    get_settings,
)

__all__ = [
    "Settings",
    "SSHConfig",
    "TerminalConfig",
    "configure",
    "get_settings",
]
