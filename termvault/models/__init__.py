"""Data models for Termvault."""

from .connection import AuthMethod, ConnectionSettings, ServerConnection
from .session_state import SessionState, shorten_path
from .ssh_key import SSHKey

__all__ = [
    # Connections
    "AuthMethod",
    "ConnectionSettings",
    "ServerConnection",
    # Keys
    "SSHKey",
    # Sessions
    "SessionState",
    "shorten_path",
]
