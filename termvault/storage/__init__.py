"""YAML storage for connection records and SSH keys."""

from .connections import CONNECTIONS_FILE, ConnectionRepository
from .ssh_keys import KEYS_DIR, KEYS_FILE, SSHKeyStore

__all__ = [
    "CONNECTIONS_FILE",
    "ConnectionRepository",
    "KEYS_DIR",
    "KEYS_FILE",
    "SSHKeyStore",
]
