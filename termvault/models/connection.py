"""Server connection data models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class AuthMethod(Enum):
    """SSH authentication methods."""

    PASSWORD = "password"
    PUBLIC_KEY = "public_key"
    KEYBOARD_INTERACTIVE = "keyboard_interactive"


@dataclass
class ConnectionSettings:
    """Per-connection terminal settings (None = use global settings)."""

    terminal_columns: Optional[int] = None
    terminal_rows: Optional[int] = None
    term_type: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        return {
            "terminal_columns": self.terminal_columns,
            "terminal_rows": self.terminal_rows,
            "term_type": self.term_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConnectionSettings":
        """Create from dictionary."""
        return cls(
            terminal_columns=data.get("terminal_columns"),
            terminal_rows=data.get("terminal_rows"),
            term_type=data.get("term_type"),
        )


@dataclass
class ServerConnection:
    """
    A saved SSH connection.

    ``encrypted_password`` and ``private_key_passphrase`` hold EncryptedSecret
    strings, never plaintext. Which one is used depends on ``auth_method``.
    """

    name: str
    host: str
    username: str
    port: int = 22
    auth_method: AuthMethod = AuthMethod.PASSWORD
    encrypted_password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_passphrase: Optional[str] = None
    ssh_key_id: Optional[str] = None
    group: Optional[str] = None
    connection_timeout_seconds: int = 15
    settings: ConnectionSettings = field(default_factory=ConnectionSettings)
    usage_count: int = 0
    last_used: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def display_name(self) -> str:
        """Name shown in lists and logs."""
        if self.name:
            return self.name
        return f"{self.username}@{self.host}"

    @property
    def address(self) -> str:
        """user@host:port, used as error context."""
        return f"{self.username}@{self.host}:{self.port}"

    @property
    def has_secret(self) -> bool:
        """Whether the secret used by the current auth method is stored."""
        if self.auth_method is AuthMethod.PUBLIC_KEY:
            return bool(self.private_key_passphrase)
        return bool(self.encrypted_password)

    def mark_used(self) -> None:
        """Record a successful connection."""
        self.usage_count += 1
        self.last_used = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "auth_method": self.auth_method.value,
            "encrypted_password": self.encrypted_password,
            "private_key_path": self.private_key_path,
            "private_key_passphrase": self.private_key_passphrase,
            "ssh_key_id": self.ssh_key_id,
            "group": self.group,
            "connection_timeout_seconds": self.connection_timeout_seconds,
            "settings": self.settings.to_dict(),
            "usage_count": self.usage_count,
            "last_used": self.last_used.isoformat() if self.last_used else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerConnection":
        """Create from dictionary."""
        last_used = data.get("last_used")
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            name=data["name"],
            host=data["host"],
            port=int(data.get("port", 22)),
            username=data["username"],
            auth_method=AuthMethod(data.get("auth_method", AuthMethod.PASSWORD.value)),
            encrypted_password=data.get("encrypted_password"),
            private_key_path=data.get("private_key_path"),
            private_key_passphrase=data.get("private_key_passphrase"),
            ssh_key_id=data.get("ssh_key_id"),
            group=data.get("group"),
            connection_timeout_seconds=int(data.get("connection_timeout_seconds", 15)),
            settings=ConnectionSettings.from_dict(data.get("settings") or {}),
            usage_count=int(data.get("usage_count", 0)),
            last_used=datetime.fromisoformat(last_used) if last_used else None,
        )
