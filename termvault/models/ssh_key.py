"""Stored SSH private key model."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class SSHKey:
    """A private key registered in the key store."""

    name: str
    key_path: str
    encrypted_passphrase: Optional[str] = None  # EncryptedSecret string
    description: Optional[str] = None
    copied_to_user_dir: bool = False
    user_dir_path: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    last_used: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def effective_path(self) -> str:
        """The copy in the user dir if there is one, else the original path."""
        if self.copied_to_user_dir and self.user_dir_path:
            return self.user_dir_path
        return self.key_path

    def touch(self) -> None:
        """Update the last used timestamp."""
        self.last_used = datetime.now()

    def __str__(self) -> str:
        if self.description:
            return f"{self.name} - {self.description}"
        return self.name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "key_path": self.key_path,
            "encrypted_passphrase": self.encrypted_passphrase,
            "description": self.description,
            "copied_to_user_dir": self.copied_to_user_dir,
            "user_dir_path": self.user_dir_path,
            "created_at": self.created_at.isoformat(),
            "last_used": self.last_used.isoformat() if self.last_used else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SSHKey":
        """Create from dictionary."""
        created_at = data.get("created_at")
        last_used = data.get("last_used")
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            name=data["name"],
            key_path=data["key_path"],
            encrypted_passphrase=data.get("encrypted_passphrase"),
            description=data.get("description"),
            copied_to_user_dir=bool(data.get("copied_to_user_dir", False)),
            user_dir_path=data.get("user_dir_path"),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
            last_used=datetime.fromisoformat(last_used) if last_used else None,
        )
