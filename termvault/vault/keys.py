"""In-memory key material for an unlocked vault.

A VaultKey is created by VaultManager after a successful setup or verify and
is never persisted. Every secret has its own salt, so the key holds the master
password and derives each secret's working key on demand. Wiping it zeroes
the cached password; any later use raises VaultLockedError instead of using
stale material.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime

from ..exceptions import VaultLockedError
from ..utils.logging import get_logger
from .crypto import ENCRYPTION_CONTEXT, PBKDF2_ITERATIONS, KeyDerivation

logger = get_logger(__name__)


@dataclass(eq=False)
class VaultKey:
    """Key material for one unlocked vault generation."""

    password: bytearray = field(repr=False)
    iterations: int = PBKDF2_ITERATIONS
    created_at: datetime = field(default_factory=datetime.now)
    _wiped: bool = field(default=False, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @classmethod
    def from_password(cls, password: str, iterations: int = PBKDF2_ITERATIONS) -> "VaultKey":
        """Hold ``password`` for per-secret derivation at ``iterations`` rounds."""
        return cls(password=bytearray(password.encode("utf-8")), iterations=iterations)

    @property
    def is_wiped(self) -> bool:
        return self._wiped

    def require_active(self) -> None:
        """Raise VaultLockedError if this key has been wiped."""
        if self._wiped:
            raise VaultLockedError("Vault key has been cleared. Unlock the vault again.")

    def derive_secret_key(self, salt: bytes) -> bytes:
        """
        Re-derive the working key for one secret from its own salt.

        Args:
            salt: The salt stored in the secret's EncryptedSecret string

        Returns:
            32-byte encryption key
        """
        with self._lock:
            self.require_active()
            password = bytes(self.password)
        return KeyDerivation.derive_key(password, salt, self.iterations, ENCRYPTION_CONTEXT)

    def wipe(self) -> None:
        """Zero the cached password. Safe to call more than once."""
        with self._lock:
            if self._wiped:
                return
            for i in range(len(self.password)):
                self.password[i] = 0
            self._wiped = True
        logger.debug("Vault key wiped")
