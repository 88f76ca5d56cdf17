"""Vault manager for the master password lifecycle.

Handles master password setup, verification, change, and locking, and holds
the key of the currently unlocked vault.

States: UNCONFIGURED -> (setup) -> UNLOCKED <-> LOCKED
"""

import base64
import binascii
import json
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from ..exceptions import (
    AuthenticationError,
    FormatError,
    VaultAlreadyExistsError,
    VaultLockedError,
)
from ..utils.logging import get_logger
from .config import VaultConfig, get_vault_config
from .crypto import KeyDerivation
from .keys import VaultKey

logger = get_logger(__name__)


class VaultState(Enum):
    """Lifecycle state of the vault."""

    UNCONFIGURED = "unconfigured"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


@dataclass
class MasterKeyRecord:
    """
    Persisted master key record.

    This file is NOT encrypted - it contains only:
    - Salt for key derivation
    - Iteration count
    - Verifier hash of the master password

    Losing it makes every stored secret unrecoverable.
    """

    salt: bytes
    password_hash: bytes
    iterations: int = 310_000
    version: int = 1
    algorithm: str = "AES-256-GCM"
    key_derivation: str = "PBKDF2-HMAC-SHA256+HKDF-SHA256"
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "algorithm": self.algorithm,
            "key_derivation": self.key_derivation,
            "iterations": self.iterations,
            "salt": base64.b64encode(self.salt).decode("ascii"),
            "hash": base64.b64encode(self.password_hash).decode("ascii"),
            "created_at": self.created_at,
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MasterKeyRecord":
        """Create from dictionary."""
        return cls(
            salt=base64.b64decode(data["salt"], validate=True),
            password_hash=base64.b64decode(data["hash"], validate=True),
            iterations=int(data.get("iterations", 310_000)),
            version=data.get("version", 1),
            algorithm=data.get("algorithm", "AES-256-GCM"),
            key_derivation=data.get("key_derivation", "PBKDF2-HMAC-SHA256+HKDF-SHA256"),
            created_at=data.get("created_at", ""),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "MasterKeyRecord":
        """Deserialize from JSON string."""
        try:
            data = json.loads(json_str)
            if not isinstance(data, dict):
                raise FormatError("Master key record is not a JSON object")
            return cls.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, binascii.Error) as e:
            raise FormatError(f"Invalid master key record: {e}")


@dataclass
class KeyRotation:
    """
    Result of a master password change.

    Secrets encrypted under ``old_key`` are not touched by the change; the
    caller re-encrypts each one with SecretStore.re_encrypt and then calls
    finish() to wipe the old key.
    """

    old_key: VaultKey
    new_key: VaultKey
    finished: bool = False

    def holds(self, key: VaultKey) -> bool:
        """Whether ``key`` is still needed by this unfinished rotation."""
        return not self.finished and (key is self.old_key or key is self.new_key)

    def finish(self) -> None:
        """Wipe the old key once re-encryption is done."""
        self.finished = True
        self.old_key.wipe()


class VaultManager:
    """
    Manages the master password and the current vault key.

    Usage:
        vm = VaultManager(config_dir)

        if vm.is_password_set():
            vm.unlock(password)
        else:
            vm.setup_password(password)

        blob = secret_store.store_secret("hunter2", vm.require_key())
    """

    def __init__(self, config_dir: Path, config: Optional[VaultConfig] = None):
        """
        Initialize vault manager for a configuration directory.

        Args:
            config_dir: Directory holding the master key record
            config: Vault configuration (uses global if not provided)
        """
        self.config_dir = Path(config_dir)
        self.config = config or get_vault_config()
        self._key: Optional[VaultKey] = None
        self._rotation: Optional[KeyRotation] = None
        self._lock = threading.RLock()

    @property
    def record_path(self) -> Path:
        """Path to the master key record."""
        return self.config_dir / self.config.master_key_file

    @property
    def state(self) -> VaultState:
        if not self.is_password_set():
            return VaultState.UNCONFIGURED
        key = self._key
        if key is None or key.is_wiped:
            return VaultState.LOCKED
        return VaultState.UNLOCKED

    @property
    def is_unlocked(self) -> bool:
        return self.state is VaultState.UNLOCKED

    @property
    def current_key(self) -> Optional[VaultKey]:
        """The current vault key, or None while locked."""
        key = self._key
        if key is None or key.is_wiped:
            return None
        return key

    def require_key(self) -> VaultKey:
        """
        Get the current vault key or raise.

        Raises:
            VaultLockedError: If the vault is not unlocked
        """
        key = self.current_key
        if key is None:
            raise VaultLockedError()
        return key

    def is_password_set(self) -> bool:
        """Check whether a master password has been set up."""
        return self.record_path.exists()

    def load_record(self) -> MasterKeyRecord:
        """Load the master key record from disk."""
        try:
            content = self.record_path.read_text(encoding="utf-8")
        except OSError as e:
            raise FormatError(f"Cannot read master key record {self.record_path}: {e}")
        return MasterKeyRecord.from_json(content)

    def save_record(self, record: MasterKeyRecord) -> None:
        """Write the master key record atomically with owner-only permissions."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self.record_path.with_name(self.record_path.name + ".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(record.to_json())
        os.replace(tmp_path, self.record_path)

    def _check_strength(self, password: str) -> None:
        minimum = self.config.min_password_length
        if minimum and len(password) < minimum:
            raise ValueError(f"Password must be at least {minimum} characters")

    def _new_record(self, password: str) -> MasterKeyRecord:
        salt = KeyDerivation.generate_salt(self.config.salt_size)
        password_hash = KeyDerivation.hash_password(
            password, salt, self.config.pbkdf2_iterations
        )
        return MasterKeyRecord(
            salt=salt,
            password_hash=password_hash,
            iterations=self.config.pbkdf2_iterations,
        )

    def setup_password(self, password: str) -> VaultKey:
        """
        Set up a new master password.

        Args:
            password: Master password

        Returns:
            The new vault key (vault is now unlocked)

        Raises:
            VaultAlreadyExistsError: If a master password is already set
            ValueError: If password is too short
        """
        with self._lock:
            if self.is_password_set():
                raise VaultAlreadyExistsError()
            self._check_strength(password)

            record = self._new_record(password)
            self.save_record(record)

            self._key = VaultKey.from_password(password, record.iterations)
            logger.info("Master password set up successfully")
            return self._key

    def verify_password(self, password: str) -> bool:
        """
        Verify the master password and unlock on success.

        Args:
            password: Password to verify

        Returns:
            True if password is correct (vault is now unlocked), False otherwise

        Raises:
            FormatError: If the master key record is corrupted
        """
        if not self.is_password_set():
            return False

        record = self.load_record()
        if not KeyDerivation.verify_password(
            password, record.salt, record.password_hash, record.iterations
        ):
            logger.warning("Master password verification failed")
            return False

        key = VaultKey.from_password(password, record.iterations)
        with self._lock:
            previous, self._key = self._key, key
        self._retire(previous)
        logger.info("Master password verified successfully")
        return True

    def _retire(self, key: Optional[VaultKey]) -> None:
        """Wipe a replaced key unless an unfinished rotation still uses it."""
        if key is None:
            return
        rotation = self._rotation
        if rotation is not None and rotation.holds(key):
            return
        key.wipe()

    def unlock(self, password: str) -> VaultKey:
        """
        Unlock the vault with the master password.

        Raises:
            VaultLockedError: If no master password is set up
            AuthenticationError: If the password is wrong
        """
        if not self.is_password_set():
            raise VaultLockedError(f"No master password set up in {self.config_dir}")
        if not self.verify_password(password):
            raise AuthenticationError("Invalid master password.")
        return self.require_key()

    def change_password(self, old_password: str, new_password: str) -> KeyRotation:
        """
        Change the master password.

        Already encrypted secrets are NOT re-encrypted here; use the returned
        rotation with SecretStore.re_encrypt for each of them.

        Raises:
            AuthenticationError: If the old password is incorrect
            ValueError: If the new password is too short
        """
        with self._lock:
            if not self.is_password_set():
                raise VaultLockedError(f"No master password set up in {self.config_dir}")
            current = self.load_record()
            if not KeyDerivation.verify_password(
                old_password, current.salt, current.password_hash, current.iterations
            ):
                logger.warning("Master password change rejected: old password is incorrect")
                raise AuthenticationError("Old password is incorrect.")
            self._check_strength(new_password)

            old_key = self.current_key
            if old_key is None:
                old_key = VaultKey.from_password(old_password, current.iterations)

            record = self._new_record(new_password)
            self.save_record(record)

            new_key = VaultKey.from_password(new_password, record.iterations)
            # Replace, don't mutate: holders of old_key keep working until finish()
            self._key = new_key
            self._rotation = KeyRotation(old_key=old_key, new_key=new_key)
            logger.info("Master password changed successfully")
            return self._rotation

    def clear(self) -> None:
        """Wipe the in-memory password and key and drop the reference."""
        with self._lock:
            key, self._key = self._key, None
        if key is not None:
            try:
                key.wipe()
            except Exception as e:
                logger.warning(f"Error while wiping vault key: {e}")

    def lock(self) -> None:
        """Lock the vault (alias of clear)."""
        self.clear()


def is_vault_configured(config_dir: Path) -> bool:
    """Check if a config directory holds a master key record."""
    config = get_vault_config()
    return (Path(config_dir) / config.master_key_file).exists()
