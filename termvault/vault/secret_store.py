"""Encrypted storage of individual secrets.

Each secret gets its own random salt; its working key is re-derived from the
master password and that salt. The stored string is:

    <base64 salt>:<base64(nonce || ciphertext || tag)>

Base64's alphabet has no ':' so the split is unambiguous.
"""

import base64
from dataclasses import dataclass
from typing import Optional

from ..exceptions import CryptoIntegrityError, FormatError, VaultLockedError
from ..models import ServerConnection, SSHKey
from ..utils.logging import get_logger
from .config import VaultConfig, get_vault_config
from .crypto import NONCE_SIZE, TAG_SIZE, AESGCMCipher, KeyDerivation
from .keys import VaultKey

logger = get_logger(__name__)

SEPARATOR = ":"


@dataclass(frozen=True)
class EncryptedSecret:
    """Parsed form of an encrypted secret string."""

    salt: bytes
    payload: bytes  # nonce || ciphertext || tag

    def to_string(self) -> str:
        """Serialize to the stored string format."""
        return (
            base64.b64encode(self.salt).decode("ascii")
            + SEPARATOR
            + base64.b64encode(self.payload).decode("ascii")
        )

    @classmethod
    def from_string(cls, value: str, salt_size: int = 32) -> "EncryptedSecret":
        """
        Parse a stored secret string.

        Raises:
            FormatError: If the string does not have the expected shape
        """
        parts = value.strip().split(SEPARATOR)
        if len(parts) != 2:
            raise FormatError("Encrypted secret must be '<salt>:<payload>'")
        salt = _decode_canonical(parts[0], "salt")
        payload = _decode_canonical(parts[1], "payload")
        if len(salt) != salt_size:
            raise FormatError(f"Encrypted secret salt must be {salt_size} bytes, got {len(salt)}")
        if len(payload) < NONCE_SIZE + TAG_SIZE:
            raise FormatError("Encrypted secret payload is too short")
        return cls(salt=salt, payload=payload)


def _decode_canonical(part: str, what: str) -> bytes:
    """Decode strict base64, rejecting encodings with non-zero padding bits."""
    try:
        raw = base64.b64decode(part, validate=True)
    except ValueError as e:
        raise FormatError(f"Encrypted secret {what} is not valid base64: {e}")
    # Only the exact b64encode output is accepted
    if base64.b64encode(raw).decode("ascii") != part:
        raise FormatError(f"Encrypted secret {what} is not canonical base64")
    return raw


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class SecretStore:
    """
    Encrypts and decrypts secrets with the caller's vault key.

    Usage:
        store = SecretStore()
        blob = store.store_secret("hunter2", vault.require_key())
        plain = store.retrieve_secret(blob, vault.require_key())
    """

    def __init__(self, config: Optional[VaultConfig] = None):
        self.config = config or get_vault_config()

    @staticmethod
    def _require(key: Optional[VaultKey]) -> VaultKey:
        if key is None:
            raise VaultLockedError()
        key.require_active()
        return key

    def store_secret(self, plaintext: str, key: Optional[VaultKey]) -> str:
        """
        Encrypt a secret under a fresh salt.

        Args:
            plaintext: Secret to encrypt
            key: Current vault key

        Returns:
            Encrypted secret string

        Raises:
            VaultLockedError: If no usable key is given
        """
        key = self._require(key)
        salt = KeyDerivation.generate_salt(self.config.salt_size)
        cipher = AESGCMCipher(key.derive_secret_key(salt))
        payload = cipher.encrypt(plaintext.encode("utf-8"))
        return EncryptedSecret(salt=salt, payload=payload).to_string()

    def retrieve_secret(
        self,
        blob: Optional[str],
        key: Optional[VaultKey],
        label: str = "secret",
    ) -> Optional[str]:
        """
        Decrypt a stored secret.

        A missing or blank blob is "no secret" and returns None.

        Args:
            blob: Encrypted secret string
            key: Vault key the secret was encrypted under
            label: Description used in error messages

        Raises:
            VaultLockedError: If no usable key is given
            FormatError: If the blob is malformed
            CryptoIntegrityError: If the blob was tampered with or the key is wrong
        """
        if _is_blank(blob):
            return None
        key = self._require(key)
        try:
            secret = EncryptedSecret.from_string(blob, self.config.salt_size)
        except FormatError as e:
            raise FormatError(f"Malformed {label}: {e}") from e
        cipher = AESGCMCipher(key.derive_secret_key(secret.salt))
        try:
            plaintext = cipher.decrypt(secret.payload)
        except CryptoIntegrityError as e:
            logger.error(f"Failed to decrypt {label}")
            raise CryptoIntegrityError(
                f"Failed to decrypt {label}: data was tampered with or the key is wrong"
            ) from e
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FormatError(f"Decrypted {label} is not valid UTF-8") from e

    def re_encrypt(
        self,
        blob: Optional[str],
        old_key: Optional[VaultKey],
        new_key: Optional[VaultKey],
        label: str = "secret",
    ) -> Optional[str]:
        """
        Re-encrypt a secret from ``old_key`` to ``new_key``.

        The ciphertext always goes through authenticated decryption first.
        Blank blobs pass through as None.
        """
        plaintext = self.retrieve_secret(blob, old_key, label)
        if plaintext is None:
            return None
        return self.store_secret(plaintext, new_key)

    # Connection helpers

    def store_password(self, connection: ServerConnection, password: str, key: Optional[VaultKey]) -> None:
        """Encrypt and store a password in the connection."""
        connection.encrypted_password = self.store_secret(password, key)
        logger.debug(f"Password encrypted for connection: {connection.display_name}")

    def retrieve_password(self, connection: ServerConnection, key: Optional[VaultKey]) -> Optional[str]:
        """Decrypt the connection's password."""
        return self.retrieve_secret(
            connection.encrypted_password, key, f"password of {connection.display_name}"
        )

    def store_key_passphrase(self, connection: ServerConnection, passphrase: str, key: Optional[VaultKey]) -> None:
        """Encrypt and store a private key passphrase in the connection."""
        connection.private_key_passphrase = self.store_secret(passphrase, key)
        logger.debug(f"Key passphrase encrypted for connection: {connection.display_name}")

    def retrieve_key_passphrase(self, connection: ServerConnection, key: Optional[VaultKey]) -> Optional[str]:
        """Decrypt the connection's private key passphrase."""
        return self.retrieve_secret(
            connection.private_key_passphrase, key, f"key passphrase of {connection.display_name}"
        )

    def re_encrypt_connection(
        self,
        connection: ServerConnection,
        old_key: Optional[VaultKey],
        new_key: Optional[VaultKey],
    ) -> None:
        """
        Re-encrypt both secrets of a connection.

        The connection is only modified once both secrets re-encrypted, so
        a failure leaves it decryptable with the old key.
        """
        password = self.re_encrypt(
            connection.encrypted_password, old_key, new_key,
            f"password of {connection.display_name}",
        )
        passphrase = self.re_encrypt(
            connection.private_key_passphrase, old_key, new_key,
            f"key passphrase of {connection.display_name}",
        )
        connection.encrypted_password = password
        connection.private_key_passphrase = passphrase
        logger.debug(f"Secrets re-encrypted for connection: {connection.display_name}")

    def retrieve_ssh_key_passphrase(self, ssh_key: SSHKey, key: Optional[VaultKey]) -> Optional[str]:
        """Decrypt the passphrase of a stored SSH key."""
        return self.retrieve_secret(
            ssh_key.encrypted_passphrase, key, f"passphrase of SSH key {ssh_key.name}"
        )

    def store_ssh_key_passphrase(self, ssh_key: SSHKey, passphrase: str, key: Optional[VaultKey]) -> None:
        """Encrypt and store the passphrase of a stored SSH key."""
        ssh_key.encrypted_passphrase = self.store_secret(passphrase, key)

    def re_encrypt_ssh_key(
        self,
        ssh_key: SSHKey,
        old_key: Optional[VaultKey],
        new_key: Optional[VaultKey],
    ) -> None:
        """Re-encrypt the passphrase of a stored SSH key."""
        ssh_key.encrypted_passphrase = self.re_encrypt(
            ssh_key.encrypted_passphrase, old_key, new_key,
            f"passphrase of SSH key {ssh_key.name}",
        )
