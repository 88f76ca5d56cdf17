"""Core cryptographic primitives for the credential vault.

Uses the cryptography library for:
- PBKDF2-HMAC-SHA256 key derivation (310,000 iterations)
- HKDF-SHA256 expansion to separate the verifier hash from encryption keys
- AES-256-GCM authenticated encryption with a random 96-bit nonce per call
"""

import hmac
import os
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import CryptoIntegrityError, FormatError

# Key derivation parameters
PBKDF2_ITERATIONS = 310_000
SALT_SIZE = 32  # 256 bits
KEY_SIZE = 32  # 256 bits for AES-256

# AES-GCM parameters
NONCE_SIZE = 12  # 96 bits
TAG_SIZE = 16  # 128-bit authentication tag

# HKDF info strings; the verifier and encryption keys never coincide
VERIFIER_CONTEXT = b"termvault/verifier/v1"
ENCRYPTION_CONTEXT = b"termvault/encryption/v1"

PasswordLike = Union[str, bytes, bytearray]


def _password_bytes(password: PasswordLike) -> bytes:
    if isinstance(password, str):
        return password.encode("utf-8")
    return bytes(password)


class KeyDerivation:
    """Derives keys and verifier hashes from a master password."""

    @staticmethod
    def generate_salt(size: int = SALT_SIZE) -> bytes:
        """Generate cryptographically secure random salt."""
        return os.urandom(size)

    @staticmethod
    def derive_key(
        password: PasswordLike,
        salt: bytes,
        iterations: int = PBKDF2_ITERATIONS,
        context: bytes = ENCRYPTION_CONTEXT,
    ) -> bytes:
        """
        Derive a 256-bit key from a password.

        PBKDF2-HMAC-SHA256 does the expensive stretching; HKDF then binds
        the result to ``context`` so each use gets an independent key.

        Args:
            password: Master password
            salt: Random salt (stored alongside whatever it protects)
            iterations: PBKDF2 iteration count
            context: Domain separation label

        Returns:
            32-byte derived key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=salt,
            iterations=iterations,
        )
        stretched = kdf.derive(_password_bytes(password))
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=None,
            info=context,
        )
        return hkdf.derive(stretched)

    @staticmethod
    def hash_password(
        password: PasswordLike,
        salt: bytes,
        iterations: int = PBKDF2_ITERATIONS,
    ) -> bytes:
        """Compute the verifier hash stored in the master key record."""
        return KeyDerivation.derive_key(password, salt, iterations, VERIFIER_CONTEXT)

    @staticmethod
    def verify_password(
        password: PasswordLike,
        salt: bytes,
        stored_hash: bytes,
        iterations: int = PBKDF2_ITERATIONS,
    ) -> bool:
        """
        Verify a password against a stored verifier hash.

        The comparison is constant-time.

        Args:
            password: Password to verify
            salt: Salt from the master key record
            stored_hash: Verifier hash from the master key record
            iterations: PBKDF2 iteration count

        Returns:
            True if password is correct
        """
        computed = KeyDerivation.hash_password(password, salt, iterations)
        return hmac.compare_digest(computed, stored_hash)


class AESGCMCipher:
    """
    AES-256-GCM authenticated encryption.

    Blob format: [nonce (12 bytes)] [ciphertext] [tag (16 bytes)]
    """

    def __init__(self, key: bytes):
        """
        Initialize with a 256-bit key.

        Args:
            key: 32-byte encryption key
        """
        if len(key) != KEY_SIZE:
            raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
        self.aesgcm = AESGCM(bytes(key))

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt with a fresh random nonce and prepend the nonce."""
        nonce = os.urandom(NONCE_SIZE)
        # AESGCM appends the tag to the ciphertext
        return nonce + self.aesgcm.encrypt(nonce, plaintext, None)

    def decrypt(self, blob: bytes) -> bytes:
        """
        Decrypt a nonce-prefixed blob.

        Raises:
            FormatError: If the blob is too short to hold a nonce and a tag
            CryptoIntegrityError: If the tag does not verify
        """
        if len(blob) < NONCE_SIZE + TAG_SIZE:
            raise FormatError(
                f"Encrypted blob too short: {len(blob)} bytes, need at least {NONCE_SIZE + TAG_SIZE}"
            )
        nonce = blob[:NONCE_SIZE]
        ciphertext = blob[NONCE_SIZE:]
        try:
            return self.aesgcm.decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise CryptoIntegrityError()


def encrypt(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt ``plaintext`` under ``key``; see :class:`AESGCMCipher`."""
    return AESGCMCipher(key).encrypt(plaintext)


def decrypt(blob: bytes, key: bytes) -> bytes:
    """Decrypt a blob produced by :func:`encrypt`."""
    return AESGCMCipher(key).decrypt(blob)
