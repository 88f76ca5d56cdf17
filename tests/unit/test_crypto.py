"""Unit tests for the vault cryptographic primitives."""

import pytest

from termvault.exceptions import CryptoIntegrityError, FormatError
from termvault.vault.crypto import (
    ENCRYPTION_CONTEXT,
    NONCE_SIZE,
    TAG_SIZE,
    VERIFIER_CONTEXT,
    AESGCMCipher,
    KeyDerivation,
    decrypt,
    encrypt,
)

ITERATIONS = 1_000


class TestKeyDerivation:
    """Tests for PBKDF2 + HKDF key derivation."""

    def test_generate_salt(self):
        """Salts are 32 bytes by default."""
        assert len(KeyDerivation.generate_salt()) == 32

    def test_generate_salt_unique(self):
        salts = [KeyDerivation.generate_salt() for _ in range(10)]
        assert len(set(salts)) == 10

    def test_derive_key_deterministic(self):
        salt = KeyDerivation.generate_salt()

        key1 = KeyDerivation.derive_key("test_password_123", salt, ITERATIONS)
        key2 = KeyDerivation.derive_key("test_password_123", salt, ITERATIONS)

        assert key1 == key2
        assert len(key1) == 32

    def test_derive_key_different_passwords(self):
        salt = KeyDerivation.generate_salt()

        assert KeyDerivation.derive_key("password1", salt, ITERATIONS) != KeyDerivation.derive_key(
            "password2", salt, ITERATIONS
        )

    def test_derive_key_different_salts(self):
        key1 = KeyDerivation.derive_key("password", KeyDerivation.generate_salt(), ITERATIONS)
        key2 = KeyDerivation.derive_key("password", KeyDerivation.generate_salt(), ITERATIONS)

        assert key1 != key2

    def test_verifier_and_encryption_keys_differ(self):
        """The stored verifier never equals a key used for encryption."""
        salt = KeyDerivation.generate_salt()

        verifier = KeyDerivation.hash_password("password", salt, ITERATIONS)
        encryption_key = KeyDerivation.derive_key("password", salt, ITERATIONS, ENCRYPTION_CONTEXT)

        assert verifier != encryption_key
        assert verifier == KeyDerivation.derive_key("password", salt, ITERATIONS, VERIFIER_CONTEXT)

    def test_accepts_bytes_password(self):
        salt = KeyDerivation.generate_salt()

        assert KeyDerivation.derive_key(b"password", salt, ITERATIONS) == KeyDerivation.derive_key(
            "password", salt, ITERATIONS
        )


class TestPasswordVerification:
    """Tests for verifier hash creation and checking."""

    @pytest.fixture
    def stored(self):
        salt = KeyDerivation.generate_salt()
        return salt, KeyDerivation.hash_password("secure_password_123", salt, ITERATIONS)

    def test_correct_password(self, stored):
        salt, password_hash = stored
        assert KeyDerivation.verify_password("secure_password_123", salt, password_hash, ITERATIONS)

    @pytest.mark.parametrize(
        "candidate",
        [
            "secure_password_124",  # last character differs
            "Secure_password_123",  # case differs
            "secure_password_12",  # truncated
            "secure_password_123 ",  # trailing space
            "",
        ],
    )
    def test_wrong_passwords(self, stored, candidate):
        salt, password_hash = stored
        assert not KeyDerivation.verify_password(candidate, salt, password_hash, ITERATIONS)

    def test_iteration_count_matters(self, stored):
        salt, password_hash = stored
        assert not KeyDerivation.verify_password(
            "secure_password_123", salt, password_hash, ITERATIONS + 1
        )


class TestAESGCMCipher:
    """Tests for AES-256-GCM authenticated encryption."""

    @pytest.fixture
    def key(self):
        return KeyDerivation.derive_key("test_password", KeyDerivation.generate_salt(), ITERATIONS)

    def test_encrypt_decrypt_roundtrip(self, key):
        cipher = AESGCMCipher(key)
        original = b"This is some test data to encrypt."

        blob = cipher.encrypt(original)

        assert cipher.decrypt(blob) == original
        assert original not in blob

    @pytest.mark.parametrize("plaintext", [b"", b"x", "pässwörd ✓".encode("utf-8"), bytes(range(256))])
    def test_module_level_roundtrip(self, key, plaintext):
        assert decrypt(encrypt(plaintext, key), key) == plaintext

    def test_blob_layout(self, key):
        """Blob is nonce + ciphertext + tag; ciphertext is as long as the plaintext."""
        plaintext = b"0123456789"

        blob = encrypt(plaintext, key)

        assert len(blob) == NONCE_SIZE + len(plaintext) + TAG_SIZE

    def test_nonce_uniqueness(self, key):
        """Same plaintext and key never give the same blob."""
        blobs = {encrypt(b"same plaintext", key) for _ in range(50)}
        nonces = {blob[:NONCE_SIZE] for blob in blobs}

        assert len(blobs) == 50
        assert len(nonces) == 50

    def test_every_bit_flip_detected(self, key):
        blob = encrypt(b"secret", key)

        for index in range(len(blob)):
            for bit in range(8):
                tampered = bytearray(blob)
                tampered[index] ^= 1 << bit
                with pytest.raises(CryptoIntegrityError):
                    decrypt(bytes(tampered), key)

    def test_wrong_key(self, key):
        other = KeyDerivation.derive_key("other_password", KeyDerivation.generate_salt(), ITERATIONS)
        blob = encrypt(b"secret", key)

        with pytest.raises(CryptoIntegrityError):
            decrypt(blob, other)

    def test_truncated_blob_is_format_error(self, key):
        with pytest.raises(FormatError):
            decrypt(b"\x00" * (NONCE_SIZE + TAG_SIZE - 1), key)

    def test_minimum_length_blob_is_integrity_error(self, key):
        with pytest.raises(CryptoIntegrityError):
            decrypt(b"\x00" * (NONCE_SIZE + TAG_SIZE), key)

    def test_rejects_short_key(self):
        with pytest.raises(ValueError):
            AESGCMCipher(b"too short")
