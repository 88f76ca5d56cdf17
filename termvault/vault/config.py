"""Vault configuration for the Termvault credential vault."""

import os
from dataclasses import dataclass


@dataclass
class VaultConfig:
    """Configuration for vault key derivation and storage."""

    # Key derivation
    pbkdf2_iterations: int = 310_000
    salt_size: int = 32  # 256 bits
    key_size: int = 32  # 256 bits for AES-256

    # Master password policy
    min_password_length: int = 8  # 0 = no minimum

    # File naming
    master_key_file: str = "master.key"

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """
        Load configuration from environment variables.

        Environment variables:
            TERMVAULT_PBKDF2_ITERATIONS: PBKDF2 iteration count (default: 310000)
            TERMVAULT_MIN_PASSWORD_LENGTH: Minimum master password length (default: 8)
        """
        config = cls()

        if iterations := os.getenv("TERMVAULT_PBKDF2_ITERATIONS"):
            config.pbkdf2_iterations = int(iterations)

        if min_length := os.getenv("TERMVAULT_MIN_PASSWORD_LENGTH"):
            config.min_password_length = int(min_length)

        return config


# Global configuration instance
_config: VaultConfig | None = None


def get_vault_config() -> VaultConfig:
    """Get the global vault configuration."""
    global _config
    if _config is None:
        _config = VaultConfig.from_env()
    return _config


def set_vault_config(config: VaultConfig | None) -> None:
    """Set the global vault configuration (None resets to environment defaults)."""
    global _config
    _config = config
