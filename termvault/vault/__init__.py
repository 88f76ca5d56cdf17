"""Credential vault for Termvault.

Derives a key from the master password and uses it to encrypt every stored
credential (connection passwords, private key passphrases) with AES-256-GCM.

Usage:
    from termvault.vault import VaultManager, SecretStore

    vm = VaultManager(config_dir)
    if vm.is_password_set():
        vm.unlock(password)
    else:
        vm.setup_password(password)

    store = SecretStore()
    blob = store.store_secret("hunter2", vm.require_key())
    plain = store.retrieve_secret(blob, vm.require_key())

    # Changing the password does not touch existing secrets
    rotation = vm.change_password(password, new_password)
    blob = store.re_encrypt(blob, rotation.old_key, rotation.new_key)
    rotation.finish()
"""

# Configuration
from .config import (
    VaultConfig,
    get_vault_config,
    set_vault_config,
)

# Primitives
from .crypto import (
    AESGCMCipher,
    KeyDerivation,
    decrypt,
    encrypt,
)

# Key material
from .keys import VaultKey

# Vault operations
from .vault_manager import (
    KeyRotation,
    MasterKeyRecord,
    VaultManager,
    VaultState,
    is_vault_configured,
)

# Secrets
from .secret_store import (
    EncryptedSecret,
    SecretStore,
)

__all__ = [
    # Configuration
    "VaultConfig",
    "get_vault_config",
    "set_vault_config",
    # Primitives
    "KeyDerivation",
    "AESGCMCipher",
    "encrypt",
    "decrypt",
    # Keys
    "VaultKey",
    # Vault manager
    "VaultManager",
    "VaultState",
    "MasterKeyRecord",
    "KeyRotation",
    "is_vault_configured",
    # Secrets
    "EncryptedSecret",
    "SecretStore",
]
