"""Credential custody for opening sessions.

The session core never sees the vault. CredentialBroker decrypts what a
session needs with the vault's current key and hands over plaintext only:

    broker = CredentialBroker(vault, SecretStore(), key_store)
    session = registry.create(connection, broker.session_secret(connection))
"""

from pathlib import Path
from typing import Optional

from .models import AuthMethod, ServerConnection
from .ssh.auth import KeyAuth, KeyResolver
from .storage import SSHKeyStore
from .utils.logging import get_logger
from .vault import SecretStore, VaultManager

logger = get_logger(__name__)


class CredentialBroker:
    """Decrypts connection secrets and stored key passphrases on demand."""

    def __init__(
        self,
        vault: VaultManager,
        secrets: Optional[SecretStore] = None,
        key_store: Optional[SSHKeyStore] = None,
    ):
        self.vault = vault
        self.secrets = secrets or SecretStore(vault.config)
        self.key_store = key_store

    def session_secret(self, connection: ServerConnection) -> Optional[str]:
        """
        Decrypt the secret a connection authenticates with.

        Password and keyboard-interactive connections use the stored password,
        key connections the stored key passphrase.

        Raises:
            VaultLockedError: If the vault is locked
            CryptoIntegrityError: If the stored secret does not decrypt
        """
        key = self.vault.require_key()
        if connection.auth_method is AuthMethod.PUBLIC_KEY:
            return self.secrets.retrieve_key_passphrase(connection, key)
        return self.secrets.retrieve_password(connection, key)

    def resolve_key(self, key_id: str) -> Optional[KeyAuth]:
        """Look up a stored key and decrypt its passphrase."""
        if self.key_store is None:
            return None
        ssh_key = self.key_store.find_key_by_id(key_id)
        if ssh_key is None:
            return None
        passphrase = self.secrets.retrieve_ssh_key_passphrase(ssh_key, self.vault.require_key())
        ssh_key.touch()
        logger.debug(f"Resolved SSH key {ssh_key.name}")
        return KeyAuth(key_path=Path(ssh_key.effective_path).expanduser(), passphrase=passphrase)

    def key_resolver(self) -> KeyResolver:
        """Callable suitable for SessionContext.key_resolver."""
        return self.resolve_key
