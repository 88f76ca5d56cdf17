"""Authentication method selection for remote sessions.

The session core receives only decrypted material. resolve_auth turns a
connection record plus that material into exactly one of:

- PasswordAuth: password (or keyboard-interactive answered with the password)
- KeyAuth: private key file plus optional passphrase

Key files are checked here, before any network authentication is attempted.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Union

from ..exceptions import ResourceError
from ..models import AuthMethod, ServerConnection
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PasswordAuth:
    """Password authentication."""

    password: str = field(repr=False)
    interactive: bool = False  # Answer keyboard-interactive prompts with the password


@dataclass(frozen=True)
class KeyAuth:
    """Private key authentication."""

    key_path: Path
    passphrase: Optional[str] = field(default=None, repr=False)


AuthSpec = Union[PasswordAuth, KeyAuth]

# Maps an SSH key id to the key's effective path and decrypted passphrase
KeyResolver = Callable[[str], Optional[KeyAuth]]


def check_key_file(path: Path) -> Path:
    """
    Make sure a private key file exists and is readable.

    Raises:
        ResourceError: If the file is missing or unreadable
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise ResourceError(f"SSH key file does not exist: {path}")
    if not os.access(path, os.R_OK):
        raise ResourceError(f"SSH key file is not readable: {path}")
    return path


def resolve_auth(
    connection: ServerConnection,
    secret: Optional[str],
    key_resolver: Optional[KeyResolver] = None,
) -> AuthSpec:
    """
    Select the authentication for a connection.

    For key authentication the key store (via ``key_resolver`` and the
    connection's ``ssh_key_id``) takes precedence over the path embedded in
    the connection record. ``secret`` is the connection's own decrypted
    password or passphrase.

    Args:
        connection: Connection record
        secret: Decrypted password or key passphrase, if any
        key_resolver: Lookup for keys registered in the key store

    Returns:
        PasswordAuth or KeyAuth

    Raises:
        ResourceError: If no key path is configured or the key file is unusable
    """
    if connection.auth_method is not AuthMethod.PUBLIC_KEY:
        return PasswordAuth(
            password=secret or "",
            interactive=connection.auth_method is AuthMethod.KEYBOARD_INTERACTIVE,
        )

    resolved: Optional[KeyAuth] = None
    if connection.ssh_key_id and key_resolver is not None:
        resolved = key_resolver(connection.ssh_key_id)
        if resolved is None:
            logger.warning(
                f"SSH key {connection.ssh_key_id} not found in key store, "
                f"falling back to key path of {connection.display_name}"
            )

    key_path: Optional[str] = str(resolved.key_path) if resolved and str(resolved.key_path).strip() else None
    if key_path is None:
        key_path = connection.private_key_path
    if not key_path or not key_path.strip():
        raise ResourceError(f"No SSH key path configured for {connection.display_name}")

    passphrase = resolved.passphrase if resolved and resolved.passphrase is not None else secret

    return KeyAuth(key_path=check_key_file(Path(key_path)), passphrase=passphrase or None)
