"""Exceptions for Termvault.

Every failure raised by the vault or the session core is one of these kinds,
so callers can tell a wrong password from an unreachable host.
"""


class TermvaultError(Exception):
    """Base exception for all Termvault errors."""

    pass


class FormatError(TermvaultError):
    """Raised when persisted or wire data has the wrong structural shape."""

    def __init__(self, message: str = "Malformed data."):
        super().__init__(message)


class AuthenticationError(TermvaultError):
    """Raised for a wrong master password or a rejected remote credential."""

    def __init__(self, message: str = "Authentication failed."):
        super().__init__(message)


class CryptoIntegrityError(TermvaultError):
    """Raised when an authentication tag does not verify (tampering or wrong key)."""

    def __init__(self, message: str = "Integrity check failed: data was tampered with or the key is wrong."):
        super().__init__(message)


class TransportError(TermvaultError):
    """Raised when the handshake or the network connection fails."""

    def __init__(self, message: str = "Transport failure."):
        super().__init__(message)


class PreconditionError(TermvaultError):
    """Raised when an operation is attempted in a state that does not allow it."""

    def __init__(self, message: str = "Operation not allowed in the current state."):
        super().__init__(message)


class VaultLockedError(PreconditionError):
    """Raised when a secret operation is attempted without a current key."""

    def __init__(self, message: str = "Vault is locked. Unlock with the master password first."):
        super().__init__(message)


class VaultAlreadyExistsError(PreconditionError):
    """Raised when setting up a master password that is already configured."""

    def __init__(self, message: str = "A master password is already set."):
        super().__init__(message)


class SessionStateError(PreconditionError):
    """Raised when a session operation does not fit the session's lifecycle state."""

    def __init__(self, message: str = "Session is not in a state that allows this operation."):
        super().__init__(message)


class ResourceError(TermvaultError):
    """Raised when a private key file is missing or unreadable."""

    def __init__(self, message: str = "Private key file is missing or unreadable."):
        super().__init__(message)
