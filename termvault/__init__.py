"""Termvault - Remote shell client with an encrypted credential vault."""

__version__ = "0.1.0"

from .exceptions import (
    AuthenticationError,
    CryptoIntegrityError,
    FormatError,
    PreconditionError,
    ResourceError,
    TermvaultError,
    TransportError,
)

__all__ = [
    "__version__",
    "TermvaultError",
    "FormatError",
    "AuthenticationError",
    "CryptoIntegrityError",
    "TransportError",
    "PreconditionError",
    "ResourceError",
]
