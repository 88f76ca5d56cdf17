"""SSH session core for Termvault.

Provides:
- Authentication selection (password, keyboard-interactive, private key)
- Paramiko-backed shell transport
- RemoteSession with a background reader and ordered output dispatch
- SessionRegistry tracking live sessions
"""

from .auth import AuthSpec, KeyAuth, KeyResolver, PasswordAuth, check_key_file, resolve_auth
from .dispatch import OutputConsumer, OutputDispatcher
from .registry import SessionContext, SessionEvent, SessionRegistry
from .session import RemoteSession, SessionStatus, SpecialKey
from .transport import ParamikoChannel, ParamikoTransport, ShellChannel, ShellTransport

__all__ = [
    # Auth
    "AuthSpec",
    "KeyAuth",
    "KeyResolver",
    "PasswordAuth",
    "check_key_file",
    "resolve_auth",
    # Transport
    "ParamikoChannel",
    "ParamikoTransport",
    "ShellChannel",
    "ShellTransport",
    # Sessions
    "OutputConsumer",
    "OutputDispatcher",
    "RemoteSession",
    "SessionStatus",
    "SpecialKey",
    # Registry
    "SessionContext",
    "SessionEvent",
    "SessionRegistry",
]
