"""SSH transport for remote shell sessions.

A ShellTransport owns three handles, released in this order by the session:
the shell channel, the authenticated SSH session, and the socket.

ParamikoTransport is the real implementation; tests substitute their own
objects with the same methods.
"""

import socket
from pathlib import Path
from typing import Optional, Protocol

import paramiko

from ..exceptions import AuthenticationError, ResourceError, TransportError
from ..utils.logging import get_logger
from .auth import AuthSpec, KeyAuth

logger = get_logger(__name__)


class ShellChannel(Protocol):
    """Duplex byte stream of an interactive shell."""

    def recv(self, size: int) -> bytes:
        """Block until data arrives; b"" means the remote side closed."""
        ...

    def send(self, data: bytes) -> None: ...

    def resize(self, columns: int, rows: int) -> None: ...

    def close(self) -> None: ...


class ShellTransport(Protocol):
    """Connection, authentication and shell channel factory."""

    def open(self, host: str, port: int, timeout: float) -> None:
        """Connect and perform the SSH handshake."""
        ...

    def authenticate(self, username: str, auth: AuthSpec, timeout: float) -> None: ...

    def open_shell(self, term_type: str, columns: int, rows: int, timeout: float) -> ShellChannel: ...

    def close_session(self) -> None:
        """Close the authenticated SSH session."""
        ...

    def close(self) -> None:
        """Close the underlying socket."""
        ...


class ParamikoChannel:
    """ShellChannel over a paramiko channel with a PTY."""

    def __init__(self, channel: paramiko.Channel):
        self._channel = channel

    def recv(self, size: int) -> bytes:
        try:
            return self._channel.recv(size)
        except (OSError, paramiko.SSHException) as e:
            raise TransportError(f"Error reading from channel: {e}") from e

    def send(self, data: bytes) -> None:
        try:
            self._channel.sendall(data)
        except (OSError, paramiko.SSHException) as e:
            raise TransportError(f"Error writing to channel: {e}") from e

    def resize(self, columns: int, rows: int) -> None:
        try:
            self._channel.resize_pty(width=columns, height=rows)
        except (OSError, paramiko.SSHException) as e:
            raise TransportError(f"Error resizing terminal: {e}") from e

    def close(self) -> None:
        self._channel.close()


class ParamikoTransport:
    """
    ShellTransport backed by paramiko.

    Usage:
        transport = ParamikoTransport()
        transport.open("example.com", 22, timeout=15)
        transport.authenticate("alice", PasswordAuth("secret"), timeout=30)
        channel = transport.open_shell("xterm-256color", 80, 24, timeout=10)
    """

    def __init__(
        self,
        verify_host_keys: bool = False,
        known_hosts_file: Optional[Path] = None,
        keepalive_interval: int = 0,
    ):
        self.verify_host_keys = verify_host_keys
        self.known_hosts_file = known_hosts_file
        self.keepalive_interval = keepalive_interval

        self._sock: Optional[socket.socket] = None
        self._transport: Optional[paramiko.Transport] = None
        self._address = ""

    def open(self, host: str, port: int, timeout: float) -> None:
        self._address = f"{host}:{port}"
        try:
            self._sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as e:
            raise TransportError(f"Cannot connect to {self._address}: {e}") from e

        try:
            self._transport = paramiko.Transport(self._sock)
            self._transport.start_client(timeout=timeout)
        except (OSError, EOFError, paramiko.SSHException) as e:
            raise TransportError(f"SSH handshake with {self._address} failed: {e}") from e

        if self.verify_host_keys:
            self._check_host_key(host, port)

        if self.keepalive_interval:
            self._transport.set_keepalive(self.keepalive_interval)

    def _check_host_key(self, host: str, port: int) -> None:
        """Compare the server key with the known hosts file."""
        host_keys = paramiko.HostKeys()
        if self.known_hosts_file and Path(self.known_hosts_file).exists():
            try:
                host_keys.load(str(self.known_hosts_file))
            except (OSError, paramiko.SSHException) as e:
                raise TransportError(f"Cannot read known hosts file {self.known_hosts_file}: {e}") from e

        lookup_name = host if port == 22 else f"[{host}]:{port}"
        server_key = self._transport.get_remote_server_key()
        known = host_keys.lookup(lookup_name)
        if known is None or server_key.get_name() not in known:
            raise TransportError(f"Host key for {self._address} is not in {self.known_hosts_file}")
        if known[server_key.get_name()] != server_key:
            raise TransportError(f"Host key for {self._address} does not match the known hosts file")

    def _require_transport(self) -> paramiko.Transport:
        if self._transport is None or not self._transport.is_active():
            raise TransportError(f"Not connected to {self._address or 'a host'}")
        return self._transport

    def authenticate(self, username: str, auth: AuthSpec, timeout: float) -> None:
        transport = self._require_transport()
        transport.auth_timeout = timeout
        target = f"{username}@{self._address}"
        try:
            if isinstance(auth, KeyAuth):
                pkey = self._load_key(auth)
                transport.auth_publickey(username, pkey)
            elif auth.interactive:
                answer = auth.password

                def handler(title, instructions, prompts):
                    return [answer for _ in prompts]

                transport.auth_interactive(username, handler)
            else:
                transport.auth_password(username, auth.password)
        except paramiko.AuthenticationException as e:
            raise AuthenticationError(f"Authentication failed for {target}: {e}") from e
        except (OSError, EOFError, paramiko.SSHException) as e:
            raise TransportError(f"Connection to {target} failed during authentication: {e}") from e

        if not transport.is_authenticated():
            raise AuthenticationError(f"Authentication failed for {target}")
        logger.debug(f"Authenticated {target}")

    @staticmethod
    def _load_key(auth: KeyAuth) -> paramiko.PKey:
        passphrase = auth.passphrase.encode("utf-8") if auth.passphrase else None
        try:
            return paramiko.PKey.from_path(auth.key_path, passphrase=passphrase)
        except OSError as e:
            raise ResourceError(f"Cannot read SSH key {auth.key_path}: {e}") from e
        except (paramiko.SSHException, ValueError, TypeError) as e:
            # Wrong/missing passphrase or unsupported key format
            raise AuthenticationError(f"Cannot load SSH key {auth.key_path}: {e}") from e

    def open_shell(self, term_type: str, columns: int, rows: int, timeout: float) -> ShellChannel:
        transport = self._require_transport()
        try:
            channel = transport.open_session(timeout=timeout)
            channel.get_pty(term=term_type, width=columns, height=rows)
            channel.invoke_shell()
        except (OSError, EOFError, paramiko.SSHException) as e:
            raise TransportError(f"Cannot open shell on {self._address}: {e}") from e
        return ParamikoChannel(channel)

    def close_session(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None
