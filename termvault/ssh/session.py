"""Remote shell session core.

A RemoteSession owns one authenticated shell connection:

    CREATED -> connect() -> AUTHENTICATING -> CONNECTED -> CLOSED

After connect() a background reader thread performs blocking reads on the
shell channel. Each decoded chunk is appended to the session buffer under the
session lock and then handed to the OutputDispatcher, which delivers it to
the output consumer in read order.

The session never touches the vault: it only receives already-decrypted
secrets from its caller.
"""

import codecs
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Union

from ..config import Settings, get_settings
from ..exceptions import SessionStateError, TransportError
from ..models import ServerConnection, SessionState
from ..utils.logging import escape_control, get_logger
from .auth import KeyResolver, resolve_auth
from .dispatch import OutputConsumer, OutputDispatcher
from .transport import ParamikoTransport, ShellChannel, ShellTransport

logger = get_logger(__name__)

TransportFactory = Callable[[], ShellTransport]

# Called with (reason, was_error) when the remote side closes or a read fails
DisconnectListener = Callable[[str, bool], None]


class SessionStatus(Enum):
    """Lifecycle states of a remote session."""

    CREATED = "created"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    CLOSED = "closed"


class SpecialKey(Enum):
    """Non-printable keys and their xterm input sequences."""

    ENTER = "\r"
    TAB = "\t"
    BACKSPACE = "\b"
    ESCAPE = "\x1b"
    UP = "\x1b[A"
    DOWN = "\x1b[B"
    RIGHT = "\x1b[C"
    LEFT = "\x1b[D"
    HOME = "\x1b[H"
    END = "\x1b[F"
    PAGE_UP = "\x1b[5~"
    PAGE_DOWN = "\x1b[6~"
    INSERT = "\x1b[2~"
    DELETE = "\x1b[3~"
    F1 = "\x1bOP"
    F2 = "\x1bOQ"
    F3 = "\x1bOR"
    F4 = "\x1bOS"
    F5 = "\x1b[15~"
    F6 = "\x1b[17~"
    F7 = "\x1b[18~"
    F8 = "\x1b[19~"
    F9 = "\x1b[20~"
    F10 = "\x1b[21~"
    F11 = "\x1b[23~"
    F12 = "\x1b[24~"

    @classmethod
    def parse(cls, key: Union["SpecialKey", str]) -> "SpecialKey":
        """Accept a SpecialKey or its name (case-insensitive)."""
        if isinstance(key, cls):
            return key
        try:
            return cls[str(key).upper()]
        except KeyError:
            raise ValueError(f"Unknown special key: {key}") from None


class RemoteSession:
    """
    One interactive shell on a remote host.

    Usage:
        session = RemoteSession(session_id, connection, secret="hunter2")
        session.set_output_consumer(print)
        session.connect()
        session.send_input("ls -la\\r")
        ...
        session.disconnect()
    """

    def __init__(
        self,
        session_id: str,
        connection: ServerConnection,
        secret: Optional[str] = None,
        settings: Optional[Settings] = None,
        transport_factory: Optional[TransportFactory] = None,
        key_resolver: Optional[KeyResolver] = None,
        auto_dispatch: bool = True,
    ):
        """
        Initialize a session (no network I/O happens here).

        Args:
            session_id: Unique identifier issued by the registry
            connection: Connection record to open
            secret: Decrypted password or key passphrase
            settings: Terminal and SSH settings (defaults to global settings)
            transport_factory: Builds the transport (defaults to paramiko)
            key_resolver: Lookup for keys registered in the key store
            auto_dispatch: Deliver output on a dispatcher thread; if False
                the caller delivers it with drain_output()
        """
        self.session_id = session_id
        self.connection = connection
        self.settings = settings or get_settings()
        self.created_at = datetime.now()
        self.connected_at: Optional[datetime] = None

        self.tab_title: Optional[str] = connection.display_name
        self.current_directory: Optional[str] = None
        self.current_application: Optional[str] = None

        self._secret = secret
        self._transport_factory = transport_factory or self._default_transport
        self._key_resolver = key_resolver
        self._auto_dispatch = auto_dispatch

        self._status = SessionStatus.CREATED
        self._connected = False
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()

        # Guards the buffer; the reader thread is its only writer
        self._buffer_lock = threading.Lock()
        self._buffer: List[str] = []
        self._buffer_size = 0

        self._transport: Optional[ShellTransport] = None
        self._channel: Optional[ShellChannel] = None
        self._handles_lock = threading.Lock()
        self._reader: Optional[threading.Thread] = None

        self._dispatcher = OutputDispatcher(name=f"session-{session_id[:8]}")
        self._disconnect_listeners: List[DisconnectListener] = []

        self.columns = connection.settings.terminal_columns or self.settings.terminal.columns
        self.rows = connection.settings.terminal_rows or self.settings.terminal.rows

    def _default_transport(self) -> ShellTransport:
        ssh = self.settings.ssh
        return ParamikoTransport(
            verify_host_keys=ssh.verify_host_keys,
            known_hosts_file=ssh.known_hosts_file,
            keepalive_interval=ssh.keepalive_interval,
        )

    # Lifecycle

    @property
    def status(self) -> SessionStatus:
        return self._status

    def is_connected(self) -> bool:
        """Whether the shell channel is open."""
        return self._connected

    def connect(self) -> None:
        """
        Open the transport, authenticate and start the shell.

        Blocks on the handshake and authentication. Key files are checked
        before any network activity.

        Raises:
            SessionStateError: If the session was already connected or closed
            ResourceError: If the private key file is missing or unreadable
            TransportError: If the host is unreachable or the handshake fails
            AuthenticationError: If the remote credential is rejected
        """
        with self._state_lock:
            if self._status is not SessionStatus.CREATED:
                raise SessionStateError(
                    f"Cannot connect session {self.session_id}: it is {self._status.value}"
                )
            self._status = SessionStatus.AUTHENTICATING

        connection = self.connection
        term_type = connection.settings.term_type or self.settings.terminal.term_type
        timeout = float(connection.connection_timeout_seconds or self.settings.ssh.connect_timeout)

        logger.info(f"Connecting to {connection.address}")
        try:
            auth = resolve_auth(connection, self._secret, self._key_resolver)

            transport = self._transport_factory()
            with self._handles_lock:
                self._transport = transport
            transport.open(connection.host, connection.port, timeout)
            transport.authenticate(connection.username, auth, self.settings.ssh.auth_timeout)
            channel = transport.open_shell(term_type, self.columns, self.rows, self.settings.ssh.channel_timeout)
            with self._handles_lock:
                self._channel = channel
        except Exception:
            with self._state_lock:
                self._status = SessionStatus.CLOSED
            self._release_handles()
            self._dispatcher.close()
            raise
        finally:
            self._secret = None

        with self._state_lock:
            if self._stop_event.is_set():
                # disconnect() ran while we were authenticating
                self._status = SessionStatus.CLOSED
            else:
                self._connected = True
                self._status = SessionStatus.CONNECTED
                self.connected_at = datetime.now()

        if self._status is SessionStatus.CLOSED:
            self._release_handles()
            self._dispatcher.close()
            return

        if self._auto_dispatch:
            self._dispatcher.start()

        self._reader = threading.Thread(
            target=self._read_loop,
            args=(channel,),
            name=f"SSH-Reader-{self.session_id[:8]}",
            daemon=True,
        )
        self._reader.start()
        logger.info(f"Connected to {connection.address} ({self.columns}x{self.rows}, {term_type})")

    def disconnect(self) -> None:
        """
        Close the session. Safe to call any number of times.

        Stops the reader and releases the channel, the SSH session and the
        transport in that order. Does not wait for the reader thread to exit;
        use wait_closed() for that.
        """
        with self._state_lock:
            was_connected = self._connected
            self._connected = False
            self._stop_event.set()
            already_closed = self._status is SessionStatus.CLOSED
            if self._status is not SessionStatus.AUTHENTICATING:
                self._status = SessionStatus.CLOSED

        self._release_handles()
        # A running reader ends the output stream itself once it has stopped
        if self._reader is None and self._status is SessionStatus.CLOSED:
            self._dispatcher.close()

        if was_connected:
            logger.info(f"Disconnected from {self.connection.address}")
        elif not already_closed:
            logger.debug(f"Session {self.session_id} closed before connecting")

    def _release_handles(self) -> None:
        """Close channel, SSH session and socket, logging any failure."""
        with self._handles_lock:
            channel, transport = self._channel, self._transport
            self._channel = None
            self._transport = None

        if channel is not None:
            try:
                channel.close()
            except Exception as e:
                logger.warning(f"Error closing channel of {self.connection.address}: {e}")

        if transport is not None:
            try:
                transport.close_session()
            except Exception as e:
                logger.warning(f"Error closing SSH session of {self.connection.address}: {e}")
            try:
                transport.close()
            except Exception as e:
                logger.warning(f"Error closing transport of {self.connection.address}: {e}")

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the reader thread to exit.

        Returns:
            True if the reader is no longer running
        """
        if self._reader is not None:
            self._reader.join(timeout)
            if self._reader.is_alive():
                return False
        if self._auto_dispatch:
            self._dispatcher.join(timeout)
        return True

    # Reader thread

    def _read_loop(self, channel: ShellChannel) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")("replace")
        read_size = self.settings.ssh.read_size
        reason = "Connection closed by remote host"
        was_error = False

        try:
            while self._connected and not self._stop_event.is_set():
                data = channel.recv(read_size)
                if not data:
                    logger.info(f"Remote host closed the channel: {self.connection.address}")
                    break
                text = decoder.decode(data)
                if text:
                    self._append(text)
        except (TransportError, OSError) as e:
            if not self._stop_event.is_set():
                logger.error(f"Error reading from {self.connection.address}: {e}")
                reason = f"Read error: {e}"
                was_error = True

        tail = decoder.decode(b"", final=True)
        if tail:
            self._append(tail)

        with self._state_lock:
            remote_closed = not self._stop_event.is_set()
            self._connected = False
            self._stop_event.set()
            self._status = SessionStatus.CLOSED

        self._dispatcher.close()
        if remote_closed:
            self._release_handles()
            self._notify_disconnect(reason, was_error)
        logger.debug(f"Reader for session {self.session_id} stopped")

    def _append(self, text: str) -> None:
        with self._buffer_lock:
            self._buffer.append(text)
            self._buffer_size += len(text)
        self._dispatcher.put(text)

    def _notify_disconnect(self, reason: str, was_error: bool) -> None:
        for listener in list(self._disconnect_listeners):
            try:
                listener(reason, was_error)
            except Exception:
                logger.exception(f"Disconnect listener of session {self.session_id} raised")

    # Input

    def send_input(self, text: str) -> None:
        """Write text to the remote shell; ignored when not connected."""
        channel = self._channel
        if not self._connected or channel is None:
            logger.debug(f"Ignoring input for disconnected session {self.session_id}")
            return
        logger.debug(f"Sending to {self.connection.address}: {escape_control(text)}")
        channel.send(text.encode("utf-8"))

    def send_special_key(self, key: Union[SpecialKey, str]) -> None:
        """Send the input sequence of a special key; ignored when not connected."""
        self.send_input(SpecialKey.parse(key).value)

    def resize(self, columns: int, rows: int) -> None:
        """Change the remote PTY size; ignored when not connected."""
        channel = self._channel
        if not self._connected or channel is None:
            return
        channel.resize(columns, rows)
        self.columns, self.rows = columns, rows
        logger.debug(f"Resized {self.connection.address} to {columns}x{rows}")

    # Output

    def set_output_consumer(self, consumer: Optional[OutputConsumer]) -> None:
        """Register the callback receiving decoded output chunks."""
        self._dispatcher.set_consumer(consumer)

    def drain_output(self, timeout: Optional[float] = None) -> int:
        """Deliver pending output on the calling thread (manual dispatch mode)."""
        return self._dispatcher.drain(timeout)

    def add_disconnect_listener(self, listener: DisconnectListener) -> None:
        self._disconnect_listeners.append(listener)

    def remove_disconnect_listener(self, listener: DisconnectListener) -> None:
        if listener in self._disconnect_listeners:
            self._disconnect_listeners.remove(listener)

    def restore_history(self, text: str) -> None:
        """Put previously saved terminal output in front of the buffer."""
        if not text:
            return
        with self._buffer_lock:
            self._buffer.insert(0, text)
            self._buffer_size += len(text)

    @property
    def buffered_text(self) -> str:
        with self._buffer_lock:
            return "".join(self._buffer)

    @property
    def buffered_text_size(self) -> int:
        with self._buffer_lock:
            return self._buffer_size

    def generate_tab_title(self) -> str:
        """Tab title from the current application or directory hint."""
        state = SessionState(
            session_id=self.session_id,
            connection_id=self.connection.id,
            tab_title=self.tab_title,
            current_directory=self.current_directory,
            current_application=self.current_application,
        )
        return state.generate_display_title(self.connection.username)

    def get_state(self) -> SessionState:
        """Snapshot of the session, taken under the buffer lock."""
        with self._buffer_lock:
            return SessionState(
                session_id=self.session_id,
                connection_id=self.connection.id,
                terminal_history="".join(self._buffer),
                tab_title=self.generate_tab_title(),
                current_directory=self.current_directory,
                current_application=self.current_application,
                connected=self._connected,
            )

    def __repr__(self) -> str:
        return f"RemoteSession({self.session_id!r}, {self.connection.address!r}, {self._status.value})"
