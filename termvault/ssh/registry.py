"""Registry of live remote sessions.

Sessions are created and tracked here; connecting is left to the caller so
registration and network I/O stay separate.
"""

import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from ..config import Settings, get_settings
from ..models import ServerConnection, SessionState
from ..utils.logging import get_logger
from .auth import KeyResolver
from .session import RemoteSession, TransportFactory

logger = get_logger(__name__)


class SessionEvent(Enum):
    """Lifecycle events published by the registry."""

    CREATED = "created"
    CLOSED = "closed"


SessionListener = Callable[[SessionEvent, RemoteSession], None]


@dataclass
class SessionContext:
    """Collaborators handed to every session the registry creates."""

    settings: Settings = field(default_factory=get_settings)
    transport_factory: Optional[TransportFactory] = None
    key_resolver: Optional[KeyResolver] = None
    auto_dispatch: bool = True


class SessionRegistry:
    """
    Tracks sessions by identifier and notifies listeners of lifecycle events.

    Listener dispatch is synchronous and best-effort: a failing listener is
    logged and the remaining listeners still run.
    """

    def __init__(self, context: Optional[SessionContext] = None):
        self.context = context or SessionContext()
        self._sessions: dict[str, RemoteSession] = {}
        self._lock = threading.Lock()
        self._listeners: list[SessionListener] = []

    # Listeners

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _fire(self, event: SessionEvent, session: RemoteSession) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception(f"Session listener failed on {event.value} of {session.session_id}")

    # Lifecycle

    def create(self, connection: ServerConnection, secret: Optional[str] = None) -> RemoteSession:
        """
        Register a new, not yet connected session.

        Args:
            connection: Connection record to open
            secret: Decrypted password or key passphrase

        Returns:
            The session; call connect() on it to open the shell
        """
        session_id = str(uuid.uuid4())
        session = RemoteSession(
            session_id,
            connection,
            secret=secret,
            settings=self.context.settings,
            transport_factory=self.context.transport_factory,
            key_resolver=self.context.key_resolver,
            auto_dispatch=self.context.auto_dispatch,
        )
        with self._lock:
            self._sessions[session_id] = session

        logger.info(f"Created session {session_id} for {connection.display_name}")
        self._fire(SessionEvent.CREATED, session)
        return session

    def close(self, session_id: str) -> None:
        """Disconnect and remove a session. Unknown identifiers are ignored."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return

        session.disconnect()
        logger.info(f"Closed session {session_id}")
        self._fire(SessionEvent.CLOSED, session)

    def close_all(self) -> int:
        """Close every session. Returns the number closed."""
        with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            self.close(session_id)
        return len(session_ids)

    # Queries

    def get(self, session_id: str) -> Optional[RemoteSession]:
        return self._sessions.get(session_id)

    def all(self) -> list[RemoteSession]:
        return list(self._sessions.values())

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    @property
    def connected_count(self) -> int:
        return sum(1 for s in self.all() if s.is_connected())

    def total_buffered_text_size(self) -> int:
        """Total characters held in all session buffers."""
        return sum(s.buffered_text_size for s in self.all())

    def session_states(self) -> list[SessionState]:
        return [s.get_state() for s in self.all()]

    def active_connection_names(self) -> list[str]:
        return [s.connection.display_name for s in self.all() if s.is_connected()]

    def __len__(self) -> int:
        return self.active_count

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
