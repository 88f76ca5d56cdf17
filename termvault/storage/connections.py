"""Storage of connection records in a YAML file.

Connections are stored in:
    config_dir/connections.yaml

Secret fields are already EncryptedSecret strings when they reach this
layer; nothing here encrypts or decrypts.
"""

from pathlib import Path
from typing import Optional

from ..models import ServerConnection
from ..utils.logging import get_logger
from .yaml_files import read_yaml_list, write_yaml_list

logger = get_logger(__name__)

CONNECTIONS_FILE = "connections.yaml"


class ConnectionRepository:
    """
    Loads and saves named connection records.

    Usage:
        repo = ConnectionRepository(config_dir)
        repo.add(ServerConnection(name="web", host="example.com", username="alice"))
        repo.save()
    """

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)
        self._connections: dict[str, ServerConnection] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        """Path to the connections file."""
        return self.config_dir / CONNECTIONS_FILE

    def load(self) -> list[ServerConnection]:
        """Load all connections from disk, replacing anything in memory."""
        self._connections = {}
        for data in read_yaml_list(self.path, "connections"):
            try:
                connection = ServerConnection.from_dict(data)
            except (ValueError, KeyError, TypeError) as e:
                # Skip malformed entries
                logger.warning(f"Skipping malformed connection entry in {self.path}: {e}")
                continue
            self._connections[connection.id] = connection
        self._loaded = True
        logger.debug(f"Loaded {len(self._connections)} connections from {self.path}")
        return self.all()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def save(self) -> None:
        """Write all connections to disk."""
        self._ensure_loaded()
        write_yaml_list(self.path, "connections", [c.to_dict() for c in self._connections.values()])

    def add(self, connection: ServerConnection) -> ServerConnection:
        """Add or replace a connection (matched by id)."""
        self._ensure_loaded()
        self._connections[connection.id] = connection
        return connection

    def remove(self, connection_id: str) -> bool:
        """Remove a connection. Returns False if it was not found."""
        self._ensure_loaded()
        return self._connections.pop(connection_id, None) is not None

    def get(self, connection_id: str) -> Optional[ServerConnection]:
        self._ensure_loaded()
        return self._connections.get(connection_id)

    def find_by_name(self, name: str) -> Optional[ServerConnection]:
        """Find a connection by name (case-insensitive)."""
        self._ensure_loaded()
        name_lower = name.lower()
        for connection in self._connections.values():
            if connection.name.lower() == name_lower:
                return connection
        return None

    def all(self) -> list[ServerConnection]:
        """All connections, sorted by group then name."""
        self._ensure_loaded()
        return sorted(
            self._connections.values(),
            key=lambda c: ((c.group or "").lower(), c.name.lower()),
        )
