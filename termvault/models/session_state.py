"""Session state snapshot model."""

from dataclasses import dataclass
from typing import Any, Optional


def shorten_path(path: Optional[str], max_length: int = 20) -> Optional[str]:
    """Shorten a long directory path to its last two components."""
    if path is None or len(path) <= max_length:
        return path
    parts = path.split("/")
    if len(parts) <= 2:
        return path
    return ".../" + "/".join(parts[-2:])


@dataclass
class SessionState:
    """Point-in-time snapshot of one session, for display and persistence."""

    session_id: str
    connection_id: str
    terminal_history: str = ""
    tab_title: Optional[str] = None
    current_directory: Optional[str] = None
    current_application: Optional[str] = None
    connected: bool = False

    def generate_display_title(self, username: str) -> str:
        """Build a tab title from the current application or directory."""
        if self.current_application and self.current_application.strip():
            return f"{username} @ {self.current_application}"
        if self.current_directory and self.current_directory.strip():
            return f"{username} @ {shorten_path(self.current_directory)}"
        return self.tab_title or "Terminal"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "session_id": self.session_id,
            "connection_id": self.connection_id,
            "terminal_history": self.terminal_history,
            "tab_title": self.tab_title,
            "current_directory": self.current_directory,
            "current_application": self.current_application,
            "connected": self.connected,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionState":
        """Create from dictionary."""
        return cls(
            session_id=data["session_id"],
            connection_id=data["connection_id"],
            terminal_history=data.get("terminal_history", ""),
            tab_title=data.get("tab_title"),
            current_directory=data.get("current_directory"),
            current_application=data.get("current_application"),
            connected=bool(data.get("connected", False)),
        )
