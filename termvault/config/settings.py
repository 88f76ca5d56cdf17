"""Configuration settings for Termvault."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class TerminalConfig:
    """PTY geometry and terminal type requested for remote shells."""

    columns: int = 80
    rows: int = 24
    term_type: str = "xterm-256color"


@dataclass
class SSHConfig:
    """Configuration for SSH transport and sessions."""

    connect_timeout: float = 15.0  # Seconds for TCP connect + handshake
    auth_timeout: float = 30.0
    channel_timeout: float = 10.0
    read_size: int = 8192
    keepalive_interval: int = 0  # 0 = disabled
    verify_host_keys: bool = False
    known_hosts_file: Path = field(default_factory=lambda: Path.home() / ".ssh" / "known_hosts")


@dataclass
class Settings:
    """Main settings container."""

    terminal: TerminalConfig = field(default_factory=TerminalConfig)
    ssh: SSHConfig = field(default_factory=SSHConfig)

    # Paths
    config_dir: Path = field(default_factory=lambda: Path.home() / ".termvault")

    # Logging
    log_level: str = "WARNING"
    log_file: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        settings = cls()

        if config_dir := os.getenv("TERMVAULT_CONFIG_DIR"):
            settings.config_dir = Path(config_dir)

        if term := os.getenv("TERMVAULT_TERM"):
            settings.terminal.term_type = term

        if columns := os.getenv("TERMVAULT_COLUMNS"):
            settings.terminal.columns = int(columns)

        if rows := os.getenv("TERMVAULT_ROWS"):
            settings.terminal.rows = int(rows)

        if timeout := os.getenv("TERMVAULT_CONNECT_TIMEOUT"):
            settings.ssh.connect_timeout = float(timeout)

        if os.getenv("TERMVAULT_VERIFY_HOST_KEYS", "").lower() == "true":
            settings.ssh.verify_host_keys = True

        if known_hosts := os.getenv("TERMVAULT_KNOWN_HOSTS"):
            settings.ssh.known_hosts_file = Path(known_hosts)

        if log_level := os.getenv("LOG_LEVEL"):
            settings.log_level = log_level

        if log_file := os.getenv("TERMVAULT_LOG_FILE"):
            settings.log_file = Path(log_file)

        return settings


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def configure(settings: Optional[Settings]) -> None:
    """Set the global settings instance (None resets to environment defaults)."""
    global _settings
    _settings = settings
