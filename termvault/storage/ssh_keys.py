"""Key store for SSH private keys.

Key entries are stored in config_dir/ssh-keys.yaml. Keys may be copied into
config_dir/ssh-keys/ so connections keep working if the original file moves.
"""

import os
import shutil
from pathlib import Path
from typing import Optional

from ..exceptions import ResourceError
from ..models import SSHKey
from ..utils.logging import get_logger
from .yaml_files import read_yaml_list, write_yaml_list

logger = get_logger(__name__)

KEYS_FILE = "ssh-keys.yaml"
KEYS_DIR = "ssh-keys"


class SSHKeyStore:
    """Registered SSH keys, looked up by id or name."""

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)
        self._keys: dict[str, SSHKey] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self.config_dir / KEYS_FILE

    @property
    def keys_dir(self) -> Path:
        """Directory holding copied key files."""
        return self.config_dir / KEYS_DIR

    def load(self) -> list[SSHKey]:
        self._keys = {}
        for data in read_yaml_list(self.path, "keys"):
            try:
                key = SSHKey.from_dict(data)
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed key entry in {self.path}: {e}")
                continue
            self._keys[key.id] = key
        self._loaded = True
        return self.all_keys()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def save(self) -> None:
        self._ensure_loaded()
        write_yaml_list(self.path, "keys", [k.to_dict() for k in self._keys.values()])

    def add_key(self, key: SSHKey) -> SSHKey:
        self._ensure_loaded()
        self._keys[key.id] = key
        logger.info(f"Added SSH key: {key.name}")
        return key

    def remove_key(self, key_id: str) -> bool:
        """Remove a key entry and any copy in the keys directory."""
        self._ensure_loaded()
        key = self._keys.pop(key_id, None)
        if key is None:
            return False
        if key.copied_to_user_dir and key.user_dir_path:
            for path in (Path(key.user_dir_path), Path(key.user_dir_path + ".pub")):
                if path.exists():
                    path.unlink()
        return True

    def find_key_by_id(self, key_id: str) -> Optional[SSHKey]:
        self._ensure_loaded()
        return self._keys.get(key_id)

    def find_key_by_name(self, name: str) -> Optional[SSHKey]:
        self._ensure_loaded()
        for key in self._keys.values():
            if key.name == name:
                return key
        return None

    def all_keys(self) -> list[SSHKey]:
        self._ensure_loaded()
        return sorted(self._keys.values(), key=lambda k: k.name.lower())

    def effective_key_path(self, key_id: str) -> Optional[Path]:
        """Path to use for a key: its copy if there is one, else the original."""
        key = self.find_key_by_id(key_id)
        if key is None:
            return None
        return Path(key.effective_path).expanduser()

    def copy_key_to_user_dir(self, key: SSHKey) -> Path:
        """
        Copy a key (and its .pub sibling, if present) into the keys directory.

        The copy is readable by the owner only.

        Raises:
            ResourceError: If the source key file cannot be read
        """
        source = Path(key.key_path).expanduser()
        if not source.is_file():
            raise ResourceError(f"SSH key file does not exist: {source}")

        self.keys_dir.mkdir(parents=True, exist_ok=True)
        target = self.keys_dir / f"{key.id}_{source.name}"
        try:
            shutil.copyfile(source, target)
            os.chmod(target, 0o600)
            public = source.with_name(source.name + ".pub")
            if public.is_file():
                shutil.copyfile(public, target.with_name(target.name + ".pub"))
        except OSError as e:
            raise ResourceError(f"Cannot copy SSH key {source}: {e}") from e

        key.copied_to_user_dir = True
        key.user_dir_path = str(target)
        logger.info(f"Copied SSH key {key.name} to {target}")
        return target
