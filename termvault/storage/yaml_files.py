"""YAML file helpers shared by the stores."""

from pathlib import Path

import yaml

from ..exceptions import FormatError


def read_yaml_list(path: Path, key: str) -> list[dict]:
    """Read the list stored under ``key`` in a YAML file (missing file = empty)."""
    if not path.exists():
        return []
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise FormatError(f"Cannot parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise FormatError(f"Unexpected content in {path}")
    entries = data.get(key) or []
    if not isinstance(entries, list):
        raise FormatError(f"'{key}' in {path} must be a list")
    return entries


def write_yaml_list(path: Path, key: str, entries: list[dict]) -> None:
    """Write ``{key: entries}`` to a YAML file, replacing it atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        yaml.dump(
            {key: entries},
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    tmp_path.replace(path)
