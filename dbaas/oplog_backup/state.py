"""
Persistent state for backup chains.

Two JSON documents tie successive runs together:

    <backupRoot>/backup.json          {"backup": "<chain name>"}
    <backupRoot>/<chain>/state.json   {"position": {"seconds": S, "increment": I}}

The store is pure storage: it reads and writes documents and makes no
decisions about them.

Invariants:
    - Each write fully replaces its document (no merging)
    - Writes go through a temp file and rename, so readers never see a
      partially written document
    - Missing documents read as None; malformed ones raise StateFileCorrupt
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from .errors import StateFileCorrupt
from .timestamp import Timestamp

logger = logging.getLogger(__name__)

GLOBAL_STATE_FILE = "backup.json"
CHAIN_STATE_FILE = "state.json"


@dataclass(frozen=True)
class GlobalState:
    """Pointer to the active backup chain.

    Attributes:
        backup: Name of the current chain, None before the first full backup
    """

    backup: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {"backup": self.backup} if self.backup else {}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GlobalState:
        backup = data.get("backup")
        if backup is not None and not isinstance(backup, str):
            raise TypeError(f"backup must be a string, got {type(backup).__name__}")
        return cls(backup=backup)


@dataclass(frozen=True)
class BackupState:
    """State of one backup chain.

    Attributes:
        position: Last oplog position confirmed captured for the chain
        extra: Any other keys found in the document, written back unchanged
    """

    position: Timestamp | None = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        if self.position is not None:
            data["position"] = self.position.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BackupState:
        extra = {k: v for k, v in data.items() if k != "position"}
        raw = data.get("position")
        position = Timestamp.from_dict(raw) if raw else None
        return cls(position=position, extra=extra)


class BackupStateStore:
    """Reads and writes state documents under a backup root.

    Example:
        >>> store = BackupStateStore("/var/backups/mongo")
        >>> store.write_chain_state("backup-1000:1", BackupState(Timestamp(1000, 1)))
        >>> store.read_chain_state("backup-1000:1").position
        Timestamp(seconds=1000, increment=1)
    """

    def __init__(self, backup_dir: str | Path) -> None:
        self.backup_dir = Path(backup_dir)

    @property
    def global_state_file(self) -> Path:
        return self.backup_dir / GLOBAL_STATE_FILE

    def chain_folder(self, name: str) -> Path:
        return self.backup_dir / name

    def chain_state_file(self, name: str) -> Path:
        return self.chain_folder(name) / CHAIN_STATE_FILE

    def read_global(self) -> GlobalState | None:
        """Read the global pointer document, None if absent."""
        data = self._read_json(self.global_state_file)
        if data is None:
            return None
        try:
            return GlobalState.from_dict(data)
        except TypeError as e:
            raise StateFileCorrupt(f"Invalid chain name in {self.global_state_file}: {e}")

    def write_global(self, state: GlobalState) -> None:
        """Replace the global pointer document."""
        self._write_json(self.global_state_file, state.to_dict())

    def read_chain_state(self, name: str) -> BackupState | None:
        """Read a chain's state document, None if absent."""
        data = self._read_json(self.chain_state_file(name))
        if data is None:
            return None
        try:
            return BackupState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StateFileCorrupt(f"Invalid position in {self.chain_state_file(name)}: {e}")

    def write_chain_state(self, name: str, state: BackupState) -> None:
        """Replace a chain's state document."""
        self._write_json(self.chain_state_file(name), state.to_dict())

    def _read_json(self, path: Path) -> Dict[str, Any] | None:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StateFileCorrupt(f"Failed to parse {path}: {e}")
        if not isinstance(data, dict):
            raise StateFileCorrupt(f"Expected a JSON object in {path}")
        return data

    def _write_json(self, path: Path, data: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        logger.debug("Wrote state file", extra={"path": str(path)})
