"""
Unit tests for BackupStateStore.

Tests cover:
- Global pointer and chain state round trips
- Missing and malformed documents
- Full overwrite on write
"""

import json
import tempfile
from pathlib import Path

import pytest

from dbaas.oplog_backup.errors import StateFileCorrupt
from dbaas.oplog_backup.state import BackupState, BackupStateStore, GlobalState
from dbaas.oplog_backup.timestamp import Timestamp


class TestBackupStateStore:
    """Tests for BackupStateStore."""

    @pytest.fixture
    def backup_dir(self):
        """Create temporary backup root."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def store(self, backup_dir):
        return BackupStateStore(backup_dir)

    def test_missing_documents_read_as_none(self, store):
        assert store.read_global() is None
        assert store.read_chain_state("backup-1:1") is None

    def test_chain_state_round_trip(self, store):
        store.write_chain_state("backup-100:3", BackupState(position=Timestamp(100, 3)))

        state = store.read_chain_state("backup-100:3")
        assert state.position == Timestamp(100, 3)

    def test_chain_state_document_format(self, store, backup_dir):
        store.write_chain_state("backup-100:3", BackupState(position=Timestamp(100, 3)))

        path = backup_dir / "backup-100:3" / "state.json"
        assert json.loads(path.read_text()) == {"position": {"seconds": 100, "increment": 3}}

    def test_global_round_trip(self, store, backup_dir):
        store.write_global(GlobalState(backup="backup-100:3"))

        assert store.read_global() == GlobalState(backup="backup-100:3")
        assert json.loads((backup_dir / "backup.json").read_text()) == {"backup": "backup-100:3"}

    def test_write_overwrites(self, store):
        store.write_global(GlobalState(backup="backup-1:1"))
        store.write_global(GlobalState(backup="backup-2:1"))

        assert store.read_global().backup == "backup-2:1"

    def test_extra_keys_preserved(self, store, backup_dir):
        folder = backup_dir / "backup-5:0"
        folder.mkdir()
        (folder / "state.json").write_text(
            json.dumps({"position": {"seconds": 5, "increment": 0}, "note": "manual"})
        )

        state = store.read_chain_state("backup-5:0")
        store.write_chain_state("backup-5:0", BackupState(Timestamp(6, 0), extra=state.extra))

        data = json.loads((folder / "state.json").read_text())
        assert data == {"position": {"seconds": 6, "increment": 0}, "note": "manual"}

    def test_no_temp_file_left_behind(self, store, backup_dir):
        store.write_global(GlobalState(backup="backup-1:1"))
        assert sorted(p.name for p in backup_dir.iterdir()) == ["backup.json"]

    def test_malformed_json(self, store, backup_dir):
        (backup_dir / "backup.json").write_text("{not json")
        with pytest.raises(StateFileCorrupt):
            store.read_global()

    def test_non_object_document(self, store, backup_dir):
        (backup_dir / "backup.json").write_text("[1, 2]")
        with pytest.raises(StateFileCorrupt):
            store.read_global()

    def test_non_string_chain_name(self, store, backup_dir):
        (backup_dir / "backup.json").write_text(json.dumps({"backup": 5}))
        with pytest.raises(StateFileCorrupt):
            store.read_global()

    def test_invalid_position(self, store, backup_dir):
        folder = backup_dir / "backup-5:0"
        folder.mkdir()
        (folder / "state.json").write_text(json.dumps({"position": {"seconds": 5}}))

        with pytest.raises(StateFileCorrupt):
            store.read_chain_state("backup-5:0")

    def test_state_without_position(self, store, backup_dir):
        folder = backup_dir / "backup-5:0"
        folder.mkdir()
        (folder / "state.json").write_text("{}")

        assert store.read_chain_state("backup-5:0").position is None
