"""
Backup orchestration.

The BackupOrchestrator decides between a full backup and continuing the
current chain, then runs a straight pipeline of awaited steps:

    full:   anchor ─▶ mongodump ─▶ state.json ─▶ backup.json ─▶ oplog ─▶ sync
    oplog:  state.json ─▶ mongodump oplog ─▶ validate ─▶ move segment ─▶ state.json ─▶ sync

A failing step raises a BackupError and the rest of the pipeline is
skipped. Partially created chain folders are left in place for
inspection; only the temporary oplog dump area is always removed.

Invariants:
    - The anchor position is read before the full dump starts
    - state.json is written only after the dump it describes succeeded
    - A stored position never moves backwards
    - One run at a time per backup root (file lock)

How to change safely:
    - Keep segment file names parseable: oplog-<t1>:<i1>-<t2>:<i2>.bson[.gz]
    - Never write state before validation has passed
"""

from __future__ import annotations

import logging
import shutil
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from filelock import FileLock, Timeout

from .config import BackupConfig, BackupMode
from .continuity import validate_continuity
from .dump import DumpInvoker
from .errors import (
    BackupFolderExists,
    BackupLocked,
    DumpToolFailure,
    EmptyOplogAtLatestPosition,
    NoStartPosition,
    NoStateFound,
    SyncFailure,
    UnknownBackupPosition,
)
from .oplog import OPLOG_COLLECTION, OPLOG_DB, OplogPositionSource, OplogTimestampReader, oplog_query
from .state import BackupState, BackupStateStore, GlobalState
from .sync import SyncCollaborator
from .timestamp import Timestamp

logger = logging.getLogger(__name__)


def backup_name_for(position: Timestamp) -> str:
    """Chain name derived from its anchor position."""
    return f"backup-{position}"


def segment_file_name(first: Timestamp, last: Timestamp, gzip: bool = False) -> str:
    """File name for an oplog segment covering ``first``..``last``."""
    name = f"oplog-{first}-{last}.bson"
    return name + ".gz" if gzip else name


@dataclass
class OplogSegmentResult:
    """Outcome of an incremental capture.

    Attributes:
        entries: Entries returned, including the boundary entry at the start position
        first: Timestamp of the first entry (the previous position)
        position: Timestamp of the last entry
        empty: True if only the boundary entry came back
        file: Final path of the segment, None when empty
    """

    entries: int
    first: Timestamp
    position: Timestamp
    empty: bool
    file: Optional[Path] = None

    @property
    def new_entries(self) -> int:
        return self.entries - 1


@dataclass
class FullBackupResult:
    """Outcome of a full backup.

    Attributes:
        backup: Name of the new chain
        position: Anchor position of the chain
        folder: Chain folder
    """

    backup: str
    position: Timestamp
    folder: Path


@dataclass
class BackupRunResult:
    """What one perform() call did."""

    mode: BackupMode
    backup: str
    full: Optional[FullBackupResult] = None
    oplog: Optional[OplogSegmentResult] = None
    synced: bool = False


class BackupOrchestrator:
    """Runs full and incremental oplog backups against one backup root.

    Attributes:
        config: Local backup layout configuration
        store: State document storage
        oplog_source: Reports the server's newest oplog position
        dumper: Runs mongodump
        reader: Reads timestamps out of a dumped oplog
        syncer: Uploads chain folders; None disables sync
        remote_prefix: Key prefix for uploaded chain folders

    Example:
        >>> orchestrator = BackupOrchestrator(config, source, dumper, reader, syncer)
        >>> result = await orchestrator.perform(BackupMode.AUTO)
        >>> print(result.backup, result.oplog.position)
    """

    def __init__(
        self,
        config: BackupConfig,
        oplog_source: OplogPositionSource,
        dumper: DumpInvoker,
        reader: OplogTimestampReader,
        syncer: Optional[SyncCollaborator] = None,
        remote_prefix: str = "backups",
    ) -> None:
        self.config = config
        self.store = BackupStateStore(config.backup_dir)
        self.oplog_source = oplog_source
        self.dumper = dumper
        self.reader = reader
        self.syncer = syncer
        self.remote_prefix = remote_prefix

    async def perform(
        self,
        mode: BackupMode | str = BackupMode.AUTO,
        start: Optional[Timestamp] = None,
    ) -> BackupRunResult:
        """Run one backup.

        Args:
            mode: auto, full or oplog
            start: Explicit start position for the incremental capture

        Returns:
            BackupRunResult describing what was captured

        Raises:
            BackupError: On any failure; the run stops at the failing step
        """
        mode = BackupMode(mode)
        self.config.root.mkdir(parents=True, exist_ok=True)

        with self._locked():
            global_state = self.store.read_global() or GlobalState()

            if mode == BackupMode.AUTO:
                mode = BackupMode.OPLOG if global_state.backup else BackupMode.FULL

            full_result = None
            if mode == BackupMode.FULL:
                logger.info("Performing full backup")
                full_result = await self.backup_full()
                global_state = GlobalState(backup=full_result.backup)
                self.store.write_global(global_state)
                logger.info(f"Performed full backup {full_result.backup}")

            if not global_state.backup:
                raise UnknownBackupPosition(
                    "Unknown backup position - cannot perform oplog backup. "
                    "Have you completed a full backup?"
                )

            # A fresh chain always continues from its anchor.
            if full_result is not None:
                start = None

            logger.info("Performing incremental oplog backup")
            oplog_result = await self.backup_oplog(global_state.backup, start=start)
            if oplog_result.empty:
                logger.info("Nothing new to backup")
            else:
                logger.info(f"Backed up {oplog_result.new_entries} new entries to {oplog_result.file}")

            synced = await self.sync(global_state.backup)

        return BackupRunResult(
            mode=mode,
            backup=global_state.backup,
            full=full_result,
            oplog=oplog_result,
            synced=synced,
        )

    async def backup_full(self) -> FullBackupResult:
        """Take a full dump and start a new chain anchored before it."""
        position = await self.oplog_source.latest_position()
        if position is None:
            raise EmptyOplogAtLatestPosition("Cannot backup with empty oplog")

        name = backup_name_for(position)
        folder = self.store.chain_folder(name)
        if folder.exists():
            raise BackupFolderExists(
                f"Backup folder '{folder}' already exists; not performing backup."
            )

        dump_folder = folder / "dump"
        dump_folder.mkdir(parents=True)

        output = await self.dumper.dump(dump_folder)

        if not folder.exists():
            logger.error("Backup folder does not exist", extra={"folder": str(folder)})
            raise DumpToolFailure("Full backup failed")

        (folder / "debug.log").write_text(output, encoding="utf-8")
        self.store.write_chain_state(name, BackupState(position=position))

        return FullBackupResult(backup=name, position=position, folder=folder)

    async def backup_oplog(
        self,
        name: str,
        start: Optional[Timestamp] = None,
    ) -> OplogSegmentResult:
        """Capture oplog entries since the chain's position into its folder."""
        state = self.store.read_chain_state(name)
        if state is None:
            raise NoStateFound(f"No state in {name}")

        start_at = start or state.position
        if start_at is None:
            raise NoStartPosition("A start position is required")

        with self._oplog_work_area() as dump_folder:
            await self.dumper.dump(
                dump_folder,
                db=OPLOG_DB,
                collection=OPLOG_COLLECTION,
                query=oplog_query(start_at),
            )

            dump_file = self.config.oplog_dump_file
            if not dump_file.exists():
                raise DumpToolFailure(f"mongodump failed: {dump_file} was not written")

            logger.info("Checking timestamps...")
            timestamps = await self.reader.read_timestamps(dump_file)
            validate_continuity(timestamps, start_at)

            first, last = timestamps[0], timestamps[-1]
            result = OplogSegmentResult(
                entries=len(timestamps),
                first=first,
                position=last,
                empty=len(timestamps) == 1,
            )
            if result.empty:
                return result

            folder = self.store.chain_folder(name)
            folder.mkdir(parents=True, exist_ok=True)
            target = folder / segment_file_name(first, last, gzip=self.config.gzip)
            shutil.move(str(dump_file), str(target))
            result.file = target

            if state.position is not None and last <= state.position:
                logger.warning(
                    f"Segment ends at {last}, not after stored position {state.position}; "
                    "keeping stored position"
                )
            else:
                self.store.write_chain_state(name, BackupState(position=last, extra=state.extra))

            return result

    async def sync(self, name: str) -> bool:
        """Upload the chain folder; returns False when sync is disabled."""
        if self.syncer is None:
            logger.info("S3 sync disabled, skipping upload")
            return False

        folder = self.store.chain_folder(name)
        try:
            await self.syncer.upload(folder, f"{self.remote_prefix.strip('/')}/{name}")
        except SyncFailure:
            raise
        except Exception as e:
            raise SyncFailure(f"unable to upload {folder}: {e}") from e
        return True

    @contextmanager
    def _oplog_work_area(self) -> Iterator[Path]:
        """Fresh temporary dump folder, removed on every exit path."""
        dump_folder = self.config.oplog_dump_folder
        if dump_folder.exists():
            logger.warning(f"Removing stale oplog dump folder {dump_folder}")
            shutil.rmtree(dump_folder)
        dump_folder.mkdir(parents=True)
        try:
            yield dump_folder
        finally:
            shutil.rmtree(dump_folder, ignore_errors=True)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        lock = FileLock(str(self.config.lock_file), timeout=self.config.lock_timeout_seconds)
        try:
            lock.acquire()
        except Timeout:
            raise BackupLocked(
                f"Another backup is running against {self.config.backup_dir} "
                f"(lock file {self.config.lock_file})"
            )
        try:
            yield
        finally:
            lock.release()
