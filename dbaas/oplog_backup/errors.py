"""
Error taxonomy for oplog backups.

Every failure aborts the current run and reaches the caller unchanged.
Nothing in this package retries on its own; the next invocation may
succeed once the underlying condition clears.

Fatal for the current chain (operator must start a new full backup or
grow the oplog):
    - EmptyOplogAtLatestPosition
    - OplogGapDetected
"""

from __future__ import annotations


class BackupError(Exception):
    """Base exception for backup operations."""
    pass


class EmptyOplogAtLatestPosition(BackupError):
    """The server has no oplog entries, so a chain cannot be anchored."""
    pass


class BackupFolderExists(BackupError):
    """A chain folder for the computed backup name already exists."""
    pass


class DumpToolFailure(BackupError):
    """mongodump failed or did not produce the expected output."""
    pass


class UnknownBackupPosition(BackupError):
    """An oplog backup was requested but no chain has been recorded."""
    pass


class NoStateFound(BackupError):
    """The active chain has no state file."""
    pass


class NoStartPosition(BackupError):
    """Neither an explicit start nor a stored position is available."""
    pass


class ContinuityError(BackupError):
    """Captured oplog segment does not continue the chain."""
    pass


class OplogOrderingViolation(ContinuityError):
    """Timestamps in the captured segment are not strictly increasing."""
    pass


class OplogGapDetected(ContinuityError):
    """The oplog rolled past the expected start; entries were lost."""
    pass


class OplogQueryError(ContinuityError):
    """The oplog query returned entries older than requested."""
    pass


class OplogReadError(BackupError):
    """A captured oplog dump file could not be decoded."""
    pass


class StateFileCorrupt(BackupError):
    """A state document exists but is not valid."""
    pass


class SyncFailure(BackupError):
    """Uploading the chain folder to remote storage failed."""
    pass


class BackupLocked(BackupError):
    """Another invocation holds the backup root lock."""
    pass
