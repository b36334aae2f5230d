"""
Oplog access helpers.

- BsonOplogReader extracts entry timestamps from a dumped local.oplog.rs
- MongoOplogSource asks the server for its newest oplog position
- oplog_query builds the mongodump --query filter for an incremental capture

pymongo is blocking, so its calls run in the default executor.
"""

from __future__ import annotations

import asyncio
import gzip
import json
import logging
from pathlib import Path
from typing import List, Optional, Protocol, runtime_checkable

import bson
from bson.errors import BSONError
from bson.timestamp import Timestamp as BsonTimestamp
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from .errors import BackupError, OplogReadError
from .timestamp import Timestamp

logger = logging.getLogger(__name__)

OPLOG_DB = "local"
OPLOG_COLLECTION = "oplog.rs"


def oplog_query(start_at: Timestamp) -> str:
    """Extended JSON filter selecting oplog entries at or after ``start_at``."""
    return json.dumps(
        {"ts": {"$gte": {"$timestamp": {"t": start_at.seconds, "i": start_at.increment}}}}
    )


@runtime_checkable
class OplogTimestampReader(Protocol):
    """Reads entry timestamps out of a captured oplog dump."""

    async def read_timestamps(self, path: Path) -> List[Timestamp]:
        ...


@runtime_checkable
class OplogPositionSource(Protocol):
    """Reports the newest position in the server's oplog."""

    async def latest_position(self) -> Optional[Timestamp]:
        ...


class BsonOplogReader:
    """Reads timestamps from a mongodump BSON file (optionally gzipped)."""

    async def read_timestamps(self, path: Path) -> List[Timestamp]:
        """Return the ``ts`` of every entry, in file order.

        Raises:
            OplogReadError: If the file is unreadable or malformed
        """
        return await asyncio.get_event_loop().run_in_executor(None, self._read_file, Path(path))

    def _read_file(self, path: Path) -> List[Timestamp]:
        opener = gzip.open if path.name.endswith(".gz") else open
        timestamps = []
        try:
            with opener(path, "rb") as f:
                for entry in bson.decode_file_iter(f):
                    ts = entry.get("ts")
                    if ts is None:
                        raise OplogReadError(f"Oplog entry without ts in {path}")
                    if not isinstance(ts, BsonTimestamp):
                        raise OplogReadError(f"Oplog entry with invalid ts in {path}")
                    timestamps.append(Timestamp.from_bson(ts))
        except (OSError, EOFError, BSONError) as e:
            raise OplogReadError(f"Failed to read oplog dump {path}: {e}")

        logger.debug(f"Read {len(timestamps)} oplog timestamps from {path}")
        return timestamps


class MongoOplogSource:
    """Queries the newest oplog entry through pymongo.

    Example:
        >>> source = MongoOplogSource("mongodb://db1:27017")
        >>> await source.latest_position()
        Timestamp(seconds=1700000000, increment=4)
    """

    def __init__(self, uri: str, timeout_ms: int = 10000) -> None:
        self.uri = uri
        self.timeout_ms = timeout_ms

    async def latest_position(self) -> Optional[Timestamp]:
        """Return the newest oplog timestamp, None if the oplog is empty."""
        return await asyncio.get_event_loop().run_in_executor(None, self._query_latest)

    def _query_latest(self) -> Optional[Timestamp]:
        client = MongoClient(self.uri, serverSelectionTimeoutMS=self.timeout_ms)
        try:
            entry = client[OPLOG_DB][OPLOG_COLLECTION].find_one(
                {}, {"ts": 1}, sort=[("$natural", -1)]
            )
        except PyMongoError as e:
            raise BackupError(f"Could not query latest oplog position: {e}") from e
        finally:
            client.close()

        if not entry or "ts" not in entry:
            return None
        return Timestamp.from_bson(entry["ts"])
