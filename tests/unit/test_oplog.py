"""
Unit tests for reading timestamps out of oplog dumps.
"""

import gzip
import tempfile
from pathlib import Path

import bson
import pytest
from bson.timestamp import Timestamp as BsonTimestamp

from dbaas.oplog_backup.errors import OplogReadError
from dbaas.oplog_backup.oplog import BsonOplogReader, OplogTimestampReader
from dbaas.oplog_backup.timestamp import Timestamp


def oplog_entries(*pairs):
    return [
        {"ts": BsonTimestamp(s, i), "op": "i", "ns": "app.users", "o": {"_id": n}}
        for n, (s, i) in enumerate(pairs)
    ]


class TestBsonOplogReader:
    """Tests for BsonOplogReader."""

    @pytest.fixture
    def tmp_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def reader(self):
        return BsonOplogReader()

    def test_implements_protocol(self, reader):
        assert isinstance(reader, OplogTimestampReader)

    @pytest.mark.asyncio
    async def test_reads_plain_bson(self, reader, tmp_dir):
        path = tmp_dir / "oplog.rs.bson"
        path.write_bytes(b"".join(bson.encode(e) for e in oplog_entries((1000, 5), (1001, 0))))

        timestamps = await reader.read_timestamps(path)

        assert timestamps == [Timestamp(1000, 5), Timestamp(1001, 0)]

    @pytest.mark.asyncio
    async def test_reads_gzipped_bson(self, reader, tmp_dir):
        path = tmp_dir / "oplog.rs.bson.gz"
        with gzip.open(path, "wb") as f:
            for entry in oplog_entries((7, 1), (7, 2), (8, 0)):
                f.write(bson.encode(entry))

        timestamps = await reader.read_timestamps(path)

        assert timestamps == [Timestamp(7, 1), Timestamp(7, 2), Timestamp(8, 0)]

    @pytest.mark.asyncio
    async def test_preserves_file_order(self, reader, tmp_dir):
        """Reader does not sort; ordering is checked by the validator."""
        path = tmp_dir / "oplog.rs.bson"
        path.write_bytes(b"".join(bson.encode(e) for e in oplog_entries((9, 0), (8, 0))))

        assert await reader.read_timestamps(path) == [Timestamp(9, 0), Timestamp(8, 0)]

    @pytest.mark.asyncio
    async def test_empty_file(self, reader, tmp_dir):
        path = tmp_dir / "oplog.rs.bson"
        path.write_bytes(b"")

        assert await reader.read_timestamps(path) == []

    @pytest.mark.asyncio
    async def test_truncated_file(self, reader, tmp_dir):
        path = tmp_dir / "oplog.rs.bson"
        path.write_bytes(bson.encode(oplog_entries((1, 1))[0])[:-3])

        with pytest.raises(OplogReadError):
            await reader.read_timestamps(path)

    @pytest.mark.asyncio
    async def test_truncated_gzip_file(self, reader, tmp_dir):
        """A gzip stream cut off mid-member is a read error, not EOFError."""
        payload = b"".join(bson.encode(e) for e in oplog_entries(*[(1000, n) for n in range(50)]))
        compressed = gzip.compress(payload)
        path = tmp_dir / "oplog.rs.bson.gz"
        path.write_bytes(compressed[: len(compressed) // 2])

        with pytest.raises(OplogReadError):
            await reader.read_timestamps(path)

    @pytest.mark.asyncio
    async def test_entry_without_ts(self, reader, tmp_dir):
        path = tmp_dir / "oplog.rs.bson"
        path.write_bytes(bson.encode({"op": "n"}))

        with pytest.raises(OplogReadError, match="without ts"):
            await reader.read_timestamps(path)

    @pytest.mark.asyncio
    async def test_entry_with_non_timestamp_ts(self, reader, tmp_dir):
        path = tmp_dir / "oplog.rs.bson"
        path.write_bytes(bson.encode({"ts": 12345, "op": "n"}))

        with pytest.raises(OplogReadError, match="invalid ts"):
            await reader.read_timestamps(path)

    @pytest.mark.asyncio
    async def test_missing_file(self, reader, tmp_dir):
        with pytest.raises(OplogReadError):
            await reader.read_timestamps(tmp_dir / "nope.bson")
