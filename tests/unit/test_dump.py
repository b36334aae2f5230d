"""
Unit tests for the mongodump invoker.

A small shell script stands in for the mongodump executable.
"""

import json
import stat
import sys
import tempfile
from pathlib import Path

import pytest

from dbaas.oplog_backup.config import MongoConfig
from dbaas.oplog_backup.dump import DumpInvoker, MongoDump
from dbaas.oplog_backup.errors import DumpToolFailure
from dbaas.oplog_backup.oplog import oplog_query
from dbaas.oplog_backup.timestamp import Timestamp

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script")


class TestMongoDump:
    """Tests for MongoDump."""

    @pytest.fixture
    def tmp_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    def make_script(self, tmp_dir: Path, body: str) -> str:
        script = tmp_dir / "fake-mongodump"
        script.write_text("#!/bin/sh\n" + body + "\n")
        script.chmod(script.stat().st_mode | stat.S_IEXEC)
        return str(script)

    def test_implements_protocol(self):
        assert isinstance(MongoDump(MongoConfig()), DumpInvoker)

    def test_full_dump_args(self):
        dumper = MongoDump(MongoConfig(uri="mongodb://db1:27017"))
        args = dumper.build_args(Path("/b/backup-1:1/dump"))
        assert args == ["--uri", "mongodb://db1:27017", "--out", "/b/backup-1:1/dump"]

    def test_oplog_dump_args(self):
        dumper = MongoDump(MongoConfig(uri="mongodb://db1:27017"), gzip=True)
        query = oplog_query(Timestamp(1000, 5))
        args = dumper.build_args(Path("/b/dump"), db="local", collection="oplog.rs", query=query)

        assert args[:4] == ["--uri", "mongodb://db1:27017", "--out", "/b/dump"]
        assert args[4:8] == ["--db", "local", "--collection", "oplog.rs"]
        assert args[8:10] == ["--query", query]
        assert args[-1] == "--gzip"

    def test_oplog_query_format(self):
        query = json.loads(oplog_query(Timestamp(1000, 5)))
        assert query == {"ts": {"$gte": {"$timestamp": {"t": 1000, "i": 5}}}}

    @pytest.mark.asyncio
    async def test_returns_console_output(self, tmp_dir):
        script = self.make_script(tmp_dir, 'echo "writing $4"; echo "done" >&2')
        dumper = MongoDump(MongoConfig(mongodump_bin=script))

        output = await dumper.dump(tmp_dir / "out")

        assert f"writing {tmp_dir / 'out'}" in output
        assert "done" in output

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, tmp_dir):
        script = self.make_script(tmp_dir, "echo boom; exit 3")
        dumper = MongoDump(MongoConfig(mongodump_bin=script))

        with pytest.raises(DumpToolFailure, match="exit code 3"):
            await dumper.dump(tmp_dir / "out")

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_dir):
        dumper = MongoDump(MongoConfig(mongodump_bin=str(tmp_dir / "does-not-exist")))

        with pytest.raises(DumpToolFailure):
            await dumper.dump(tmp_dir / "out")
