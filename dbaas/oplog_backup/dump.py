"""
mongodump invocation.

The DumpInvoker protocol is what the orchestrator depends on; MongoDump
implements it by running the mongodump executable as a subprocess. A call
blocks the pipeline until the tool exits and yields no partial results.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Protocol, runtime_checkable

from .config import MongoConfig
from .errors import DumpToolFailure

logger = logging.getLogger(__name__)


@runtime_checkable
class DumpInvoker(Protocol):
    """Runs a database dump into a local directory."""

    async def dump(
        self,
        out: Path,
        db: Optional[str] = None,
        collection: Optional[str] = None,
        query: Optional[str] = None,
    ) -> str:
        """Dump into ``out`` and return the tool's console output.

        Raises:
            DumpToolFailure: If the dump could not be completed
        """
        ...


class MongoDump:
    """DumpInvoker backed by the mongodump executable.

    Example:
        >>> dumper = MongoDump(MongoConfig(uri="mongodb://db1:27017"), gzip=True)
        >>> output = await dumper.dump(Path("/backups/backup-1000:1/dump"))
    """

    def __init__(self, config: MongoConfig, gzip: bool = False) -> None:
        self.config = config
        self.gzip = gzip

    def build_args(
        self,
        out: Path,
        db: Optional[str] = None,
        collection: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[str]:
        """Build the mongodump argument list (without the executable)."""
        args = ["--uri", self.config.uri, "--out", str(out)]
        if db:
            args += ["--db", db]
        if collection:
            args += ["--collection", collection]
        if query:
            args += ["--query", query]
        if self.gzip:
            args.append("--gzip")
        return args

    async def dump(
        self,
        out: Path,
        db: Optional[str] = None,
        collection: Optional[str] = None,
        query: Optional[str] = None,
    ) -> str:
        args = self.build_args(out, db=db, collection=collection, query=query)
        logger.info(
            "Running mongodump",
            extra={"out": str(out), "db": db, "collection": collection, "query": query},
        )

        try:
            process = await asyncio.create_subprocess_exec(
                self.config.mongodump_bin,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise DumpToolFailure(f"Could not run {self.config.mongodump_bin}: {e}")

        stdout, _ = await process.communicate()
        output = stdout.decode("utf-8", errors="replace")

        if process.returncode != 0:
            logger.error(f"mongodump exited with {process.returncode}:\n{output}")
            raise DumpToolFailure(f"mongodump failed with exit code {process.returncode}")

        return output
