"""
Oplog Backup - Command line entry point.

Usage:
    oplog-backup [--dir <path>] [--full | --oplog] [--start S:I] [--gzip] [--no-sync]

Without --full or --oplog the mode is picked automatically: a new chain
is started when none is recorded, otherwise the current chain is
continued.

Configuration comes from environment variables (see config.py); the flags
above override them for one invocation.

Exit codes:
    0 - backup completed
    1 - backup failed or configuration is invalid
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from typing import List, Optional

import json_log_formatter

from .backup import BackupOrchestrator, BackupRunResult
from .config import BackupMode, BackupToolConfig
from .dump import MongoDump
from .errors import BackupError
from .oplog import BsonOplogReader, MongoOplogSource
from .sync import S3Syncer
from .timestamp import Timestamp

logger = logging.getLogger(__name__)


def setup_logging(config: BackupToolConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Tool configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oplog-backup",
        description="Incremental MongoDB backups from full dumps plus oplog segments",
    )
    parser.add_argument("--dir", help="Backup root directory (overrides BACKUP_DIR)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--full", action="store_true", help="Force a new full backup")
    mode.add_argument("--oplog", action="store_true", help="Force an incremental oplog backup")
    parser.add_argument(
        "--start",
        type=Timestamp.parse,
        help="Start the oplog capture at <seconds>:<increment> instead of the stored position",
    )
    parser.add_argument("--gzip", action="store_true", help="Compress dumps with gzip")
    parser.add_argument("--no-sync", action="store_true", help="Skip uploading to S3")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def apply_overrides(config: BackupToolConfig, args: argparse.Namespace) -> BackupToolConfig:
    """Fold command line flags into the environment configuration."""
    backup = config.backup
    if args.dir:
        backup = dataclasses.replace(backup, backup_dir=args.dir)
    if args.gzip:
        backup = dataclasses.replace(backup, gzip=True)

    observability = config.observability
    if args.verbose:
        observability = dataclasses.replace(observability, log_level="DEBUG")

    s3 = config.s3
    if args.no_sync:
        s3 = dataclasses.replace(s3, bucket=None)

    return dataclasses.replace(config, backup=backup, observability=observability, s3=s3)


def create_orchestrator(config: BackupToolConfig) -> BackupOrchestrator:
    """Wire the orchestrator to the real mongodump, pymongo and S3 collaborators."""
    return BackupOrchestrator(
        config=config.backup,
        oplog_source=MongoOplogSource(config.mongo.uri),
        dumper=MongoDump(config.mongo, gzip=config.backup.gzip),
        reader=BsonOplogReader(),
        syncer=S3Syncer(config.s3) if config.s3.enabled else None,
        remote_prefix=config.s3.prefix,
    )


def print_summary(result: BackupRunResult) -> None:
    print(f"Backup completed ({result.mode.value})")
    print(f"  Chain: {result.backup}")
    if result.full:
        print(f"  Anchor: {result.full.position}")
    if result.oplog:
        print(f"  Position: {result.oplog.position}")
        print(f"  New entries: {result.oplog.new_entries}")
        print(f"  Segment: {result.oplog.file or 'none'}")
    print(f"  Synced: {'yes' if result.synced else 'no'}")


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = apply_overrides(BackupToolConfig.from_env(), args)
        config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    if args.full:
        mode = BackupMode.FULL
    elif args.oplog:
        mode = BackupMode.OPLOG
    else:
        mode = BackupMode.AUTO

    orchestrator = create_orchestrator(config)
    try:
        result = asyncio.run(orchestrator.perform(mode, start=args.start))
    except BackupError as e:
        logger.error(f"Backup failed: {e}")
        print(f"Backup failed: {e}", file=sys.stderr)
        sys.exit(1)

    print_summary(result)
    sys.exit(0)


if __name__ == "__main__":
    main()
