"""
Configuration management for oplog backups.

Configuration comes from environment variables; the CLI may override a
few of them per invocation. This module provides typed configuration
classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Secrets are never logged or exposed in error messages
    - Sync to S3 is enabled exactly when S3_BUCKET is set

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep derived paths in sync with the on-disk layout in state.py
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BackupMode(str, Enum):
    """Backup invocation modes."""

    AUTO = "auto"
    FULL = "full"
    OPLOG = "oplog"


@dataclass(frozen=True)
class MongoConfig:
    """MongoDB connection configuration.

    Attributes:
        uri: Connection string for the replica set member to back up
        mongodump_bin: Path or name of the mongodump executable
    """

    uri: str = "mongodb://localhost:27017"
    mongodump_bin: str = "mongodump"

    @classmethod
    def from_env(cls) -> MongoConfig:
        """Load configuration from environment variables."""
        return cls(
            uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
            mongodump_bin=os.getenv("MONGODUMP_BIN", "mongodump"),
        )


@dataclass(frozen=True)
class BackupConfig:
    """Local backup layout configuration.

    Attributes:
        backup_dir: Root directory holding all chains and the global state file
        gzip: Whether mongodump output is gzip-compressed
        lock_timeout_seconds: How long to wait for another run to release the lock
    """

    backup_dir: str = "./backups"
    gzip: bool = False
    lock_timeout_seconds: float = 0.0

    @classmethod
    def from_env(cls) -> BackupConfig:
        """Load configuration from environment variables."""
        return cls(
            backup_dir=os.getenv("BACKUP_DIR", "./backups"),
            gzip=_env_bool("BACKUP_GZIP", "false"),
            lock_timeout_seconds=float(os.getenv("BACKUP_LOCK_TIMEOUT", "0")),
        )

    @property
    def root(self) -> Path:
        return Path(self.backup_dir)

    @property
    def lock_file(self) -> Path:
        return self.root / ".oplog-backup.lock"

    @property
    def oplog_dump_folder(self) -> Path:
        """Temporary working area for incremental oplog dumps."""
        return self.root / "dump"

    @property
    def oplog_dump_file(self) -> Path:
        """Where mongodump writes local.oplog.rs inside the working area."""
        name = "oplog.rs.bson.gz" if self.gzip else "oplog.rs.bson"
        return self.oplog_dump_folder / "local" / name


@dataclass(frozen=True)
class S3Config:
    """S3 configuration for syncing chains off-host.

    Attributes:
        bucket: S3 bucket name (empty disables sync)
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        prefix: Key prefix under which chain folders are uploaded
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    bucket: str | None = None
    region: str = "us-east-1"
    endpoint_url: str | None = None
    prefix: str = "backups"
    access_key_id: str | None = None
    secret_access_key: str | None = None

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        return cls(
            bucket=os.getenv("S3_BUCKET") or None,
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            prefix=os.getenv("S3_PREFIX", "backups"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.bucket)


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class BackupToolConfig:
    """Complete configuration.

    Attributes:
        mongo: MongoDB connection configuration
        backup: Local backup layout configuration
        s3: S3 configuration
        observability: Logging configuration
    """

    mongo: MongoConfig = field(default_factory=MongoConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    s3: S3Config = field(default_factory=S3Config)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> BackupToolConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            mongo=MongoConfig.from_env(),
            backup=BackupConfig.from_env(),
            s3=S3Config.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.mongo.uri:
            raise ValueError("MONGO_URI is required")
        if not self.backup.backup_dir:
            raise ValueError("BACKUP_DIR is required")
        if self.backup.lock_timeout_seconds < 0:
            raise ValueError("BACKUP_LOCK_TIMEOUT must not be negative")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )
        if bool(self.s3.access_key_id) != bool(self.s3.secret_access_key):
            raise ValueError("AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Backup configuration loaded",
            extra={
                "backup_dir": self.backup.backup_dir,
                "gzip": self.backup.gzip,
                "mongodump_bin": self.mongo.mongodump_bin,
                "s3_bucket": self.s3.bucket,
                "s3_prefix": self.s3.prefix if self.s3.enabled else None,
                "log_level": self.observability.log_level,
            },
        )
