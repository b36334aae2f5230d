"""
S3 sync for backup chains.

The S3Syncer uploads a chain folder to:
    s3://<bucket>/<prefix>/<chain name>/<relative path>

Files whose MD5 already matches the remote ETag are skipped, so syncing
after every incremental run only ships the new segment and state file.

Invariants:
    - Any failure surfaces as SyncFailure; nothing is retried
    - Local files are never modified or removed
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Any, Dict, Protocol, runtime_checkable

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from .errors import SyncFailure

logger = logging.getLogger(__name__)


@runtime_checkable
class SyncCollaborator(Protocol):
    """Uploads a local directory to remote storage."""

    async def upload(self, local_dir: Path, remote_prefix: str) -> int:
        """Upload ``local_dir`` and return the number of files transferred.

        Raises:
            SyncFailure: If the upload did not complete
        """
        ...


class S3Syncer:
    """SyncCollaborator backed by S3 (or MinIO via endpoint_url).

    Example:
        >>> syncer = S3Syncer(s3_config)
        >>> await syncer.upload(Path("/backups/backup-1000:1"), "backups/backup-1000:1")
    """

    def __init__(self, s3_config: Any) -> None:
        """Initialize the syncer.

        Args:
            s3_config: S3Config instance
        """
        self.s3_config = s3_config
        self._uploaded_count = 0
        self._skipped_count = 0

    def _client_kwargs(self) -> Dict[str, Any]:
        client_kwargs = {
            "region_name": self.s3_config.region,
        }

        if self.s3_config.endpoint_url:
            client_kwargs["endpoint_url"] = self.s3_config.endpoint_url

        if self.s3_config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.s3_config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.s3_config.secret_access_key

        return client_kwargs

    def _create_client(self) -> Any:
        return get_session().create_client("s3", **self._client_kwargs())

    async def upload(self, local_dir: Path, remote_prefix: str) -> int:
        local_dir = Path(local_dir)
        if not local_dir.is_dir():
            raise SyncFailure(f"unable to upload: {local_dir} is not a directory")

        prefix = remote_prefix.strip("/")
        loop = asyncio.get_event_loop()
        try:
            async with self._create_client() as s3:
                remote = await self._list_remote(s3, prefix)
                uploaded = 0

                for path in sorted(p for p in local_dir.rglob("*") if p.is_file()):
                    key = f"{prefix}/{path.relative_to(local_dir).as_posix()}"

                    if key in remote:
                        checksum = await loop.run_in_executor(None, self._file_md5, path)
                        if remote[key] == checksum:
                            self._skipped_count += 1
                            continue

                    body = await loop.run_in_executor(None, path.read_bytes)
                    await s3.put_object(
                        Bucket=self.s3_config.bucket,
                        Key=key,
                        Body=body,
                    )
                    uploaded += 1
                    logger.debug(f"Uploaded {path} to s3://{self.s3_config.bucket}/{key}")

        except (BotoCoreError, ClientError, OSError) as e:
            raise SyncFailure(f"unable to upload {local_dir}: {e}") from e

        self._uploaded_count += uploaded
        logger.info(
            "Synced backup folder",
            extra={
                "local_dir": str(local_dir),
                "bucket": self.s3_config.bucket,
                "prefix": prefix,
                "uploaded": uploaded,
            },
        )
        return uploaded

    def _file_md5(self, path: Path) -> str:
        """Compute the MD5 hex digest S3 reports as ETag for single-part uploads."""
        md5 = hashlib.md5()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                md5.update(chunk)
        return md5.hexdigest()

    async def _list_remote(self, s3: Any, prefix: str) -> Dict[str, str]:
        """Map existing keys under prefix to their ETag (quotes stripped)."""
        etags = {}
        paginator = s3.get_paginator("list_objects_v2")
        async for page in paginator.paginate(Bucket=self.s3_config.bucket, Prefix=f"{prefix}/"):
            for obj in page.get("Contents", []):
                etags[obj["Key"]] = obj["ETag"].strip('"')
        return etags

    @property
    def stats(self) -> Dict[str, Any]:
        """Get syncer statistics."""
        return {
            "uploaded_count": self._uploaded_count,
            "skipped_count": self._skipped_count,
        }
