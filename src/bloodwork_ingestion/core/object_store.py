# ============================================================================
# src/bloodwork_ingestion/core/object_store.py
# ============================================================================
"""
Object Store

Durable home for the original uploaded PDFs. LocalObjectStore keeps them
on the filesystem under ``root/bucket/key`` and hands out public URLs of
the form ``{public_base_url}/{bucket}/{key}``.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from ..config.base_config import BaseSettingsConfig, base_settings
from ..utils.exceptions import StorageError
from ..utils.file_utils import sanitize_filename

logger = logging.getLogger(__name__)


def build_object_key(owner_id: str, file_name: str, timestamp_ms: Optional[int] = None) -> str:
    """``{owner_id}/{timestamp_ms}-{sanitized file name}``"""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{owner_id}/{timestamp_ms}-{sanitize_filename(file_name)}"


class LocalObjectStore:
    """
    Filesystem-backed bucket store.

    Args:
        root: Directory holding the buckets
        bucket: Bucket name
        public_base_url: Prefix for public retrieval URLs
    """

    def __init__(self, root: Path, bucket: str, public_base_url: str):
        self.root = Path(root)
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Optional[BaseSettingsConfig] = None) -> "LocalObjectStore":
        settings = settings or base_settings
        return cls(
            root=settings.STORAGE_ROOT,
            bucket=settings.STORAGE_BUCKET,
            public_base_url=settings.PUBLIC_BASE_URL,
        )

    def path_for(self, key: str) -> Path:
        bucket_dir = (self.root / self.bucket).resolve()
        path = (bucket_dir / key).resolve()
        if bucket_dir not in path.parents:
            raise StorageError("Invalid object key", details=key)
        return path

    async def upload(self, key: str, content: bytes) -> str:
        """
        Write (or overwrite) an object and return its public URL.

        Raises:
            StorageError
        """
        path = self.path_for(key)

        def write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, write)
        except OSError as e:
            raise StorageError("Upload failed", details=str(e)) from e

        logger.info(f"Stored {len(content)} bytes at {self.bucket}/{key}")
        return self.public_url(key)

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{key}"
