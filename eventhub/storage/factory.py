from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from eventhub.core.config import settings
from eventhub.storage.base import StorageAdapter
from eventhub.storage.local import LocalStorageAdapter


def create_storage(
    backend: str | None = None,
    root: str | Path | None = None,
) -> StorageAdapter:
    selected_backend = (backend or settings.storage_backend).strip().lower()
    if selected_backend == "local":
        storage_root = Path(root or settings.storage_root)
        return LocalStorageAdapter(storage_root, url_prefix=settings.media_url_prefix)
    if selected_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET is required for the s3 storage backend")
        from eventhub.storage.s3 import S3StorageAdapter

        return S3StorageAdapter(
            settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            public_url=settings.s3_public_url,
        )
    raise ValueError(f"unsupported storage backend: {selected_backend}")


@lru_cache(maxsize=1)
def get_storage() -> StorageAdapter:
    return create_storage()
