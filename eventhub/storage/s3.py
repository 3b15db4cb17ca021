from __future__ import annotations

from typing import BinaryIO

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from eventhub.services.exceptions import StorageError
from eventhub.storage.base import StorageAdapter

logger = structlog.get_logger(__name__)


class S3StorageAdapter(StorageAdapter):
    """Event images in an S3 (or S3-compatible) bucket.

    Objects are uploaded public-readable by URL; ``public_url`` overrides the
    default virtual-hosted bucket URL, e.g. for a CDN in front of the bucket.
    """

    def __init__(
        self,
        bucket: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        public_url: str | None = None,
        client=None,
    ) -> None:
        self._bucket = bucket
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
        )
        if public_url:
            self._base_url = public_url.rstrip("/")
        elif endpoint_url:
            self._base_url = f"{endpoint_url.rstrip('/')}/{bucket}"
        else:
            self._base_url = f"https://{bucket}.s3.amazonaws.com"

    def put_file(self, key: str, fileobj: BinaryIO, content_type: str | None = None) -> str:
        extra_args = {"ContentType": content_type} if content_type else None
        try:
            self._client.upload_fileobj(fileobj, self._bucket, key, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError) as exc:
            logger.error("s3_upload_failed", key=key, error=str(exc))
            raise StorageError(f"failed to upload {key}") from exc
        return self.resolve_url(key)

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"failed to delete {key}") from exc

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise StorageError(f"failed to stat {key}") from exc
        return True

    def resolve_url(self, key: str) -> str:
        return f"{self._base_url}/{key.lstrip('/')}"

    def key_for_url(self, url: str) -> str | None:
        prefix = f"{self._base_url}/"
        if not url.startswith(prefix):
            return None
        return url[len(prefix):] or None
