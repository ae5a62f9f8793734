"""
S3 / MinIO backend.

Credentials come from the usual AWS sources (environment, profile, instance
role). S3_ENDPOINT and S3_FORCE_PATH_STYLE point the client at MinIO or
another S3-compatible service.
"""

from typing import Iterator, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from core.errors import StorageError
from storage.object_store.interface import DEFAULT_CHUNK_SIZE, BlobNotFoundError, ObjectStore

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def _normalize_endpoint(url: Optional[str]) -> Optional[str]:
    """Ensure endpoints include a scheme so boto3 accepts them."""
    if not url:
        return None
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return f"http://{url}"


class S3ObjectStore(ObjectStore):
    provider = "s3"

    def __init__(self, bucket: str, region: str, endpoint: Optional[str] = None, force_path_style: bool = False):
        if not bucket:
            raise ValueError("S3_BUCKET not configured")
        self.bucket = bucket
        config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path" if force_path_style else "auto"},
        )
        self.client = boto3.client(
            "s3",
            region_name=region,
            endpoint_url=_normalize_endpoint(endpoint),
            config=config,
        )
        logger.info(f"[BLOB] S3 object store: bucket={bucket} region={region} endpoint={endpoint or 'aws'}")

    @staticmethod
    def _is_missing(error: ClientError) -> bool:
        return error.response.get("Error", {}).get("Code") in _MISSING_CODES

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[BLOB] S3 upload failed for {key}: {e}")
            raise StorageError() from e
        logger.debug(f"[BLOB] Uploaded {key} ({len(data)} bytes)")

    def open_stream(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if self._is_missing(e):
                raise BlobNotFoundError(f"Blob not found: {key}") from e
            logger.error(f"[BLOB] S3 download failed for {key}: {e}")
            raise StorageError() from e
        except BotoCoreError as e:
            logger.error(f"[BLOB] S3 download failed for {key}: {e}")
            raise StorageError() from e
        return response["Body"].iter_chunks(chunk_size=chunk_size)

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if self._is_missing(e):
                return False
            logger.error(f"[BLOB] S3 head failed for {key}: {e}")
            raise StorageError() from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
            logger.debug(f"[BLOB] Deleted {key}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[BLOB] S3 delete failed for {key}: {e}")
            raise StorageError() from e
