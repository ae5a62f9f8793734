"""
Azure Blob Storage backend.

All documents live in one container (AZURE_BLOB_CONTAINER); the storage key
is the blob name.
"""

from typing import Iterator

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings
from loguru import logger

from core.errors import StorageError
from storage.object_store.interface import DEFAULT_CHUNK_SIZE, BlobNotFoundError, ObjectStore


class AzureBlobObjectStore(ObjectStore):
    provider = "azure"

    def __init__(self, connection_string: str, container: str):
        if not connection_string:
            raise ValueError("AZURE_STORAGE_CONNECTION_STRING not configured")
        self.container = container
        self.service_client = BlobServiceClient.from_connection_string(connection_string)
        self.container_client = self.service_client.get_container_client(container)
        try:
            self.container_client.create_container()
            logger.info(f"[BLOB] Created Azure container: {container}")
        except ResourceExistsError:
            logger.debug(f"[BLOB] Azure container already exists: {container}")
        logger.info("✓ Azure Blob Storage client initialized")

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        try:
            self.container_client.get_blob_client(key).upload_blob(
                data,
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type),
            )
        except AzureError as e:
            logger.error(f"[BLOB] Azure upload failed for {key}: {e}")
            raise StorageError() from e
        logger.debug(f"[BLOB] Uploaded {key} ({len(data)} bytes)")

    def open_stream(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        blob_client = self.container_client.get_blob_client(key)
        try:
            download_stream = blob_client.download_blob()
        except ResourceNotFoundError as e:
            raise BlobNotFoundError(f"Blob not found: {key}") from e
        except AzureError as e:
            logger.error(f"[BLOB] Azure download failed for {key}: {e}")
            raise StorageError() from e
        return download_stream.chunks()

    def exists(self, key: str) -> bool:
        try:
            return self.container_client.get_blob_client(key).exists()
        except AzureError as e:
            logger.error(f"[BLOB] Azure exists check failed for {key}: {e}")
            raise StorageError() from e

    def delete(self, key: str) -> None:
        try:
            self.container_client.get_blob_client(key).delete_blob()
            logger.debug(f"[BLOB] Deleted {key}")
        except ResourceNotFoundError:
            logger.debug(f"[BLOB] Delete of missing blob ignored: {key}")
        except AzureError as e:
            logger.error(f"[BLOB] Azure delete failed for {key}: {e}")
            raise StorageError() from e
