from storage.object_store.interface import (
    BlobNotFoundError,
    ObjectStore,
    build_storage_key,
)
from storage.object_store.local import LocalObjectStore


def create_object_store(settings) -> ObjectStore:
    """Build the blob backend chosen by configuration.

    Cloud backends are imported lazily so a local deployment does not need
    the Azure or AWS SDKs to be importable at startup.
    """
    backend = settings.resolved_blob_backend
    if backend == "azure":
        from storage.object_store.azure import AzureBlobObjectStore

        return AzureBlobObjectStore(settings.azure_connection_string, settings.azure_container)
    if backend == "s3":
        from storage.object_store.s3 import S3ObjectStore

        return S3ObjectStore(
            settings.s3_bucket,
            settings.s3_region,
            endpoint=settings.s3_endpoint,
            force_path_style=settings.s3_force_path_style,
        )
    return LocalObjectStore(settings.upload_dir)


__all__ = [
    "BlobNotFoundError",
    "LocalObjectStore",
    "ObjectStore",
    "build_storage_key",
    "create_object_store",
]
