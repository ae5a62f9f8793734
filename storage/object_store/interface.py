"""
Blob storage contract for uploaded files.

Keys are opaque strings chosen by the caller (see ``build_storage_key``).
Every backend behaves the same way:
  - put: store bytes under a key, overwriting
  - get / open_stream: read a blob, BlobNotFoundError if absent
  - exists: presence check
  - delete: remove a blob; deleting a missing key is not an error
Backend failures surface as StorageError.
"""

import os
import time
import uuid
from abc import ABC, abstractmethod
from typing import Iterator

from core.errors import StorageError

DEFAULT_CHUNK_SIZE = 64 * 1024


class BlobNotFoundError(StorageError):
    """No blob under the requested key."""


def build_storage_key(file_name: str) -> str:
    _, ext = os.path.splitext(file_name or "")
    return f"documents/{int(time.time() * 1000)}-{uuid.uuid4()}{ext.lower()}"


class ObjectStore(ABC):
    provider: str = "abstract"

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        raise NotImplementedError

    @abstractmethod
    def open_stream(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        raise NotImplementedError

    @abstractmethod
    def exists(self, key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError

    def get(self, key: str) -> bytes:
        return b"".join(self.open_stream(key))
