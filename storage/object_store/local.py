import os
from pathlib import Path
from typing import Iterator

from loguru import logger

from core.errors import StorageError
from storage.object_store.interface import DEFAULT_CHUNK_SIZE, BlobNotFoundError, ObjectStore


class LocalObjectStore(ObjectStore):
    """Blobs as files under a root directory; the key is the relative path."""

    provider = "local"

    def __init__(self, root: str):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"[BLOB] Local object store at {self.root}")

    def _path(self, key: str) -> Path:
        if not key:
            raise BlobNotFoundError("Empty storage key")
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Storage key escapes the upload root: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + ".part")
            with open(tmp_path, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"[BLOB] Failed to write {key}: {type(e).__name__}: {e}")
            raise StorageError() from e
        logger.debug(f"[BLOB] Stored {key} ({len(data)} bytes)")

    def open_stream(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        path = self._path(key)
        if not path.is_file():
            raise BlobNotFoundError(f"Blob not found: {key}")
        return self._iter_file(path, chunk_size)

    @staticmethod
    def _iter_file(path: Path, chunk_size: int) -> Iterator[bytes]:
        with open(path, "rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    def exists(self, key: str) -> bool:
        try:
            return self._path(key).is_file()
        except BlobNotFoundError:
            return False

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
            logger.debug(f"[BLOB] Deleted {key}")
        except FileNotFoundError:
            logger.debug(f"[BLOB] Delete of missing blob ignored: {key}")
        except OSError as e:
            logger.error(f"[BLOB] Failed to delete {key}: {type(e).__name__}: {e}")
            raise StorageError() from e
