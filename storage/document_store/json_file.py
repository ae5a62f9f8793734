"""
Whole-dataset JSON file store.

The file holds one object with a list per collection. Every transaction
loads the file, works on the in-memory copy, and on success rewrites the
file through a temporary file and an atomic rename. An in-process lock
serialises transactions; across processes the last writer wins.
"""

import copy
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List

from loguru import logger

from core.errors import StorageError
from storage.document_store.interface import (
    COLLECTIONS,
    Dataset,
    DocumentStore,
    Record,
    _check_collection,
)


def _empty_data() -> Dict[str, List[Record]]:
    return {name: [] for name in COLLECTIONS}


class JsonDataset(Dataset):
    def __init__(self, data: Dict[str, List[Record]]):
        self._data = data

    def all(self, collection: str) -> List[Record]:
        _check_collection(collection)
        return copy.deepcopy(self._data[collection])

    def insert(self, collection: str, record: Record) -> Record:
        _check_collection(collection)
        self._data[collection].append(copy.deepcopy(record))
        return record

    def replace(self, collection: str, record: Record) -> Record:
        _check_collection(collection)
        rows = self._data[collection]
        for index, row in enumerate(rows):
            if row.get("id") == record["id"]:
                rows[index] = copy.deepcopy(record)
                return record
        raise KeyError(f"{collection} record {record['id']} does not exist")

    def remove(self, collection: str, record_id: str) -> bool:
        _check_collection(collection)
        rows = self._data[collection]
        for index, row in enumerate(rows):
            if row.get("id") == record_id:
                del rows[index]
                return True
        return False


class JsonFileStore(DocumentStore):
    backend = "json"

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.RLock()

    def initialize(self) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if not self.path.exists():
                self._write(_empty_data())
                logger.info(f"[STORE] Created data file: {self.path}")
            else:
                logger.info(f"[STORE] Using existing data file: {self.path}")

    def _load(self) -> Dict[str, List[Record]]:
        if not self.path.exists():
            return _empty_data()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"[STORE] Failed to read {self.path}: {type(e).__name__}: {e}")
            raise StorageError() from e

        data = _empty_data()
        for name in COLLECTIONS:
            data[name] = list(raw.get(name) or [])
        return data

    def _write(self, data: Dict[str, List[Record]]) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".lawease-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"[STORE] Failed to write {self.path}: {type(e).__name__}: {e}")
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError() from e

    @contextmanager
    def transaction(self, read_only: bool = False) -> Iterator[Dataset]:
        with self._lock:
            data = self._load()
            yield JsonDataset(data)
            if not read_only:
                self._write(data)

    def health_check(self) -> bool:
        try:
            with self._lock:
                self._load()
            return True
        except StorageError:
            return False
