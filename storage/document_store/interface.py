"""
Document store contract.

A store holds named collections of JSON-compatible records. All access goes
through ``transaction()``, which yields a ``Dataset``:

    with store.transaction() as data:
        client = data.find_one("clients", id=client_id, owner_id=user_id)
        ...
        data.replace("clients", client)

Leaving the block normally commits every change made through the dataset;
leaving it with an exception discards them. Records handed out by a dataset
are copies, so mutating one has no effect until it is passed to
``replace``.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

COLLECTIONS = (
    "users",
    "clients",
    "cases",
    "documents",
    "messages",
    "reset_tokens",
    "audit_logs",
)

Record = Dict[str, Any]


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise KeyError(f"Unknown collection: {collection}")


def matches(record: Record, criteria: Dict[str, Any]) -> bool:
    return all(record.get(key) == value for key, value in criteria.items())


class Dataset(ABC):
    """View of the store inside one transaction."""

    @abstractmethod
    def all(self, collection: str) -> List[Record]:
        """Every record in insertion order."""
        raise NotImplementedError

    @abstractmethod
    def insert(self, collection: str, record: Record) -> Record:
        raise NotImplementedError

    @abstractmethod
    def replace(self, collection: str, record: Record) -> Record:
        """Overwrite the stored record with the same ``id``."""
        raise NotImplementedError

    @abstractmethod
    def remove(self, collection: str, record_id: str) -> bool:
        raise NotImplementedError

    def find(self, collection: str, **criteria: Any) -> List[Record]:
        return [record for record in self.all(collection) if matches(record, criteria)]

    def find_one(self, collection: str, **criteria: Any) -> Optional[Record]:
        found = self.find(collection, **criteria)
        return found[0] if found else None

    def count(self, collection: str, **criteria: Any) -> int:
        return len(self.find(collection, **criteria))


class DocumentStore(ABC):
    """Durable home of every collection."""

    backend: str = "abstract"

    @abstractmethod
    def initialize(self) -> None:
        """Create the backing file/tables. Safe to call more than once."""
        raise NotImplementedError

    @abstractmethod
    @contextmanager
    def transaction(self, read_only: bool = False) -> Iterator[Dataset]:
        """Yield a dataset. With ``read_only`` nothing is written back."""
        raise NotImplementedError

    @abstractmethod
    def health_check(self) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        pass
