"""
Data access layer for owner-scoped practice records.

One repository per collection (clients, cases, documents, messages). Every
lookup goes through the owner filter in security.policy.tenancy, so there
is no method that can reach another user's record.
"""

import uuid
from typing import Any, Callable, Dict, List, Optional

from security.audit.event_logger import newest_first, utc_now
from security.policy.tenancy import get_owned, owned_records
from storage.document_store import Dataset

Record = Dict[str, Any]


class OwnedRecordRepository:
    def __init__(self, collection: str, label: str):
        self.collection = collection
        self.label = label

    def list_by_owner(self, data: Dataset, owner_id: str) -> List[Record]:
        """All records of ``owner_id``, newest created first."""
        return newest_first(owned_records(data, self.collection, owner_id))

    def count_by_owner(
        self, data: Dataset, owner_id: str, predicate: Optional[Callable[[Record], bool]] = None
    ) -> int:
        records = owned_records(data, self.collection, owner_id)
        if predicate is None:
            return len(records)
        return sum(1 for record in records if predicate(record))

    def get_by_id(self, data: Dataset, record_id: str, owner_id: str) -> Record:
        """Raises NotFoundError when missing or owned by someone else."""
        return get_owned(data, self.collection, record_id, owner_id, self.label)

    def create(self, data: Dataset, owner_id: str, fields: Dict[str, Any]) -> Record:
        now = utc_now()
        record = {"id": str(uuid.uuid4()), "owner_id": owner_id}
        record.update(fields)
        record["created_at"] = now
        record["updated_at"] = now
        data.insert(self.collection, record)
        return record

    def update(self, data: Dataset, record: Record, fields: Dict[str, Any]) -> Record:
        record.update(fields)
        record["updated_at"] = utc_now()
        data.replace(self.collection, record)
        return record

    def delete(self, data: Dataset, record: Record) -> None:
        data.remove(self.collection, record["id"])
