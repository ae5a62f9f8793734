"""
Per-owner isolation of practice records.

Every client, case, document and message belongs to the user who created
it. Lookups always filter on ``owner_id``; a record owned by someone else
is reported exactly like a missing one (NotFoundError), so callers cannot
discover other tenants' ids. This applies to admins too.
"""

from typing import Any, Dict, List

from core.errors import NotFoundError
from storage.document_store import Dataset


def owned_records(data: Dataset, collection: str, owner_id: str) -> List[Dict[str, Any]]:
    return data.find(collection, owner_id=owner_id)


def get_owned(data: Dataset, collection: str, record_id: str, owner_id: str, label: str) -> Dict[str, Any]:
    record = data.find_one(collection, id=record_id, owner_id=owner_id)
    if record is None:
        raise NotFoundError(f"{label} not found")
    return record
