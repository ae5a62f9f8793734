"""
Append-only audit trail.

Entries are written through the dataset of the transaction that performs
the audited change, so an entry is committed together with its mutation or
not at all. Entries are never updated or deleted by the application.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from loguru import logger

from security.policy.rbac import Permission, require_permission
from storage.document_store import Dataset, DocumentStore

AUDIT_COLLECTION = "audit_logs"
MAX_AUDIT_ENTRIES = 200


class AuditAction:
    AUTH_SIGNUP = "AUTH_SIGNUP"
    AUTH_LOGIN = "AUTH_LOGIN"
    AUTH_LOGIN_FAILED = "AUTH_LOGIN_FAILED"
    AUTH_PASSWORD_RESET_REQUEST = "AUTH_PASSWORD_RESET_REQUEST"
    AUTH_PASSWORD_RESET_COMPLETE = "AUTH_PASSWORD_RESET_COMPLETE"
    ADMIN_ROLE_UPDATED = "ADMIN_ROLE_UPDATED"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def newest_first(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Sort by created_at descending; equal timestamps keep the later insert first."""
    return sorted(reversed(records), key=lambda r: r.get("created_at", ""), reverse=True)


class AuditLogger:
    def __init__(self, store: DocumentStore):
        self.store = store

    def record(
        self,
        data: Dataset,
        action: str,
        user_id: Optional[str],
        ip: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        entry = {
            "id": str(uuid.uuid4()),
            "action": action,
            "user_id": user_id,
            "ip": ip,
            "metadata": dict(metadata or {}),
            "created_at": utc_now(),
        }
        data.insert(AUDIT_COLLECTION, entry)
        logger.info(f"[AUDIT] {action} by user {user_id} from {ip}")
        return entry

    def list_recent(self, identity, limit: int = MAX_AUDIT_ENTRIES) -> List[Dict[str, Any]]:
        require_permission(identity, Permission.AUDIT_READ)
        limit = max(1, min(int(limit), MAX_AUDIT_ENTRIES))
        with self.store.transaction(read_only=True) as data:
            entries = data.all(AUDIT_COLLECTION)
        return newest_first(entries)[:limit]
