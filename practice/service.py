"""
Business logic for practice records.

The service layer sits between the API routes and the repositories. Each
operation:
- checks the role gate (deletes only) before touching data
- normalises and validates the submitted fields
- runs the data change and its audit entry in one store transaction

Updates are full replacements: optional fields missing from the request go
back to their defaults.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from loguru import logger

from auth.models import Identity
from core.errors import ValidationError
from practice.repository import OwnedRecordRepository
from security.audit.event_logger import AuditLogger
from security.policy.rbac import Permission, require_permission
from storage.document_store import Dataset, DocumentStore

Record = Dict[str, Any]


def clean(value: Any, default: str = "") -> str:
    """Trimmed string form of an optional free-text field."""
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def required(fields: Dict[str, Any], key: str) -> str:
    return clean(fields.get(key))


class OwnedResourceService(ABC):
    """CRUD for one owner-scoped collection."""

    collection: str = ""
    label: str = ""
    audit_prefix: str = ""
    audit_key: str = ""
    delete_permission: Permission = None

    def __init__(self, store: DocumentStore, audit: AuditLogger):
        self.store = store
        self.audit = audit
        self.repository = OwnedRecordRepository(self.collection, self.label)

    @abstractmethod
    def normalize(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Return the stored field set; raise ValidationError on missing required fields."""
        raise NotImplementedError

    def _audit(self, data: Dataset, event: str, caller: Identity, record: Record, ip: Optional[str], **extra):
        metadata = {self.audit_key: record["id"]}
        metadata.update(extra)
        self.audit.record(data, f"{self.audit_prefix}_{event}", caller.id, ip, metadata)

    def list(self, caller: Identity) -> List[Record]:
        with self.store.transaction(read_only=True) as data:
            return self.repository.list_by_owner(data, caller.id)

    def get(self, caller: Identity, record_id: str) -> Record:
        with self.store.transaction(read_only=True) as data:
            return self.repository.get_by_id(data, record_id, caller.id)

    def create(self, caller: Identity, fields: Dict[str, Any], ip: Optional[str] = None) -> Record:
        values = self.normalize(fields)
        with self.store.transaction() as data:
            record = self.repository.create(data, caller.id, values)
            self._audit(data, "CREATED", caller, record, ip)
        logger.info(f"[{self.collection.upper()}] Created {record['id']} for user {caller.id}")
        return record

    def update(self, caller: Identity, record_id: str, fields: Dict[str, Any], ip: Optional[str] = None) -> Record:
        values = self.normalize(fields)
        with self.store.transaction() as data:
            record = self.repository.get_by_id(data, record_id, caller.id)
            record = self.repository.update(data, record, values)
            self._audit(data, "UPDATED", caller, record, ip)
        logger.info(f"[{self.collection.upper()}] Updated {record_id} for user {caller.id}")
        return record

    def delete(self, caller: Identity, record_id: str, ip: Optional[str] = None) -> None:
        require_permission(caller, self.delete_permission)
        with self.store.transaction() as data:
            record = self.repository.get_by_id(data, record_id, caller.id)
            self._before_delete(record)
            self.repository.delete(data, record)
            self._audit(data, "DELETED", caller, record, ip)
        logger.info(f"[{self.collection.upper()}] Deleted {record_id} for user {caller.id}")

    def _before_delete(self, record: Record) -> None:
        """Release anything the record owns outside the store. Raising aborts the delete."""


class ClientService(OwnedResourceService):
    collection = "clients"
    label = "Client"
    audit_prefix = "CLIENT"
    audit_key = "clientId"
    delete_permission = Permission.CLIENT_DELETE

    def normalize(self, fields):
        full_name = required(fields, "full_name")
        if not full_name:
            raise ValidationError("Client full name is required")
        return {
            "full_name": full_name,
            "email": clean(fields.get("email")),
            "phone": clean(fields.get("phone")),
            "notes": clean(fields.get("notes")),
        }


class CaseService(OwnedResourceService):
    collection = "cases"
    label = "Case"
    audit_prefix = "CASE"
    audit_key = "caseId"
    delete_permission = Permission.CASE_DELETE

    DEFAULT_STATUS = "open"

    def normalize(self, fields):
        title = required(fields, "title")
        if not title:
            raise ValidationError("Case title is required")
        return {
            "title": title,
            "client_name": clean(fields.get("client_name")),
            "status": clean(fields.get("status"), self.DEFAULT_STATUS),
            "court": clean(fields.get("court")),
            "next_hearing_date": clean(fields.get("next_hearing_date")),
            "notes": clean(fields.get("notes")),
        }


class MessageService(OwnedResourceService):
    collection = "messages"
    label = "Message"
    audit_prefix = "MESSAGE"
    audit_key = "messageId"
    delete_permission = Permission.MESSAGE_DELETE

    DEFAULT_CHANNEL = "email"

    def normalize(self, fields):
        subject = required(fields, "subject")
        body = required(fields, "body")
        if not subject or not body:
            raise ValidationError("Subject and message body are required")
        return {
            "subject": subject,
            "to_name": clean(fields.get("to_name")),
            "channel": clean(fields.get("channel"), self.DEFAULT_CHANNEL),
            "linked_case_id": clean(fields.get("linked_case_id")),
            "linked_client_id": clean(fields.get("linked_client_id")),
            "body": body,
        }


class StatsService:
    """Read-only dashboard counters for one user."""

    CLOSED_STATUS = "closed"

    def __init__(self, store: DocumentStore):
        self.store = store
        self.clients = OwnedRecordRepository("clients", "Client")
        self.cases = OwnedRecordRepository("cases", "Case")
        self.documents = OwnedRecordRepository("documents", "Document")
        self.messages = OwnedRecordRepository("messages", "Message")

    def compute(self, caller: Identity) -> Dict[str, int]:
        with self.store.transaction(read_only=True) as data:
            return {
                "clients": self.clients.count_by_owner(data, caller.id),
                "active_cases": self.cases.count_by_owner(
                    data, caller.id, lambda c: c.get("status") != self.CLOSED_STATUS
                ),
                "upcoming_hearings": self.cases.count_by_owner(
                    data, caller.id, lambda c: bool(c.get("next_hearing_date"))
                ),
                "documents": self.documents.count_by_owner(data, caller.id),
                "messages": self.messages.count_by_owner(data, caller.id),
            }
