"""
Pydantic schemas for the practice API.

These schemas handle:
1. Request parsing (camelCase on the wire, snake_case in Python)
2. Response serialization (stored records back to camelCase)

Request fields are all optional strings: required-field checks live in the
services so every caller gets the same error message.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_fields(self) -> Dict[str, Any]:
        """Submitted values keyed by snake_case field name."""
        return self.model_dump(by_alias=False)


class OwnedRecordOut(CamelModel):
    id: str
    owner_id: str
    created_at: str
    updated_at: str


def serialize(model, record: Dict[str, Any]) -> Dict[str, Any]:
    """Stored record -> camelCase response dict."""
    return model.model_validate(record).model_dump(by_alias=True)


def serialize_all(model, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize(model, record) for record in records]


# ============ Clients ============

class ClientIn(CamelModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


class ClientOut(OwnedRecordOut):
    full_name: str
    email: str = ""
    phone: str = ""
    notes: str = ""


# ============ Cases ============

class CaseIn(CamelModel):
    title: Optional[str] = None
    client_name: Optional[str] = None
    status: Optional[str] = None
    court: Optional[str] = None
    next_hearing_date: Optional[str] = None
    notes: Optional[str] = None


class CaseOut(OwnedRecordOut):
    title: str
    client_name: str = ""
    status: str = "open"
    court: str = ""
    next_hearing_date: str = ""
    notes: str = ""


# ============ Messages ============

class MessageIn(CamelModel):
    subject: Optional[str] = None
    to_name: Optional[str] = None
    channel: Optional[str] = None
    linked_case_id: Optional[str] = None
    linked_client_id: Optional[str] = None
    body: Optional[str] = None


class MessageOut(OwnedRecordOut):
    subject: str
    to_name: str = ""
    channel: str = "email"
    linked_case_id: str = ""
    linked_client_id: str = ""
    body: str


# ============ Documents ============

class DocumentOut(OwnedRecordOut):
    title: str
    type: str = "general"
    linked_case_id: str = ""
    linked_client_id: str = ""
    notes: str = ""
    storage_provider: str = ""
    storage_key: str = ""
    file_name: str = ""
    mime_type: str = ""
    file_size: int = 0


# ============ Dashboard & audit ============

class StatsOut(CamelModel):
    clients: int
    active_cases: int
    upcoming_hearings: int
    documents: int
    messages: int


class AuditLogOut(CamelModel):
    id: str
    action: str
    user_id: Optional[str] = None
    ip: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: str
