"""
Document records and their uploaded files.

A document record owns at most one blob. Ordering rules keep record and
blob in step:
- create/update: the new blob is written first; if the store transaction
  then fails, the new blob is deleted again
- update with a new file: the old blob is released only after the record
  change has committed; a failed release leaves an orphan and is logged
- delete: the blob is released before the record is removed; a blob
  failure aborts the whole delete
Uploads are checked for type and size before any blob I/O.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

from loguru import logger

from auth.models import Identity
from core.errors import NotFoundError, ValidationError
from practice.service import OwnedResourceService, clean, required
from security.audit.event_logger import AuditLogger
from security.policy.rbac import Permission
from storage.document_store import DocumentStore
from storage.object_store import BlobNotFoundError, ObjectStore, build_storage_key

ALLOWED_MIME_TYPES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "image/png",
    "image/jpeg",
    "text/plain",
})

NO_FILE_MESSAGE = "No file attached to this document"


@dataclass
class Upload:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class DocumentService(OwnedResourceService):
    collection = "documents"
    label = "Document"
    audit_prefix = "DOCUMENT"
    audit_key = "documentId"
    delete_permission = Permission.DOCUMENT_DELETE

    DEFAULT_TYPE = "general"

    def __init__(self, store: DocumentStore, audit: AuditLogger, blobs: ObjectStore, max_upload_bytes: int):
        super().__init__(store, audit)
        self.blobs = blobs
        self.max_upload_bytes = max_upload_bytes

    def normalize(self, fields):
        title = required(fields, "title")
        if not title:
            raise ValidationError("Document title is required")
        return {
            "title": title,
            "type": clean(fields.get("type"), self.DEFAULT_TYPE),
            "linked_case_id": clean(fields.get("linked_case_id")),
            "linked_client_id": clean(fields.get("linked_client_id")),
            "notes": clean(fields.get("notes")),
        }

    def validate_upload(self, upload: Upload) -> None:
        base_type = (upload.content_type or "").split(";")[0].strip().lower()
        if base_type not in ALLOWED_MIME_TYPES:
            raise ValidationError("Unsupported file type")
        if upload.size > self.max_upload_bytes:
            raise ValidationError("File too large")

    def _empty_storage(self) -> Dict[str, Any]:
        return {
            "storage_provider": self.blobs.provider,
            "storage_key": "",
            "file_name": "",
            "mime_type": "",
            "file_size": 0,
        }

    def _store_upload(self, upload: Upload) -> Dict[str, Any]:
        key = build_storage_key(upload.filename)
        content_type = (upload.content_type or "application/octet-stream").split(";")[0].strip()
        self.blobs.put(key, upload.data, content_type)
        logger.info(f"[DOCUMENTS] Stored upload {upload.filename!r} as {key} ({upload.size} bytes)")
        return {
            "storage_provider": self.blobs.provider,
            "storage_key": key,
            "file_name": upload.filename or "",
            "mime_type": content_type,
            "file_size": upload.size,
        }

    def _discard_blob(self, key: str) -> None:
        """Best-effort removal of a blob no committed record points at."""
        try:
            self.blobs.delete(key)
        except Exception as e:
            logger.error(f"[DOCUMENTS] Orphaned blob {key} could not be removed: {e}")

    def create(
        self, caller: Identity, fields: Dict[str, Any], ip: Optional[str] = None, upload: Optional[Upload] = None
    ):
        values = self.normalize(fields)
        if upload is not None:
            self.validate_upload(upload)
            values.update(self._store_upload(upload))
        else:
            values.update(self._empty_storage())

        try:
            with self.store.transaction() as data:
                record = self.repository.create(data, caller.id, values)
                self._audit(data, "CREATED", caller, record, ip, hasFile=upload is not None)
        except Exception:
            if values["storage_key"]:
                self._discard_blob(values["storage_key"])
            raise

        logger.info(f"[DOCUMENTS] Created {record['id']} for user {caller.id}")
        return record

    def update(
        self,
        caller: Identity,
        record_id: str,
        fields: Dict[str, Any],
        ip: Optional[str] = None,
        upload: Optional[Upload] = None,
    ):
        values = self.normalize(fields)
        if upload is not None:
            self.validate_upload(upload)

        # Ownership first so a foreign id never causes a blob write.
        with self.store.transaction(read_only=True) as data:
            self.repository.get_by_id(data, record_id, caller.id)

        if upload is not None:
            values.update(self._store_upload(upload))

        try:
            with self.store.transaction() as data:
                record = self.repository.get_by_id(data, record_id, caller.id)
                old_key = record.get("storage_key") if upload is not None else ""
                record = self.repository.update(data, record, values)
                self._audit(data, "UPDATED", caller, record, ip, hasFile=upload is not None)
        except Exception:
            if upload is not None:
                self._discard_blob(values["storage_key"])
            raise

        if old_key:
            self._discard_blob(old_key)

        logger.info(f"[DOCUMENTS] Updated {record_id} for user {caller.id}")
        return record

    def _before_delete(self, record):
        key = record.get("storage_key")
        if key:
            self.blobs.delete(key)

    def download(self, caller: Identity, record_id: str) -> Tuple[Dict[str, Any], Iterator[bytes]]:
        """Owned record plus an iterator over its file content."""
        record = self.get(caller, record_id)
        key = record.get("storage_key")
        if not key:
            raise NotFoundError(NO_FILE_MESSAGE)
        try:
            stream = self.blobs.open_stream(key)
        except BlobNotFoundError:
            logger.warning(f"[DOCUMENTS] Blob {key} missing for document {record_id}")
            raise NotFoundError(NO_FILE_MESSAGE)
        return record, stream
