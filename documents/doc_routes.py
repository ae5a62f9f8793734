"""
Document endpoints: multipart upload, metadata CRUD and file download.
"""

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from fastapi.responses import StreamingResponse
from loguru import logger

from auth.models import Identity
from auth.rbac_dependencies import get_client_ip, get_context, get_current_identity
from core.context import AppContext
from documents.service import Upload
from practice.schemas import DocumentOut, serialize, serialize_all

router = APIRouter(prefix="/documents", tags=["documents"])


# ============================================
# HELPERS
# ============================================


class DocumentForm:
    """Multipart text fields shared by create and update."""

    def __init__(
        self,
        title: Optional[str] = Form(None),
        doc_type: Optional[str] = Form(None, alias="type"),
        linked_case_id: Optional[str] = Form(None, alias="linkedCaseId"),
        linked_client_id: Optional[str] = Form(None, alias="linkedClientId"),
        notes: Optional[str] = Form(None),
    ):
        self.fields = {
            "title": title,
            "type": doc_type,
            "linked_case_id": linked_case_id,
            "linked_client_id": linked_client_id,
            "notes": notes,
        }


async def read_upload(file: Optional[UploadFile], max_bytes: int) -> Optional[Upload]:
    """
    Copy at most ``max_bytes + 1`` bytes of the parsed part, enough for the
    size check. The request body itself is capped by UploadLimitMiddleware
    before the form is parsed.
    """
    if file is None or not file.filename:
        return None
    try:
        data = await file.read(max_bytes + 1)
    finally:
        await file.close()
    return Upload(filename=file.filename, content_type=file.content_type or "", data=data)


def content_disposition(file_name: str) -> str:
    fallback = file_name.encode("ascii", "replace").decode("ascii").replace('"', "'").replace("?", "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name)}"


# ============================================
# ENDPOINTS
# ============================================


@router.get("")
async def list_documents(
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    return {"documents": serialize_all(DocumentOut, context.documents.list(identity))}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_document(
    form: DocumentForm = Depends(),
    file: Optional[UploadFile] = File(None),
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    upload = await read_upload(file, context.documents.max_upload_bytes)
    document = context.documents.create(identity, form.fields, ip, upload=upload)
    return {"document": serialize(DocumentOut, document)}


@router.get("/{document_id}")
async def get_document(
    document_id: str,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    return {"document": serialize(DocumentOut, context.documents.get(identity, document_id))}


@router.put("/{document_id}")
async def update_document(
    document_id: str,
    form: DocumentForm = Depends(),
    file: Optional[UploadFile] = File(None),
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    upload = await read_upload(file, context.documents.max_upload_bytes)
    document = context.documents.update(identity, document_id, form.fields, ip, upload=upload)
    return {"document": serialize(DocumentOut, document)}


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: str,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    context.documents.delete(identity, document_id, ip)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    """
    Stream the attached file as a download.
    """
    document, stream = context.documents.download(identity, document_id)
    file_name = document.get("file_name") or "document"

    logger.info(f"[DOWNLOAD] {document_id} ({document.get('file_size', 0)} bytes) for user {identity.id}")
    return StreamingResponse(
        stream,
        media_type=document.get("mime_type") or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(file_name)},
    )
