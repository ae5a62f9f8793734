"""
FastAPI endpoints for clients, cases, messages, dashboard stats and the audit log.

Every route requires a session. Records are scoped to the caller; deletes
additionally need the role permission for the resource.
"""

from fastapi import APIRouter, Depends, Query, Response, status

from auth.models import Identity
from auth.rbac_dependencies import get_client_ip, get_context, get_current_identity
from core.context import AppContext
from practice.schemas import (
    AuditLogOut,
    CaseIn,
    CaseOut,
    ClientIn,
    ClientOut,
    MessageIn,
    MessageOut,
    StatsOut,
    serialize,
    serialize_all,
)
from security.audit.event_logger import MAX_AUDIT_ENTRIES

router = APIRouter(tags=["practice"])

# ==================== CLIENTS ====================


@router.get("/clients")
async def list_clients(
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    return {"clients": serialize_all(ClientOut, context.clients.list(identity))}


@router.post("/clients", status_code=status.HTTP_201_CREATED)
async def create_client(
    data: ClientIn,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    client = context.clients.create(identity, data.to_fields(), ip)
    return {"client": serialize(ClientOut, client)}


@router.get("/clients/{client_id}")
async def get_client(
    client_id: str,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    return {"client": serialize(ClientOut, context.clients.get(identity, client_id))}


@router.put("/clients/{client_id}")
async def update_client(
    client_id: str,
    data: ClientIn,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    client = context.clients.update(identity, client_id, data.to_fields(), ip)
    return {"client": serialize(ClientOut, client)}


@router.delete("/clients/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(
    client_id: str,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    context.clients.delete(identity, client_id, ip)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ==================== CASES ====================


@router.get("/cases")
async def list_cases(
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    return {"cases": serialize_all(CaseOut, context.cases.list(identity))}


@router.post("/cases", status_code=status.HTTP_201_CREATED)
async def create_case(
    data: CaseIn,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    matter = context.cases.create(identity, data.to_fields(), ip)
    return {"case": serialize(CaseOut, matter)}


@router.get("/cases/{case_id}")
async def get_case(
    case_id: str,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    return {"case": serialize(CaseOut, context.cases.get(identity, case_id))}


@router.put("/cases/{case_id}")
async def update_case(
    case_id: str,
    data: CaseIn,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    matter = context.cases.update(identity, case_id, data.to_fields(), ip)
    return {"case": serialize(CaseOut, matter)}


@router.delete("/cases/{case_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_case(
    case_id: str,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    context.cases.delete(identity, case_id, ip)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ==================== MESSAGES ====================


@router.get("/messages")
async def list_messages(
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    return {"messages": serialize_all(MessageOut, context.messages.list(identity))}


@router.post("/messages", status_code=status.HTTP_201_CREATED)
async def create_message(
    data: MessageIn,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    message = context.messages.create(identity, data.to_fields(), ip)
    return {"message": serialize(MessageOut, message)}


@router.get("/messages/{message_id}")
async def get_message(
    message_id: str,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    return {"message": serialize(MessageOut, context.messages.get(identity, message_id))}


@router.put("/messages/{message_id}")
async def update_message(
    message_id: str,
    data: MessageIn,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    message = context.messages.update(identity, message_id, data.to_fields(), ip)
    return {"message": serialize(MessageOut, message)}


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: str,
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    context.messages.delete(identity, message_id, ip)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ==================== DASHBOARD ====================


@router.get("/stats")
async def get_stats(
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    """Counters for the caller's own records."""
    return {"stats": serialize(StatsOut, context.stats.compute(identity))}


@router.get("/audit-logs")
async def list_audit_logs(
    limit: int = Query(MAX_AUDIT_ENTRIES),
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    logs = context.audit.list_recent(identity, limit)
    return {"logs": serialize_all(AuditLogOut, logs)}
