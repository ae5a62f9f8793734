"""
FastAPI authentication and admin endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from loguru import logger
from pydantic import BaseModel

from auth.models import Identity
from auth.rbac_dependencies import get_client_ip, get_context, get_current_identity, require_permission
from core.context import AppContext
from practice.schemas import CamelModel
from security.policy.rbac import Permission

router = APIRouter(prefix="/auth", tags=["auth"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])

# ==================== REQUEST MODELS ====================


class SignupRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RequestPasswordResetRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(CamelModel):
    token: Optional[str] = None
    new_password: Optional[str] = None


class RoleAssignmentRequest(BaseModel):
    role: Optional[str] = None


# ==================== RESPONSE MODELS ====================


class UserOut(CamelModel):
    id: str
    name: str = ""
    email: str
    role: str
    created_at: Optional[str] = None


def user_view(user: dict) -> dict:
    return UserOut.model_validate(user).model_dump(by_alias=True, exclude_none=True)


def session_view(result: dict) -> dict:
    return {"token": result["token"], "user": user_view(result["user"])}


# ==================== REGISTRATION & LOGIN ====================


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    data: SignupRequest,
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    """Create an account; the very first account becomes admin."""
    result = context.auth.signup(data.name, data.email, data.password, data.role, ip)
    return session_view(result)


@router.post("/login")
async def login(
    data: LoginRequest,
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    result = context.auth.login(data.email, data.password, ip)
    return session_view(result)


@router.get("/me")
async def me(
    identity: Identity = Depends(get_current_identity),
    context: AppContext = Depends(get_context),
):
    return {"user": user_view(context.auth.current_user(identity))}


# ==================== PASSWORD RESET ====================


@router.post("/request-password-reset")
async def request_password_reset(
    data: RequestPasswordResetRequest,
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    """
    Issue a single-use reset token. The response does not reveal whether the
    account exists; outside production it carries the raw token for testing.
    """
    result = context.auth.request_password_reset(data.email, ip)
    response = {"message": result["message"]}
    if "reset_token" in result:
        response["resetToken"] = result["reset_token"]
        response["expiresAt"] = result["expires_at"]
    return response


@router.post("/reset-password")
async def reset_password(
    data: ResetPasswordRequest,
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    return context.auth.confirm_password_reset(data.token, data.new_password, ip)


# ==================== ADMIN ====================


@admin_router.get("/users")
async def list_users(
    identity: Identity = Depends(require_permission(Permission.USER_MANAGE)),
    context: AppContext = Depends(get_context),
):
    users = context.auth.list_users(identity)
    return {"users": [user_view(user) for user in users]}


@admin_router.patch("/users/{user_id}/role")
async def update_user_role(
    user_id: str,
    data: RoleAssignmentRequest,
    identity: Identity = Depends(require_permission(Permission.USER_MANAGE)),
    context: AppContext = Depends(get_context),
    ip: str = Depends(get_client_ip),
):
    user = context.auth.update_role(identity, user_id, data.role, ip)
    logger.warning(f"[ADMIN] Role of {user_id} changed to {user['role']} by {identity.id}")
    return {"user": user_view(user)}
