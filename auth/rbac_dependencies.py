"""
Role-Based Access Control (RBAC) dependencies for FastAPI.
Provides reusable dependency functions to protect routes with session and permission checks.
"""

from typing import Optional

from fastapi import Depends, Header, Request
from loguru import logger

from auth.models import Identity
from auth.security_middleware import client_ip
from core.context import AppContext
from core.errors import AuthError, AuthorizationError
from security.policy.rbac import Permission
from security.policy.rbac import require_permission as check_permission

# ==================== DEPENDENCY FUNCTIONS ====================


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_client_ip(request: Request) -> str:
    context = get_context(request)
    return client_ip(request, context.settings.trust_proxy)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_identity(
    authorization: Optional[str] = Header(None),
    context: AppContext = Depends(get_context),
) -> Identity:
    """
    Dependency: Verify the bearer token and return the caller's identity.
    """
    token = bearer_token(authorization)
    if token is None:
        raise AuthError("Missing token")
    return context.auth.verify_session(token)


def require_permission(permission: Permission):
    """
    Dependency factory: Require specific permission.
    """

    async def _require_permission(identity: Identity = Depends(get_current_identity)) -> Identity:
        try:
            check_permission(identity, permission)
        except AuthorizationError:
            logger.warning(f"User {identity.id} ({identity.role}) denied permission: {permission.value}")
            raise
        return identity

    return _require_permission
