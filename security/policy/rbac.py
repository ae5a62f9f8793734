"""
Role-Based Access Control (RBAC) table.

Roles:
  - admin: every permission
  - lawyer: may delete their own clients, cases, documents and messages
  - staff: create/read/update only

Creating, reading and updating one's own records needs no permission;
ownership is checked separately (see security.policy.tenancy).
"""

from enum import Enum
from typing import FrozenSet, Optional

from core.errors import AuthorizationError, ValidationError


class Role(str, Enum):
    ADMIN = "admin"
    LAWYER = "lawyer"
    STAFF = "staff"


class Permission(str, Enum):
    CLIENT_DELETE = "client:delete"
    CASE_DELETE = "case:delete"
    DOCUMENT_DELETE = "document:delete"
    MESSAGE_DELETE = "message:delete"
    AUDIT_READ = "audit:read"
    USER_MANAGE = "user:manage"


ROLE_VALUES = tuple(role.value for role in Role)

ROLE_PERMISSIONS = {
    Role.ADMIN: frozenset(Permission),
    Role.LAWYER: frozenset({
        Permission.CLIENT_DELETE,
        Permission.CASE_DELETE,
        Permission.DOCUMENT_DELETE,
        Permission.MESSAGE_DELETE,
    }),
    Role.STAFF: frozenset(),
}


def is_allowed_role(value: Optional[str]) -> bool:
    return value in ROLE_VALUES


def parse_role(value: Optional[str]) -> Role:
    """Boundary check for role values coming from requests."""
    if not is_allowed_role(value):
        raise ValidationError("Invalid role")
    return Role(value)


def permissions_for(role) -> FrozenSet[Permission]:
    # Stored roles outside the enum get nothing rather than an error.
    try:
        return ROLE_PERMISSIONS[Role(role)]
    except ValueError:
        return ROLE_PERMISSIONS[Role.STAFF]


def has_permission(role, permission: Permission) -> bool:
    return Permission(permission) in permissions_for(role)


def require_permission(identity, permission: Permission) -> None:
    """Raise AuthorizationError unless the caller's role grants ``permission``."""
    if not has_permission(identity.role, permission):
        raise AuthorizationError("Insufficient permissions")
