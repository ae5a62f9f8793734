"""
User and password-reset records, and the authenticated identity.

Records are plain dicts in the document store:

users:
  id, name, email (trimmed, lowercase, unique), role, password_hash, created_at

reset_tokens:
  id, user_id, token_hash (SHA-256 hex of the raw token), expires_at,
  used_at (None until consumed), created_at
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

USERS = "users"
RESET_TOKENS = "reset_tokens"


@dataclass(frozen=True)
class Identity:
    """Caller resolved from a verified session token."""

    id: str
    email: str
    role: str


def normalize_email(email: Optional[str]) -> str:
    return str(email or "").strip().lower()


def new_user(name: Optional[str], email: str, role: str, password_hash: str) -> Dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "name": str(name).strip() if name else "",
        "email": email,
        "role": role,
        "password_hash": password_hash,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }


def new_reset_token(user_id: str, token_hash: str, ttl_minutes: int) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    return {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "token_hash": token_hash,
        "expires_at": (now + timedelta(minutes=ttl_minutes)).isoformat(),
        "used_at": None,
        "created_at": now.isoformat(),
    }


def is_expired(reset_token: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return datetime.fromisoformat(reset_token["expires_at"]) < now


def public_user(user: Dict[str, Any], include_created: bool = False) -> Dict[str, Any]:
    """User view safe to return to clients (never the password hash)."""
    view = {
        "id": user["id"],
        "name": user.get("name", ""),
        "email": user["email"],
        "role": user["role"],
    }
    if include_created:
        view["created_at"] = user.get("created_at")
    return view
