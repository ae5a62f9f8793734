"""
Identity service: signup rules, login, sessions and password reset.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from auth.models import RESET_TOKENS, USERS
from core.errors import (
    AuthError,
    AuthorizationError,
    ConflictError,
    InvalidResetTokenError,
    NotFoundError,
    ValidationError,
)
from security.audit.event_logger import AUDIT_COLLECTION

PASSWORD = "correct-horse-battery"


@pytest.fixture
def auth(context):
    return context.auth


def audit_actions(context):
    with context.store.transaction(read_only=True) as data:
        return [entry["action"] for entry in data.all(AUDIT_COLLECTION)]


# ==================== SIGNUP ====================


def test_first_user_becomes_admin_even_when_asking_for_staff(auth):
    result = auth.signup("First", "first@example.com", PASSWORD, "staff")
    assert result["user"]["role"] == "admin"


def test_later_signups_cannot_claim_admin(auth):
    auth.signup("First", "first@example.com", PASSWORD)
    second = auth.signup("Second", "second@example.com", PASSWORD, "admin")
    third = auth.signup("Third", "third@example.com", PASSWORD, "lawyer")
    fourth = auth.signup("Fourth", "fourth@example.com", PASSWORD)
    assert second["user"]["role"] == "staff"
    assert third["user"]["role"] == "lawyer"
    assert fourth["user"]["role"] == "staff"


def test_signup_normalizes_email_and_rejects_duplicates(auth):
    result = auth.signup("First", "  Mixed@Example.COM ", PASSWORD)
    assert result["user"]["email"] == "mixed@example.com"
    with pytest.raises(ConflictError, match="Account already exists"):
        auth.signup("Again", "mixed@example.com", PASSWORD)


def test_signup_validation(auth):
    with pytest.raises(ValidationError, match="Email and password are required"):
        auth.signup("x", "", PASSWORD)
    with pytest.raises(ValidationError, match="Email and password are required"):
        auth.signup("x", "   ", PASSWORD)
    with pytest.raises(ValidationError, match="Email and password are required"):
        auth.login("  ", PASSWORD)
    with pytest.raises(ValidationError, match="at least 8 characters"):
        auth.signup("x", "short@example.com", "1234567")


def test_password_hash_is_stored_but_never_returned(auth, context):
    result = auth.signup("First", "first@example.com", PASSWORD)
    assert "password_hash" not in result["user"]
    with context.store.transaction(read_only=True) as data:
        stored = data.find_one(USERS, email="first@example.com")
    assert stored["password_hash"] and stored["password_hash"] != PASSWORD


# ==================== LOGIN ====================


def test_login_failures_are_indistinguishable(auth, context):
    auth.signup("First", "first@example.com", PASSWORD)

    with pytest.raises(AuthError) as unknown:
        auth.login("nobody@example.com", PASSWORD)
    with pytest.raises(AuthError) as wrong:
        auth.login("first@example.com", "wrong-password")

    assert unknown.value.message == wrong.value.message == "Invalid email or password"
    assert audit_actions(context).count("AUTH_LOGIN_FAILED") == 2


def test_login_returns_session_for_current_role(auth):
    auth.signup("First", "first@example.com", PASSWORD)
    result = auth.login("FIRST@example.com", PASSWORD)
    identity = auth.verify_session(result["token"])
    assert identity.email == "first@example.com"
    assert identity.role == "admin"


# ==================== SESSIONS ====================


def test_verify_session_rejects_bad_tokens(auth, settings):
    user = auth.signup("First", "first@example.com", PASSWORD)["user"]

    with pytest.raises(AuthError, match="Missing token"):
        auth.verify_session(None)
    with pytest.raises(AuthError, match="Invalid or expired token"):
        auth.verify_session("not-a-jwt")

    foreign = jwt.encode(
        {"sub": user["id"], "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        "some-other-secret-that-is-long-enough",
        algorithm="HS256",
    )
    with pytest.raises(AuthError, match="Invalid or expired token"):
        auth.verify_session(foreign)

    expired = jwt.encode(
        {"sub": user["id"], "exp": datetime.now(timezone.utc) - timedelta(seconds=5)},
        settings.jwt_secret,
        algorithm="HS256",
    )
    with pytest.raises(AuthError, match="Invalid or expired token"):
        auth.verify_session(expired)


def test_verify_session_fails_for_deleted_user(auth, context):
    result = auth.signup("First", "first@example.com", PASSWORD)
    with context.store.transaction() as data:
        data.remove(USERS, result["user"]["id"])
    with pytest.raises(AuthError, match="User not found"):
        auth.verify_session(result["token"])


def test_role_change_applies_to_existing_sessions(auth):
    admin = auth.signup("Admin", "admin@example.com", PASSWORD)
    staff = auth.signup("Staff", "staff@example.com", PASSWORD)
    admin_identity = auth.verify_session(admin["token"])

    auth.update_role(admin_identity, staff["user"]["id"], "lawyer")

    assert auth.verify_session(staff["token"]).role == "lawyer"


# ==================== PASSWORD RESET ====================


def test_reset_request_does_not_reveal_unknown_accounts(auth, context):
    result = auth.request_password_reset("ghost@example.com")
    assert result == {"message": "If the account exists, a reset token has been generated."}
    with context.store.transaction(read_only=True) as data:
        assert data.count(RESET_TOKENS) == 0


def test_reset_token_is_stored_hashed_and_single_use(auth, context):
    auth.signup("First", "first@example.com", PASSWORD)
    issued = auth.request_password_reset("first@example.com")
    raw_token = issued["reset_token"]

    with context.store.transaction(read_only=True) as data:
        stored = data.all(RESET_TOKENS)
    assert len(stored) == 1
    assert stored[0]["token_hash"] != raw_token

    assert auth.confirm_password_reset(raw_token, "brand-new-password") == {"message": "Password updated"}
    auth.login("first@example.com", "brand-new-password")
    with pytest.raises(AuthError):
        auth.login("first@example.com", PASSWORD)

    with pytest.raises(InvalidResetTokenError, match="Invalid or expired token"):
        auth.confirm_password_reset(raw_token, "another-new-password")


def test_expired_reset_token_is_rejected(auth, context):
    auth.signup("First", "first@example.com", PASSWORD)
    raw_token = auth.request_password_reset("first@example.com")["reset_token"]

    with context.store.transaction() as data:
        token = data.all(RESET_TOKENS)[0]
        token["expires_at"] = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
        data.replace(RESET_TOKENS, token)

    with pytest.raises(InvalidResetTokenError):
        auth.confirm_password_reset(raw_token, "brand-new-password")


def test_reset_token_hidden_in_production(auth, settings):
    auth.signup("First", "first@example.com", PASSWORD)
    settings.environment = "production"
    result = auth.request_password_reset("first@example.com")
    assert "reset_token" not in result


def test_reset_rejects_short_password(auth):
    with pytest.raises(ValidationError, match="at least 8 characters"):
        auth.confirm_password_reset("whatever", "short")


# ==================== ADMIN ====================


def test_only_admins_manage_users(auth):
    admin = auth.signup("Admin", "admin@example.com", PASSWORD)
    lawyer = auth.signup("Lawyer", "lawyer@example.com", PASSWORD, "lawyer")
    lawyer_identity = auth.verify_session(lawyer["token"])
    admin_identity = auth.verify_session(admin["token"])

    with pytest.raises(AuthorizationError):
        auth.list_users(lawyer_identity)
    with pytest.raises(AuthorizationError):
        auth.update_role(lawyer_identity, admin["user"]["id"], "staff")

    users = auth.list_users(admin_identity)
    assert {u["email"] for u in users} == {"admin@example.com", "lawyer@example.com"}
    assert all("created_at" in u and "password_hash" not in u for u in users)


def test_update_role_errors(auth):
    admin = auth.signup("Admin", "admin@example.com", PASSWORD)
    identity = auth.verify_session(admin["token"])
    with pytest.raises(ValidationError, match="Invalid role"):
        auth.update_role(identity, admin["user"]["id"], "superuser")
    with pytest.raises(NotFoundError, match="User not found"):
        auth.update_role(identity, "missing-id", "staff")
