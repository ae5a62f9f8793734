"""
Identity and credential service: signup, login, session tokens, password
reset and admin role management.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import bcrypt
import jwt
from loguru import logger

from auth.models import (
    RESET_TOKENS,
    USERS,
    Identity,
    is_expired,
    new_reset_token,
    new_user,
    normalize_email,
    public_user,
)
from core.config import Settings
from core.errors import (
    AuthError,
    ConflictError,
    InvalidResetTokenError,
    NotFoundError,
    ValidationError,
)
from security.audit.event_logger import AuditAction, AuditLogger, utc_now
from security.policy.rbac import Permission, Role, is_allowed_role, parse_role, require_permission
from storage.document_store import DocumentStore

MIN_PASSWORD_LENGTH = 8
JWT_ALGORITHM = "HS256"
INVALID_CREDENTIALS = "Invalid email or password"
RESET_REQUESTED_MESSAGE = "If the account exists, a reset token has been generated."


class AuthManager:
    """Authentication manager"""

    def __init__(self, settings: Settings, store: DocumentStore, audit: AuditLogger):
        self.settings = settings
        self.store = store
        self.audit = audit
        self.jwt_secret = settings.jwt_secret
        self.jwt_expiry = timedelta(minutes=settings.jwt_expires_minutes)
        self.password_reset_ttl = settings.password_reset_ttl_minutes
        # Compared against when the email is unknown so both login failures cost one bcrypt check.
        self._dummy_hash = self._hash_password(secrets.token_hex(16))
        logger.info("AuthManager initialized")

    # ==================== PASSWORD HASHING ====================

    def _hash_password(self, password: str) -> str:
        """Hash password using bcrypt"""
        password_bytes = password.encode("utf-8")[:72]
        salt = bcrypt.gensalt(rounds=self.settings.bcrypt_rounds)
        return bcrypt.hashpw(password_bytes, salt).decode("utf-8")

    def _verify_password(self, password: str, password_hash: str) -> bool:
        """Verify password against hash"""
        if not password_hash:
            logger.error("[VERIFY] Password hash is None or empty")
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8")[:72], password_hash.encode("utf-8"))
        except ValueError as e:
            logger.error(f"[VERIFY] Malformed password hash: {e}")
            return False

    @staticmethod
    def _hash_reset_token(raw_token: str) -> str:
        return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()

    @staticmethod
    def _check_password_length(password: str) -> None:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    # ==================== SESSION TOKENS ====================

    def _issue_token(self, user: Dict[str, Any]) -> str:
        now = datetime.now(timezone.utc)
        return jwt.encode(
            {
                "sub": user["id"],
                "email": user["email"],
                "role": user["role"],
                "iat": now,
                "exp": now + self.jwt_expiry,
            },
            self.jwt_secret,
            algorithm=JWT_ALGORITHM,
        )

    def verify_session(self, token: Optional[str]) -> Identity:
        """Resolve a bearer token to the current identity of its user."""
        if not token:
            raise AuthError("Missing token")
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            logger.warning("[TOKEN_VERIFY] Token expired")
            raise AuthError("Invalid or expired token")
        except jwt.InvalidTokenError as e:
            logger.warning(f"[TOKEN_VERIFY] Invalid token: {e}")
            raise AuthError("Invalid or expired token")

        with self.store.transaction(read_only=True) as data:
            user = data.find_one(USERS, id=payload["sub"])
        if user is None:
            logger.warning(f"[TOKEN_VERIFY] Token for unknown user: {payload['sub']}")
            raise AuthError("User not found")

        # Role comes from the stored user so admin role changes apply immediately.
        return Identity(id=user["id"], email=user["email"], role=user["role"])

    # ==================== REGISTRATION ====================

    def signup(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str],
        requested_role: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        normalized_email = normalize_email(email)
        if not normalized_email or not password:
            raise ValidationError("Email and password are required")
        self._check_password_length(password)

        password_hash = self._hash_password(password)

        with self.store.transaction() as data:
            if data.find_one(USERS, email=normalized_email):
                logger.warning(f"[SIGNUP] Email already exists: {normalized_email}")
                raise ConflictError("Account already exists")

            if data.count(USERS) == 0:
                role = Role.ADMIN.value
            elif is_allowed_role(requested_role) and requested_role != Role.ADMIN.value:
                role = requested_role
            else:
                role = Role.STAFF.value

            user = new_user(name, normalized_email, role, password_hash)
            data.insert(USERS, user)
            self.audit.record(data, AuditAction.AUTH_SIGNUP, user["id"], ip, {"role": role})

        logger.info(f"[SIGNUP] User registered: {normalized_email} as {role}")
        return {"token": self._issue_token(user), "user": public_user(user)}

    # ==================== LOGIN ====================

    def login(self, email: Optional[str], password: Optional[str], ip: Optional[str] = None) -> Dict[str, Any]:
        normalized_email = normalize_email(email)
        if not normalized_email or not password:
            raise ValidationError("Email and password are required")

        with self.store.transaction(read_only=True) as data:
            user = data.find_one(USERS, email=normalized_email)

        if user is None:
            self._verify_password(password, self._dummy_hash)
            ok = False
        else:
            ok = self._verify_password(password, user.get("password_hash"))

        with self.store.transaction() as data:
            if ok:
                self.audit.record(data, AuditAction.AUTH_LOGIN, user["id"], ip, {"role": user["role"]})
            else:
                self.audit.record(data, AuditAction.AUTH_LOGIN_FAILED, None, ip, {"email": normalized_email})

        if not ok:
            logger.warning(f"[LOGIN] Failed login for: {normalized_email}")
            raise AuthError(INVALID_CREDENTIALS)

        logger.info(f"[LOGIN] User logged in: {normalized_email}")
        return {"token": self._issue_token(user), "user": public_user(user)}

    def current_user(self, identity: Identity) -> Dict[str, Any]:
        with self.store.transaction(read_only=True) as data:
            user = data.find_one(USERS, id=identity.id)
        if user is None:
            raise AuthError("User not found")
        return public_user(user)

    # ==================== PASSWORD RESET ====================

    def request_password_reset(self, email: Optional[str], ip: Optional[str] = None) -> Dict[str, Any]:
        """Same acknowledgement whether or not the account exists."""
        response: Dict[str, Any] = {"message": RESET_REQUESTED_MESSAGE}
        if not email:
            return response

        normalized_email = normalize_email(email)
        raw_token = secrets.token_hex(24)

        with self.store.transaction() as data:
            user = data.find_one(USERS, email=normalized_email)
            if user is None:
                logger.info("[PASSWORD_RESET] Reset requested for unknown email")
                return response

            reset_token = new_reset_token(user["id"], self._hash_reset_token(raw_token), self.password_reset_ttl)
            data.insert(RESET_TOKENS, reset_token)
            self.audit.record(
                data,
                AuditAction.AUTH_PASSWORD_RESET_REQUEST,
                user["id"],
                ip,
                {"expiresAt": reset_token["expires_at"]},
            )

        logger.info(f"[PASSWORD_RESET] Reset token issued for user {user['id']}")
        if not self.settings.is_production:
            response["reset_token"] = raw_token
            response["expires_at"] = reset_token["expires_at"]
        return response

    def confirm_password_reset(
        self, raw_token: Optional[str], new_password: Optional[str], ip: Optional[str] = None
    ) -> Dict[str, Any]:
        if not raw_token or not new_password:
            raise ValidationError("Token and new password are required")
        self._check_password_length(new_password)

        token_hash = self._hash_reset_token(str(raw_token))
        password_hash = self._hash_password(new_password)

        with self.store.transaction() as data:
            reset_token = data.find_one(RESET_TOKENS, token_hash=token_hash, used_at=None)
            # Unknown, already used and expired tokens all fail the same way.
            if reset_token is None or is_expired(reset_token):
                logger.warning("[RESET_PWD] Invalid, used or expired reset token")
                raise InvalidResetTokenError()

            user = data.find_one(USERS, id=reset_token["user_id"])
            if user is None:
                logger.warning(f"[RESET_PWD] Reset token for missing user {reset_token['user_id']}")
                raise InvalidResetTokenError()

            user["password_hash"] = password_hash
            reset_token["used_at"] = utc_now()
            data.replace(USERS, user)
            data.replace(RESET_TOKENS, reset_token)
            self.audit.record(data, AuditAction.AUTH_PASSWORD_RESET_COMPLETE, user["id"], ip, {})

        logger.info(f"[RESET_PWD] Password reset for user {user['id']}")
        return {"message": "Password updated"}

    # ==================== ADMIN ====================

    def list_users(self, identity: Identity) -> List[Dict[str, Any]]:
        require_permission(identity, Permission.USER_MANAGE)
        with self.store.transaction(read_only=True) as data:
            users = data.all(USERS)
        return [public_user(user, include_created=True) for user in users]

    def update_role(
        self, identity: Identity, user_id: str, role: Optional[str], ip: Optional[str] = None
    ) -> Dict[str, Any]:
        require_permission(identity, Permission.USER_MANAGE)
        new_role = parse_role(role)

        with self.store.transaction() as data:
            user = data.find_one(USERS, id=user_id)
            if user is None:
                raise NotFoundError("User not found")
            user["role"] = new_role.value
            data.replace(USERS, user)
            self.audit.record(
                data,
                AuditAction.ADMIN_ROLE_UPDATED,
                identity.id,
                ip,
                {"targetUserId": user["id"], "role": new_role.value},
            )

        logger.info(f"[ROLE] {identity.id} set role of {user_id} to {new_role.value}")
        return public_user(user)
