"""
Error taxonomy shared by every layer.

Each error carries the HTTP status it renders as and a stable,
human-readable message. The API exception handlers render them as
``{"error": message}``; nothing else about the failure reaches the caller.

NotFoundError is also raised when a record exists but belongs to another
user. Callers cannot tell the two cases apart, on purpose.
"""


class AppError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = 400
    default_message = "Invalid request"


class InvalidResetTokenError(ValidationError):
    """Unknown, used or expired password reset token."""

    default_message = "Invalid or expired token"


class AuthError(AppError):
    """Missing, invalid or expired session, or bad credentials."""

    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(AppError):
    """Authenticated, but the role lacks the permission (or origin refused)."""

    status_code = 403
    default_message = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Conflict"


class RateLimitError(AppError):
    status_code = 429
    default_message = "Too many requests. Please slow down."


class StorageError(AppError):
    """Storage backend failure. Rendered as a generic 500."""

    status_code = 500
