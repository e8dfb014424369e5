"""
auth/errors.py -- Domain error taxonomy for the identity core.

Every error carries an HTTP-equivalent status and a stable machine-readable
code. The service and guards raise these unchanged; api/main.py renders them
into the shared error envelope in one exception handler.

Messages are safe to show to clients. Internal details (SQL, stack traces,
key material) go to the server log, never into an AuthError message.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all errors surfaced to the caller."""

    status_code: int = 400
    code: str = "bad_request"
    default_message: str = "Bad request."

    def __init__(self, message: str | None = None, *, field: str | None = None) -> None:
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid input."


class MissingSecretError(ValidationError):
    default_message = "Password is required."


class WeakSecretError(ValidationError):
    default_message = "Password does not meet the strength policy."


class DuplicateEmailError(AuthError):
    status_code = 409
    code = "duplicate_email"
    default_message = "Email is already registered."


class InvalidCredentialsError(AuthError):
    """Same error for unknown email and wrong secret -- never leaks existence."""

    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid credentials."


class InvalidTokenError(AuthError):
    code = "invalid_token"
    default_message = "Invalid token."


class ExpiredTokenError(AuthError):
    code = "expired_token"
    default_message = "Token has expired."


class InvalidIdentityError(AuthError):
    code = "invalid_identity"
    default_message = "Invalid user."


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"
    default_message = "User not found."


class UnauthenticatedError(AuthError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required."


class ForbiddenError(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied."


class DecryptionError(AuthError):
    """Deliberately generic: never hints at key mismatch versus corrupt input."""

    status_code = 400
    code = "bad_request"
    default_message = "Malformed request payload."


class ServiceUnavailableError(AuthError):
    status_code = 503
    code = "unavailable"
    default_message = "This feature is not configured."


class InternalError(AuthError):
    status_code = 500
    code = "internal_error"
    default_message = "An unexpected error occurred."
