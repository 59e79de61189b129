"""
auth/errors.py -- Error taxonomy for the auth services.

Every business-rule failure the services detect is raised as an AuthError
subclass carrying a machine-readable code, a client-safe message and the
HTTP status the API layer should use. api/main.py registers a single
exception handler for AuthError that renders the ErrorResponse envelope,
so route handlers never build error payloads by hand.

Messages are written for clients: they never contain SQL text, stack
traces, password hashes or tokens. InvalidCredentialsError is deliberately
the same for "unknown e-mail" and "wrong password" so the login path does
not reveal which accounts exist.

Layer rule: no imports from api/ or core/. FastAPI is not imported here --
the status codes are plain ints so the services stay framework-free.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for errors raised by the auth services."""

    status_code: int = 500
    code: str = "error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.message
        self.detail = detail
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 400
# ---------------------------------------------------------------------------


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"
    message = "Request validation failed."


# ---------------------------------------------------------------------------
# 401
# ---------------------------------------------------------------------------


class AuthenticationError(AuthError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class InvalidCredentialsError(AuthenticationError):
    code = "bad_credentials"
    message = "Invalid email or password."


class InvalidTokenError(AuthenticationError):
    code = "invalid_token"
    message = "Invalid or expired token."


# ---------------------------------------------------------------------------
# 403
# ---------------------------------------------------------------------------


class AuthorizationError(AuthError):
    status_code = 403
    code = "forbidden"
    message = "Permission denied."


class AccountDisabledError(AuthorizationError):
    code = "account_disabled"
    message = "This account is disabled."


class PermissionDeniedError(AuthorizationError):
    code = "permission_denied"


# ---------------------------------------------------------------------------
# 404 / 409
# ---------------------------------------------------------------------------


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"
    message = "User not found."


class ConflictError(AuthError):
    status_code = 409
    code = "conflict"
    message = "The request conflicts with the current state."


class EmailTakenError(ConflictError):
    code = "email_taken"
    message = "A user with that email already exists."


class SelfDeletionError(ConflictError):
    # Reported as a bad request: the caller asked for something that can never succeed.
    status_code = 400
    code = "self_deletion"
    message = "You cannot delete your own account."


# ---------------------------------------------------------------------------
# 500
# ---------------------------------------------------------------------------


class InternalError(AuthError):
    status_code = 500
    code = "internal_error"
    message = "An unexpected error occurred."
