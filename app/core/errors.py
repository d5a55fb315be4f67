"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these; app.main maps them to responses. Credential failures
always use AuthenticationError with a uniform message so callers cannot tell
an unknown user from a wrong password.
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors that carry their own HTTP mapping."""

    error_code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


class ValidationError(AppError):
    """Malformed or missing input (caller's fault)."""

    error_code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(AppError):
    """Bad credentials or an invalid, expired, revoked or rotated token."""

    error_code = "AUTHENTICATION_ERROR"
    status_code = 401


class NotFoundError(AppError):
    error_code = "NOT_FOUND"
    status_code = 404


class ConflictError(AppError):
    """Duplicate username, email or document number."""

    error_code = "CONFLICT"
    status_code = 409


class ExternalServiceError(AppError):
    """Store or dependency failure."""

    error_code = "EXTERNAL_SERVICE_ERROR"
    status_code = 500
