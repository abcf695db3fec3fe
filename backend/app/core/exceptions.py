"""
Custom exception classes for unified error handling.

Every AppBaseError carries the HTTP status it maps to; the handlers in
app.main render them as {"error", "message", "type"}.
"""

from fastapi import status


class AppBaseError(Exception):
    """Base exception for all application errors."""
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class ClientInputError(AppBaseError):
    """Raised when a request is malformed. Never retried automatically."""
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(AppBaseError):
    """Raised when a bearer token or device token is missing, invalid or unknown."""
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized", detail: str | None = None):
        super().__init__(message=message, detail=detail)


class NotFoundError(AppBaseError):
    """Raised when a resource does not exist or is not owned by the caller."""
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str):
        super().__init__(message=f"{resource} not found")


class ConflictError(AppBaseError):
    """Raised when a state transition is no longer allowed (already provisioned, duplicate slug)."""
    status_code = status.HTTP_409_CONFLICT


class DependencyError(AppBaseError):
    """Raised when the data store, identity provider or broker is unavailable.

    Safe to retry with backoff: nothing was exposed to the caller.
    """
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, service: str, detail: str | None = None):
        super().__init__(
            message=f"{service} unavailable",
            detail=detail or "Please retry later.",
        )
        self.service = service


# ── Utility: render as JSON body ─────────────────────────

def app_error_body(error: AppBaseError) -> dict:
    """Consistent JSON body for an AppBaseError."""
    return {
        "error": error.message,
        "message": error.detail,
        "type": type(error).__name__,
    }
