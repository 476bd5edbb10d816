"""Typed errors raised by the core.

Every error is an ``HTTPException`` so routes can let them propagate
unchanged; services and tests catch the concrete class.
"""
from fastapi import HTTPException


class ShutterlinkError(HTTPException):
    """Base class for all core errors."""

    status_code = 500
    default_detail = "Internal error"

    def __init__(self, detail: str | None = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class AuthenticationFailed(ShutterlinkError):
    """Bad credentials, unknown identifier, or a disabled/expired account."""

    status_code = 401
    default_detail = "Invalid credentials"

    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_DISABLED = "account_disabled"
    GUEST_EXPIRED = "guest_expired"

    MESSAGES = {
        INVALID_CREDENTIALS: "Invalid credentials",
        ACCOUNT_DISABLED: "Account is disabled",
        GUEST_EXPIRED: "Guest access has expired",
    }

    def __init__(self, reason: str = INVALID_CREDENTIALS):
        self.reason = reason
        super().__init__(self.MESSAGES.get(reason, self.default_detail))


class SessionInvalid(ShutterlinkError):
    status_code = 401
    default_detail = "Invalid or expired session"


class AuthorizationDenied(ShutterlinkError):
    status_code = 403
    default_detail = "Access denied"


class ResourceNotFound(ShutterlinkError):
    status_code = 404
    default_detail = "Resource not found"


class ResourceConflict(ShutterlinkError):
    status_code = 409
    default_detail = "Conflicting or duplicate resource"


class ResourceUnavailable(ShutterlinkError):
    """The resource exists but is disabled or pending deletion."""

    status_code = 410
    default_detail = "Resource is no longer available"


class ValidationFailed(ShutterlinkError):
    status_code = 400
    default_detail = "Invalid input"


class StorageUnavailable(ShutterlinkError):
    status_code = 503
    default_detail = "Storage unavailable"
