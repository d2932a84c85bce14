"""Domain error taxonomy shared by every service.

Service functions raise these; ``libs.common.error_handler`` turns them into
``{"success": false, "code": ..., "detail": ...}`` responses.
"""

from typing import Optional


class ServiceError(Exception):
    """Base class for caller-visible domain failures."""

    status_code: int = 400
    code: str = "ERROR"

    def __init__(self, detail: str, *, code: Optional[str] = None):
        self.detail = detail
        if code:
            self.code = code
        super().__init__(detail)


class ValidationError(ServiceError):
    """Malformed or inconsistent input."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class AuthorizationError(ServiceError):
    """Actor lacks the capability for the operation."""

    status_code = 403
    code = "FORBIDDEN"


class ConflictError(ServiceError):
    """Operation conflicts with current state (already assigned, already done)."""

    status_code = 409
    code = "CONFLICT"


class ExpiredError(ServiceError):
    status_code = 400
    code = "EXPIRED"
