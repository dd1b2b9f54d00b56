"""TaskGate engine errors."""

from enum import Enum
from typing import Any, Optional


class TaskGateError(Exception):
    """Base error for TaskGate operations."""

    def __init__(self, message: str, code: str = "TASKGATE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class AuthFailureReason(str, Enum):
    """Why authentication failed. Logged, never returned to the caller."""

    INVALID_FORMAT = "invalid_format"
    NOT_FOUND = "not_found"
    BAD_CREDENTIALS = "bad_credentials"
    MALFORMED = "malformed"
    EXPIRED = "expired"
    UNSUPPORTED_SIGNATURE = "unsupported_signature"
    INVALID = "invalid"


class AuthenticationFailure(TaskGateError):
    """Credentials or token rejected."""

    def __init__(self, reason: AuthFailureReason, message: str = "Invalid credentials"):
        super().__init__(message, "UNAUTHORIZED")
        self.reason = reason


class TokenValidationError(AuthenticationFailure):
    """Signed token failed validation."""

    def __init__(self, reason: AuthFailureReason):
        super().__init__(reason, "Unauthorized")


class AuthorizationFailure(TaskGateError):
    """Principal lacks the role required by the operation."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, "FORBIDDEN")


class ValidationFailure(TaskGateError):
    """Request violates a business rule."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, "VALIDATION_FAILED")
        self.field = field

    def detail(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class InvalidStateTransition(ValidationFailure):
    """Invalid task state transition."""

    def __init__(self, current_status: str, requested_status: str, allowed: list[str]):
        if current_status == requested_status:
            message = f"Task is already in {current_status} status"
        else:
            message = (
                f"Cannot transition from {current_status} to {requested_status}. "
                f"Valid transitions: {', '.join(allowed)}"
            )
        super().__init__(message, field="status")
        self.code = "INVALID_STATE_TRANSITION"
        self.current_status = current_status
        self.requested_status = requested_status


class TenantContextMissing(TaskGateError):
    """Tenant-scoped operation invoked without a resolved tenant."""

    def __init__(self):
        super().__init__("Tenant context not found", "TENANT_CONTEXT_MISSING")


class NotFound(TaskGateError):
    """Entity does not exist in the caller's tenant.

    The message is identical whether the row is absent or owned by another
    tenant.
    """

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found with id: {entity_id}", "NOT_FOUND")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(TaskGateError):
    """Unique business key already taken."""

    def __init__(self, message: str):
        super().__init__(message, "CONFLICT")
