"""TaskGate engine - errors, state machine and query building.

``TaskGateEngine`` lives in ``taskgate.engine.core`` and is imported from
there; it depends on the repositories, which depend on this package.
"""

from taskgate.engine.errors import (
    AuthenticationFailure,
    AuthorizationFailure,
    ConflictError,
    InvalidStateTransition,
    NotFound,
    TaskGateError,
    TenantContextMissing,
    TokenValidationError,
    ValidationFailure,
)
from taskgate.engine.query import QueryPlan, TaskQueryBuilder
from taskgate.engine import state_machine

__all__ = [
    "AuthenticationFailure",
    "AuthorizationFailure",
    "ConflictError",
    "InvalidStateTransition",
    "NotFound",
    "QueryPlan",
    "TaskGateError",
    "TaskQueryBuilder",
    "TenantContextMissing",
    "TokenValidationError",
    "ValidationFailure",
    "state_machine",
]
