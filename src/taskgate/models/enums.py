"""TaskGate enumerations."""

from enum import Enum


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def closed_states(cls) -> set["TaskStatus"]:
        """States in which a task cannot be (re)assigned."""
        return {cls.COMPLETED, cls.CANCELLED}

    def is_closed(self) -> bool:
        return self in self.closed_states()


class TaskPriority(str, Enum):
    """Task priority."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class RoleName(str, Enum):
    """Role names carried by users and tokens."""

    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    USER = "USER"


class AuditAction(str, Enum):
    """Action codes written to the audit log."""

    LOGIN = "LOGIN"
    TENANT_REGISTERED = "TENANT_REGISTERED"
    TENANT_DEACTIVATED = "TENANT_DEACTIVATED"
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_DELETED = "TASK_DELETED"
    TASK_STATUS_CHANGED = "TASK_STATUS_CHANGED"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_UNASSIGNED = "TASK_UNASSIGNED"
    USER_ACTIVATED = "USER_ACTIVATED"
    USER_DEACTIVATED = "USER_DEACTIVATED"
    USER_DELETED = "USER_DELETED"
    USER_ROLES_UPDATED = "USER_ROLES_UPDATED"
    PROFILE_UPDATED = "PROFILE_UPDATED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
