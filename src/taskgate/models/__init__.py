"""TaskGate data models."""

from taskgate.models.enums import AuditAction, RoleName, TaskPriority, TaskStatus
from taskgate.models.principal import Principal
from taskgate.models.task import Task, TaskDraft, TaskPage
from taskgate.models.tenant import Tenant
from taskgate.models.user import UserPage, UserProfile
from taskgate.models.audit import AuditEntry, AuditPage
from taskgate.models.filters import FilterSpec

__all__ = [
    "AuditAction",
    "AuditEntry",
    "AuditPage",
    "FilterSpec",
    "Principal",
    "RoleName",
    "Task",
    "TaskDraft",
    "TaskPage",
    "TaskPriority",
    "TaskStatus",
    "Tenant",
    "UserPage",
    "UserProfile",
]
