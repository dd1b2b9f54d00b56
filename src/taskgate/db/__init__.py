"""TaskGate database layer."""

from taskgate.db.base import Base, close_db, init_db
from taskgate.db.tables import AuditLogTable, TaskTable, TenantTable

__all__ = [
    "Base",
    "close_db",
    "init_db",
    "AuditLogTable",
    "TaskTable",
    "TenantTable",
]
