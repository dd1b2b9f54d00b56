"""Task model - core work unit."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from taskgate.models.enums import TaskPriority, TaskStatus


class Task(BaseModel):
    """Tenant-owned task."""

    model_config = ConfigDict(frozen=True)

    # Identity (tenant_id never changes after creation)
    id: int
    tenant_id: int

    title: str
    description: Optional[str] = None

    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None

    # Ownership
    created_by_id: int
    assigned_to_id: Optional[int] = None

    # Comma-separated tag text
    tags: Optional[str] = None

    # Timestamps
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class TaskDraft(BaseModel):
    """Caller-supplied fields for creating or fully updating a task."""

    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assigned_to_id: Optional[int] = None
    tags: Optional[str] = None


class TaskPage(BaseModel):
    """One page of tasks."""

    items: list[Task] = Field(default_factory=list)
    page: int
    size: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size
