"""Task filter criteria."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from taskgate.models.enums import TaskPriority, TaskStatus


class FilterSpec(BaseModel):
    """Ephemeral description of a task query. Never persisted."""

    search: Optional[str] = None
    statuses: list[TaskStatus] = Field(default_factory=list)
    priorities: list[TaskPriority] = Field(default_factory=list)
    assigned_to_id: Optional[int] = None
    created_by_id: Optional[int] = None
    due_date_from: Optional[datetime] = None
    due_date_to: Optional[datetime] = None
    tags: Optional[str] = None
    overdue: Optional[bool] = None
    completed: Optional[bool] = None

    # Paging (zero-indexed); None falls back to configured defaults
    page: Optional[int] = None
    size: Optional[int] = None

    sort_by: str = "createdAt"
    sort_direction: str = "desc"
