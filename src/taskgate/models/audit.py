"""Audit entry model - append-only record of mutating actions."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AuditEntry(BaseModel):
    """Audit trail entry. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    id: int
    tenant_id: int
    user_id: Optional[int] = None
    action: str
    entity_type: str
    entity_id: Optional[int] = None
    details: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: datetime


class AuditPage(BaseModel):
    """One page of audit entries, newest first."""

    items: list[AuditEntry] = Field(default_factory=list)
    page: int
    size: int
    total: int
