"""User profile model (password hash never leaves the repository)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    """Tenant member as seen by the engine."""

    id: int
    tenant_id: int
    email: str
    first_name: str
    last_name: str
    roles: list[str] = Field(default_factory=list)
    active: bool = True
    last_login: Optional[datetime] = None
    created_at: datetime


class UserPage(BaseModel):
    """One page of users."""

    items: list[UserProfile] = Field(default_factory=list)
    page: int
    size: int
    total: int
