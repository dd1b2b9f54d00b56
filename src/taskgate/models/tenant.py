"""Tenant model - an isolated customer organization."""

from datetime import datetime

from pydantic import BaseModel


class Tenant(BaseModel):
    """Organization owning users and tasks."""

    id: int
    name: str
    slug: str
    active: bool = True
    created_at: datetime
    updated_at: datetime
