"""API request/response schemas."""

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from taskgate.models import (
    AuditEntry,
    Task,
    TaskPriority,
    TaskStatus,
    Tenant,
    UserProfile,
)

T = TypeVar("T")


# ============================================================================
# Shared schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Error body returned for every TaskGate failure."""

    detail: str
    code: str
    field: Optional[str] = None


class PageResponse(BaseModel, Generic[T]):
    """Zero-indexed page of results."""

    items: list[T]
    page: int
    size: int
    total: int
    total_pages: int


def page_response(page) -> dict:
    """Serialize an engine page (TaskPage/UserPage/AuditPage)."""
    size = page.size
    return {
        "items": page.items,
        "page": page.page,
        "size": size,
        "total": page.total,
        "total_pages": (page.total + size - 1) // size if size else 0,
    }


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


# ============================================================================
# Auth schemas
# ============================================================================


class RegisterRequest(BaseModel):
    """Register a new organization and its first (ADMIN) user."""

    organization_name: str = Field(..., description="Organization display name, unique")
    email: str
    password: str = Field(..., description="At least 8 characters")
    first_name: str
    last_name: str


class LoginRequest(BaseModel):
    """Login by organization slug."""

    tenant_slug: str = Field(..., description="Organization slug returned at registration")
    email: str
    password: str


class RefreshRequest(BaseModel):
    """Refresh token exchange."""

    refresh_token: str


class AuthResponse(BaseModel):
    """Issued tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    user: Optional[UserProfile] = None
    tenant: Optional[Tenant] = None


# ============================================================================
# Task schemas
# ============================================================================


class TaskRequest(BaseModel):
    """Create or fully update a task."""

    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assigned_to_id: Optional[int] = None
    tags: Optional[str] = Field(None, description="Comma-separated tags")


class StatusChangeRequest(BaseModel):
    """Task status change."""

    status: TaskStatus


class TaskListResponse(PageResponse[Task]):
    """Page of tasks."""


# ============================================================================
# User schemas
# ============================================================================


class UserListResponse(PageResponse[UserProfile]):
    """Page of users."""


class ProfileUpdateRequest(BaseModel):
    """Update the caller's own profile; omitted or blank fields are kept."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    """Change the caller's password."""

    current_password: str
    new_password: str = Field(..., description="At least 8 characters")
    confirm_password: str


class RolesUpdateRequest(BaseModel):
    """Replace a user's role set."""

    roles: list[str] = Field(..., description="Role names: ADMIN, MANAGER, USER")


# ============================================================================
# Audit schemas
# ============================================================================


class AuditLogListResponse(PageResponse[AuditEntry]):
    """Page of audit entries, newest first."""
