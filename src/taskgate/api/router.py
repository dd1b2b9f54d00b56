"""REST API router."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from taskgate import __version__
from taskgate.api.deps import (
    client_ip,
    get_auth_service,
    get_engine,
    get_principal,
    get_request_context,
)
from taskgate.api.schemas import (
    AuditLogListResponse,
    AuthResponse,
    HealthResponse,
    LoginRequest,
    PasswordChangeRequest,
    ProfileUpdateRequest,
    RefreshRequest,
    RegisterRequest,
    RolesUpdateRequest,
    StatusChangeRequest,
    TaskListResponse,
    TaskRequest,
    UserListResponse,
    page_response,
)
from taskgate.auth.context import RequestContext
from taskgate.auth.service import AuthService
from taskgate.engine.core import TaskGateEngine
from taskgate.engine.query import parse_enum_list
from taskgate.models import (
    FilterSpec,
    Principal,
    Task,
    TaskDraft,
    TaskPriority,
    TaskStatus,
    Tenant,
    UserProfile,
)

router = APIRouter(prefix="/v1")


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


# ============================================================================
# Auth
# ============================================================================


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
):
    """Register an organization; the registering user becomes its ADMIN."""
    result = await auth.register(
        organization_name=body.organization_name,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        ip=client_ip(request),
    )
    return AuthResponse(**result.model_dump())


@router.post("/auth/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
):
    result = await auth.login(
        tenant_slug=body.tenant_slug,
        email=body.email,
        password=body.password,
        ip=client_ip(request),
    )
    return AuthResponse(**result.model_dump())


@router.post("/auth/refresh", response_model=AuthResponse)
async def refresh(
    body: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
):
    result = await auth.refresh(body.refresh_token)
    return AuthResponse(**result.model_dump())


@router.get("/auth/me", response_model=UserProfile)
async def me(
    principal: Principal = Depends(get_principal),
    auth: AuthService = Depends(get_auth_service),
):
    """Profile of the authenticated user."""
    return await auth.current_user(principal)


# ============================================================================
# Tasks
# ============================================================================


async def task_filters(
    search: Optional[str] = Query(None),
    statuses: Optional[list[str]] = Query(None),
    priorities: Optional[list[str]] = Query(None),
    assigned_to_id: Optional[int] = Query(None),
    created_by_id: Optional[int] = Query(None),
    due_date_from: Optional[datetime] = Query(None),
    due_date_to: Optional[datetime] = Query(None),
    tags: Optional[str] = Query(None),
    overdue: Optional[bool] = Query(None),
    completed: Optional[bool] = Query(None),
    page: Optional[int] = Query(None),
    size: Optional[int] = Query(None),
    sort_by: str = Query("createdAt"),
    sort_direction: str = Query("desc"),
) -> FilterSpec:
    """Query-string task filters. Range and sort checks happen in the engine."""
    return FilterSpec(
        search=search,
        statuses=parse_enum_list(TaskStatus, statuses, "statuses"),
        priorities=parse_enum_list(TaskPriority, priorities, "priorities"),
        assigned_to_id=assigned_to_id,
        created_by_id=created_by_id,
        due_date_from=due_date_from,
        due_date_to=due_date_to,
        tags=tags,
        overdue=overdue,
        completed=completed,
        page=page,
        size=size,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )


def _draft(body: TaskRequest) -> TaskDraft:
    return TaskDraft(**body.model_dump())


@router.post("/tasks", response_model=Task, status_code=201)
async def create_task(
    body: TaskRequest,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Create a new task."""
    return await engine.create_task(ctx, _draft(body))


@router.get("/tasks", response_model=TaskListResponse)
async def list_tasks(
    spec: FilterSpec = Depends(task_filters),
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    """List tasks with optional filtering, sorting and paging."""
    return TaskListResponse(**page_response(await engine.list_tasks(ctx, spec)))


@router.get("/tasks/my-tasks", response_model=TaskListResponse)
async def list_my_tasks(
    spec: FilterSpec = Depends(task_filters),
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Tasks assigned to the caller."""
    return TaskListResponse(**page_response(await engine.list_my_tasks(ctx, spec)))


@router.get("/tasks/created-by-me", response_model=TaskListResponse)
async def list_created_by_me(
    spec: FilterSpec = Depends(task_filters),
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Tasks created by the caller."""
    return TaskListResponse(**page_response(await engine.list_created_by_me(ctx, spec)))


@router.get("/tasks/{task_id}", response_model=Task)
async def get_task(
    task_id: int,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Get a task by ID."""
    return await engine.get_task(ctx, task_id)


@router.put("/tasks/{task_id}", response_model=Task)
async def update_task(
    task_id: int,
    body: TaskRequest,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Full update of a task."""
    return await engine.update_task(ctx, task_id, _draft(body))


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(
    task_id: int,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    await engine.delete_task(ctx, task_id)
    return Response(status_code=204)


@router.post("/tasks/{task_id}/assign/{user_id}", response_model=Task)
async def assign_task(
    task_id: int,
    user_id: int,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    return await engine.assign_task(ctx, task_id, user_id)


@router.post("/tasks/{task_id}/unassign", response_model=Task)
async def unassign_task(
    task_id: int,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    return await engine.unassign_task(ctx, task_id)


@router.patch("/tasks/{task_id}/status", response_model=Task)
async def change_status(
    task_id: int,
    body: StatusChangeRequest,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Move a task through the status state machine."""
    return await engine.change_status(ctx, task_id, body.status)


# ============================================================================
# Users
# ============================================================================


@router.get("/users", response_model=UserListResponse)
async def list_users(
    page: Optional[int] = Query(None),
    size: Optional[int] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    return UserListResponse(**page_response(await engine.list_users(ctx, page, size)))


@router.get("/users/search", response_model=UserListResponse)
async def search_users(
    query: str = Query(""),
    page: Optional[int] = Query(None),
    size: Optional[int] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Search users by name or email."""
    return UserListResponse(**page_response(await engine.search_users(ctx, query, page, size)))


@router.put("/users/me", response_model=UserProfile)
async def update_current_user(
    body: ProfileUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Update the caller's own name or email."""
    return await engine.update_current_user(
        ctx, first_name=body.first_name, last_name=body.last_name, email=body.email
    )


@router.post("/users/me/change-password", status_code=204)
async def change_password(
    body: PasswordChangeRequest,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    await engine.change_password(
        ctx, body.current_password, body.new_password, body.confirm_password
    )
    return Response(status_code=204)


@router.get("/users/{user_id}", response_model=UserProfile)
async def get_user(
    user_id: int,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    return await engine.get_user(ctx, user_id)


@router.post("/users/{user_id}/activate", response_model=UserProfile)
async def activate_user(
    user_id: int,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    return await engine.activate_user(ctx, user_id)


@router.post("/users/{user_id}/deactivate", response_model=UserProfile)
async def deactivate_user(
    user_id: int,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    return await engine.deactivate_user(ctx, user_id)


@router.delete("/users/{user_id}", status_code=204)
async def delete_user(
    user_id: int,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    await engine.delete_user(ctx, user_id)
    return Response(status_code=204)


@router.put("/users/{user_id}/roles", response_model=UserProfile)
async def update_user_roles(
    user_id: int,
    body: RolesUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    return await engine.update_user_roles(ctx, user_id, body.roles)


# ============================================================================
# Tenant
# ============================================================================


@router.post("/tenant/deactivate", response_model=Tenant)
async def deactivate_tenant(
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    """Deactivate the caller's organization. Further logins are refused."""
    return await engine.deactivate_tenant(ctx)


# ============================================================================
# Audit logs
# ============================================================================


@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[int] = Query(None),
    user_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    page: Optional[int] = Query(None),
    size: Optional[int] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    result = await engine.list_audit_logs(
        ctx,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        action=action,
        page=page,
        size=size,
    )
    return AuditLogListResponse(**page_response(result))


@router.get("/audit-logs/entity/{entity_type}/{entity_id}", response_model=AuditLogListResponse)
async def list_audit_logs_by_entity(
    entity_type: str,
    entity_id: int,
    page: Optional[int] = Query(None),
    size: Optional[int] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    result = await engine.list_audit_logs(
        ctx, entity_type=entity_type, entity_id=entity_id, page=page, size=size
    )
    return AuditLogListResponse(**page_response(result))


@router.get("/audit-logs/user/{user_id}", response_model=AuditLogListResponse)
async def list_audit_logs_by_user(
    user_id: int,
    page: Optional[int] = Query(None),
    size: Optional[int] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    result = await engine.list_audit_logs(ctx, user_id=user_id, page=page, size=size)
    return AuditLogListResponse(**page_response(result))


@router.get("/audit-logs/action/{action}", response_model=AuditLogListResponse)
async def list_audit_logs_by_action(
    action: str,
    page: Optional[int] = Query(None),
    size: Optional[int] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    engine: TaskGateEngine = Depends(get_engine),
):
    result = await engine.list_audit_logs(ctx, action=action.upper(), page=page, size=size)
    return AuditLogListResponse(**page_response(result))
