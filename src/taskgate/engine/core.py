"""TaskGate core engine - tenant-scoped business operations.

Every operation takes an explicit RequestContext as its first argument and
never reads ambient request state. Lookups are always by ``(id, tenant_id)``
with the soft-delete filter applied, so a row owned by another tenant is
indistinguishable from a missing one.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.audit.recorder import AuditRecorder
from taskgate.auth.context import RequestContext
from taskgate.auth.guard import require_admin
from taskgate.auth.passwords import hash_password, verify_password
from taskgate.db.repositories import (
    AuditLogRepository,
    TaskRepository,
    TenantRepository,
    UserRepository,
)
from taskgate.engine import state_machine
from taskgate.engine.errors import ConflictError, NotFound, ValidationFailure
from taskgate.engine.query import TaskQueryBuilder
from taskgate.engine.validation import (
    validate_draft,
    validate_email,
    validate_name,
    validate_password,
)
from taskgate.models import (
    AuditAction,
    AuditPage,
    FilterSpec,
    RoleName,
    Task,
    TaskDraft,
    TaskPage,
    TaskStatus,
    Tenant,
    UserPage,
    UserProfile,
)
from taskgate.utils.time import to_utc, utc_now

logger = logging.getLogger(__name__)

TASK_ENTITY = "Task"
USER_ENTITY = "User"
TENANT_ENTITY = "Tenant"


class TaskGateEngine:
    """Core engine implementing TaskGate operations."""

    def __init__(
        self,
        session: AsyncSession,
        audit: AuditRecorder,
        query_builder: Optional[TaskQueryBuilder] = None,
    ):
        self.session = session
        self.audit = audit
        self.tasks = TaskRepository(session)
        self.users = UserRepository(session)
        self.tenants = TenantRepository(session)
        self.audit_logs = AuditLogRepository(session)
        self.query_builder = query_builder or TaskQueryBuilder()

    # =========================================================================
    # Task Operations
    # =========================================================================

    async def create_task(self, ctx: RequestContext, draft: TaskDraft) -> Task:
        """Create a task owned by the caller's tenant."""
        now = utc_now()
        draft = validate_draft(draft.model_copy(update={"due_date": to_utc(draft.due_date)}), now)

        if draft.assigned_to_id is not None:
            assignee = await self._get_user_or_raise(ctx, draft.assigned_to_id)
            state_machine.ensure_assignable(draft.status, assignee.active)

        task = await self.tasks.create(
            tenant_id=ctx.tenant_id,
            created_by_id=ctx.user_id,
            draft=draft,
            completed_at=state_machine.completed_at_for(draft.status, None, now),
        )
        logger.info(f"Task {task.id} created in tenant {ctx.tenant_id} by user {ctx.user_id}")
        self.audit.record(ctx, AuditAction.TASK_CREATED, TASK_ENTITY, task.id, f"Created task: {task.title}")
        return task

    async def get_task(self, ctx: RequestContext, task_id: int) -> Task:
        return await self._get_task_or_raise(ctx, task_id)

    async def update_task(self, ctx: RequestContext, task_id: int, draft: TaskDraft) -> Task:
        """Full update. A status change goes through the state machine.

        A missing ``assigned_to_id`` unassigns the task. The assignment rule is
        applied against the resulting status whenever the assignee changes.
        """
        now = utc_now()
        task = await self._get_task_or_raise(ctx, task_id)
        draft = validate_draft(draft.model_copy(update={"due_date": to_utc(draft.due_date)}), now)

        if draft.status != task.status:
            state_machine.transition(task.status, draft.status)

        if draft.assigned_to_id is not None and draft.assigned_to_id != task.assigned_to_id:
            assignee = await self._get_user_or_raise(ctx, draft.assigned_to_id)
            state_machine.ensure_assignable(draft.status, assignee.active)

        updated = task.model_copy(
            update={
                "title": draft.title,
                "description": draft.description,
                "status": draft.status,
                "priority": draft.priority,
                "due_date": draft.due_date,
                "tags": draft.tags,
                "assigned_to_id": draft.assigned_to_id,
                "completed_at": state_machine.completed_at_for(
                    draft.status, task.completed_at, now
                ),
            }
        )
        saved = await self._save_or_raise(updated)
        logger.info(f"Task {task_id} updated in tenant {ctx.tenant_id}")
        self.audit.record(ctx, AuditAction.TASK_UPDATED, TASK_ENTITY, task_id, f"Updated task: {saved.title}")
        return saved

    async def delete_task(self, ctx: RequestContext, task_id: int) -> None:
        """Soft delete; the row stays for audit but disappears from every query."""
        task = await self._get_task_or_raise(ctx, task_id)
        await self.tasks.soft_delete(ctx.tenant_id, task.id)
        logger.info(f"Task {task_id} deleted in tenant {ctx.tenant_id}")
        self.audit.record(ctx, AuditAction.TASK_DELETED, TASK_ENTITY, task_id, f"Deleted task: {task.title}")

    async def list_tasks(self, ctx: RequestContext, spec: FilterSpec) -> TaskPage:
        plan = self.query_builder.build(spec, ctx.tenant_id, utc_now())
        items, total = await self.tasks.find(plan)
        return TaskPage(items=items, page=plan.page, size=plan.size, total=total)

    async def list_my_tasks(self, ctx: RequestContext, spec: FilterSpec) -> TaskPage:
        """Tasks assigned to the caller; overrides any assignee filter."""
        return await self.list_tasks(ctx, spec.model_copy(update={"assigned_to_id": ctx.user_id}))

    async def list_created_by_me(self, ctx: RequestContext, spec: FilterSpec) -> TaskPage:
        """Tasks created by the caller; overrides any creator filter."""
        return await self.list_tasks(ctx, spec.model_copy(update={"created_by_id": ctx.user_id}))

    async def assign_task(self, ctx: RequestContext, task_id: int, user_id: int) -> Task:
        """Assign a task to a user of the same tenant.

        Checked in order: task exists, task is open, user exists in the
        tenant, user is active.
        """
        task = await self._get_task_or_raise(ctx, task_id)
        state_machine.ensure_open(task.status)

        assignee = await self._get_user_or_raise(ctx, user_id)
        state_machine.ensure_assignable(task.status, assignee.active)

        saved = await self._save_or_raise(task.model_copy(update={"assigned_to_id": assignee.id}))
        logger.info(f"Task {task_id} assigned to user {user_id} in tenant {ctx.tenant_id}")
        self.audit.record(
            ctx, AuditAction.TASK_ASSIGNED, TASK_ENTITY, task_id, f"Assigned to user {user_id}"
        )
        return saved

    async def unassign_task(self, ctx: RequestContext, task_id: int) -> Task:
        """Clear the assignee. Allowed in every status."""
        task = await self._get_task_or_raise(ctx, task_id)
        saved = await self._save_or_raise(task.model_copy(update={"assigned_to_id": None}))
        logger.info(f"Task {task_id} unassigned in tenant {ctx.tenant_id}")
        self.audit.record(ctx, AuditAction.TASK_UNASSIGNED, TASK_ENTITY, task_id, "Unassigned")
        return saved

    async def change_status(self, ctx: RequestContext, task_id: int, status: TaskStatus) -> Task:
        task = await self._get_task_or_raise(ctx, task_id)
        previous = task.status
        saved = await self._save_or_raise(state_machine.apply(task, status, utc_now()))
        logger.info(
            f"Task {task_id} status {previous.value} -> {status.value} in tenant {ctx.tenant_id}"
        )
        self.audit.record(
            ctx,
            AuditAction.TASK_STATUS_CHANGED,
            TASK_ENTITY,
            task_id,
            f"Status changed from {previous.value} to {status.value}",
        )
        return saved

    # =========================================================================
    # User Operations
    # =========================================================================

    async def list_users(
        self,
        ctx: RequestContext,
        page: Optional[int] = None,
        size: Optional[int] = None,
    ) -> UserPage:
        page, size = self.query_builder.paging(page, size)
        items, total = await self.users.list(ctx.tenant_id, offset=page * size, limit=size)
        return UserPage(items=items, page=page, size=size, total=total)

    async def search_users(
        self,
        ctx: RequestContext,
        query: str,
        page: Optional[int] = None,
        size: Optional[int] = None,
    ) -> UserPage:
        """Case-insensitive match on first name, last name or email."""
        if not query or not query.strip():
            raise ValidationFailure("Search query is required", field="query")
        page, size = self.query_builder.paging(page, size)
        items, total = await self.users.list(
            ctx.tenant_id, query=query.strip(), offset=page * size, limit=size
        )
        return UserPage(items=items, page=page, size=size, total=total)

    async def get_user(self, ctx: RequestContext, user_id: int) -> UserProfile:
        return await self._get_user_or_raise(ctx, user_id)

    async def update_current_user(
        self,
        ctx: RequestContext,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> UserProfile:
        """Update the caller's own profile. Blank fields are left unchanged."""
        await self._get_user_or_raise(ctx, ctx.user_id)
        values = {}
        if first_name is not None and first_name.strip():
            values["first_name"] = validate_name(first_name, "firstName")
        if last_name is not None and last_name.strip():
            values["last_name"] = validate_name(last_name, "lastName")
        if email is not None and email.strip():
            values["email"] = validate_email(email)
            if await self.users.email_taken(ctx.tenant_id, values["email"], ctx.user_id):
                raise ConflictError("Email is already taken")

        user = await self.users.update_fields(ctx.tenant_id, ctx.user_id, **values)
        logger.info(
            f"User {ctx.user_id} updated profile fields {sorted(values)} in tenant {ctx.tenant_id}"
        )
        if values:
            self.audit.record(
                ctx,
                AuditAction.PROFILE_UPDATED,
                USER_ENTITY,
                ctx.user_id,
                f"Updated: {', '.join(sorted(values))}",
            )
        return user

    async def change_password(
        self,
        ctx: RequestContext,
        current_password: str,
        new_password: str,
        confirm_password: str,
    ) -> None:
        """Change the caller's password after verifying the current one."""
        if new_password != confirm_password:
            raise ValidationFailure(
                "New password and confirmation do not match", field="confirmPassword"
            )
        row = await self.users.get_row(ctx.tenant_id, ctx.user_id)
        if row is None:
            raise NotFound(USER_ENTITY, ctx.user_id)
        if not verify_password(current_password or "", row.password_hash):
            raise ValidationFailure("Current password is incorrect", field="currentPassword")
        validate_password(new_password)

        await self.users.update_fields(
            ctx.tenant_id, ctx.user_id, password_hash=hash_password(new_password)
        )
        logger.info(f"User {ctx.user_id} changed password in tenant {ctx.tenant_id}")
        self.audit.record(ctx, AuditAction.PASSWORD_CHANGED, USER_ENTITY, ctx.user_id)

    async def activate_user(self, ctx: RequestContext, user_id: int) -> UserProfile:
        require_admin(ctx.principal)
        await self._get_user_or_raise(ctx, user_id)
        user = await self.users.update_fields(ctx.tenant_id, user_id, is_active=True)
        logger.info(f"User {user_id} activated in tenant {ctx.tenant_id}")
        self.audit.record(ctx, AuditAction.USER_ACTIVATED, USER_ENTITY, user_id)
        return user

    async def deactivate_user(self, ctx: RequestContext, user_id: int) -> UserProfile:
        require_admin(ctx.principal)
        await self._get_user_or_raise(ctx, user_id)
        if user_id == ctx.user_id:
            raise ValidationFailure("Cannot deactivate your own account")
        user = await self.users.update_fields(ctx.tenant_id, user_id, is_active=False)
        logger.info(f"User {user_id} deactivated in tenant {ctx.tenant_id}")
        self.audit.record(ctx, AuditAction.USER_DEACTIVATED, USER_ENTITY, user_id)
        return user

    async def delete_user(self, ctx: RequestContext, user_id: int) -> None:
        require_admin(ctx.principal)
        await self._get_user_or_raise(ctx, user_id)
        if user_id == ctx.user_id:
            raise ValidationFailure("Cannot delete your own account")
        await self.users.soft_delete(ctx.tenant_id, user_id)
        logger.info(f"User {user_id} deleted in tenant {ctx.tenant_id}")
        self.audit.record(ctx, AuditAction.USER_DELETED, USER_ENTITY, user_id)

    async def update_user_roles(
        self,
        ctx: RequestContext,
        user_id: int,
        roles: Iterable[RoleName | str],
    ) -> UserProfile:
        """Replace the user's role set. At least one role is required."""
        require_admin(ctx.principal)
        names = sorted({self._role_name(role) for role in roles})
        if not names:
            raise ValidationFailure("At least one role is required", field="roles")
        await self._get_user_or_raise(ctx, user_id)
        user = await self.users.update_fields(ctx.tenant_id, user_id, roles=names)
        logger.info(f"User {user_id} roles set to {names} in tenant {ctx.tenant_id}")
        self.audit.record(
            ctx, AuditAction.USER_ROLES_UPDATED, USER_ENTITY, user_id, f"Roles: {', '.join(names)}"
        )
        return user

    # =========================================================================
    # Tenant & Audit Operations
    # =========================================================================

    async def deactivate_tenant(self, ctx: RequestContext) -> Tenant:
        """Deactivate the caller's organization. Tenants are never deleted."""
        require_admin(ctx.principal)
        tenant = await self.tenants.set_active(ctx.tenant_id, False)
        if tenant is None:
            raise NotFound(TENANT_ENTITY, ctx.tenant_id)
        logger.info(f"Tenant {ctx.tenant_id} deactivated by user {ctx.user_id}")
        self.audit.record(
            ctx, AuditAction.TENANT_DEACTIVATED, TENANT_ENTITY, ctx.tenant_id, f"Deactivated {tenant.slug}"
        )
        return tenant

    async def list_audit_logs(
        self,
        ctx: RequestContext,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        page: Optional[int] = None,
        size: Optional[int] = None,
    ) -> AuditPage:
        """Tenant audit trail, newest first. ADMIN only."""
        require_admin(ctx.principal)
        page, size = self.query_builder.paging(page, size)
        items, total = await self.audit_logs.list(
            ctx.tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            action=action,
            offset=page * size,
            limit=size,
        )
        return AuditPage(items=items, page=page, size=size, total=total)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_task_or_raise(self, ctx: RequestContext, task_id: int) -> Task:
        task = await self.tasks.get(ctx.tenant_id, task_id)
        if task is None:
            raise NotFound(TASK_ENTITY, task_id)
        return task

    async def _get_user_or_raise(self, ctx: RequestContext, user_id: int) -> UserProfile:
        user = await self.users.get(ctx.tenant_id, user_id)
        if user is None:
            raise NotFound(USER_ENTITY, user_id)
        return user

    async def _save_or_raise(self, task: Task) -> Task:
        saved = await self.tasks.save(task)
        if saved is None:
            raise NotFound(TASK_ENTITY, task.id)
        return saved

    @staticmethod
    def _role_name(role: RoleName | str) -> str:
        try:
            return RoleName(role.upper() if isinstance(role, str) else role).value
        except ValueError:
            raise ValidationFailure(f"Unknown role: {role}", field="roles")
