"""Database repositories for TaskGate entities.

Every tenant-owned lookup takes ``tenant_id`` and applies the soft-delete
filter; there is no method that reads a task or user by id alone.
"""

from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.auth.models import User
from taskgate.db.tables import AuditLogTable, TaskTable, TenantTable
from taskgate.models import (
    AuditEntry,
    Task,
    TaskDraft,
    Tenant,
    UserProfile,
)
from taskgate.utils.time import ensure_utc


class TenantRepository:
    """Repository for tenant operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, name: str, slug: str) -> Tenant:
        now = datetime.now(timezone.utc)
        row = TenantTable(name=name, slug=slug, active=True, created_at=now, updated_at=now)
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get(self, tenant_id: int) -> Tenant | None:
        row = await self.session.get(TenantTable, tenant_id)
        return self._row_to_model(row) if row else None

    async def get_by_slug(self, slug: str) -> Tenant | None:
        result = await self.session.execute(
            select(TenantTable).where(TenantTable.slug == slug)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def name_exists(self, name: str) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(TenantTable).where(
                func.lower(TenantTable.name) == name.lower()
            )
        )
        return result.scalar_one() > 0

    async def slug_exists(self, slug: str) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(TenantTable).where(TenantTable.slug == slug)
        )
        return result.scalar_one() > 0

    async def set_active(self, tenant_id: int, active: bool) -> Tenant | None:
        await self.session.execute(
            update(TenantTable)
            .where(TenantTable.id == tenant_id)
            .values(active=active, updated_at=datetime.now(timezone.utc))
        )
        return await self.get(tenant_id)

    def _row_to_model(self, row: TenantTable) -> Tenant:
        return Tenant(
            id=row.id,
            name=row.name,
            slug=row.slug,
            active=row.active,
            created_at=ensure_utc(row.created_at),
            updated_at=ensure_utc(row.updated_at),
        )


class UserRepository:
    """Repository for tenant-scoped user operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _scoped(self, tenant_id: int):
        return select(User).where(User.tenant_id == tenant_id, User.deleted_at.is_(None))

    async def create(
        self,
        tenant_id: int,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        roles: Iterable[str],
    ) -> UserProfile:
        row = User(
            tenant_id=tenant_id,
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            roles=sorted(set(roles)),
            is_active=True,
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get_row(self, tenant_id: int, user_id: int) -> User | None:
        result = await self.session.execute(self._scoped(tenant_id).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get(self, tenant_id: int, user_id: int) -> UserProfile | None:
        row = await self.get_row(tenant_id, user_id)
        return self._row_to_model(row) if row else None

    async def find_active_by_email(self, tenant_id: int, email: str) -> User | None:
        """Active, non-deleted user for login; returns the ORM row (with hash)."""
        result = await self.session.execute(
            self._scoped(tenant_id).where(
                func.lower(User.email) == email.lower(),
                User.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def email_taken(self, tenant_id: int, email: str, exclude_user_id: int) -> bool:
        """True if another user in the tenant, deleted or not, holds ``email``."""
        result = await self.session.execute(
            select(func.count()).select_from(User).where(
                User.tenant_id == tenant_id,
                func.lower(User.email) == email.lower(),
                User.id != exclude_user_id,
            )
        )
        return result.scalar_one() > 0

    async def list(
        self,
        tenant_id: int,
        query: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[UserProfile], int]:
        statement = self._scoped(tenant_id)
        if query:
            # Wildcards in the query match literally
            needle = query.lower()
            statement = statement.where(
                or_(
                    func.lower(User.first_name).contains(needle, autoescape=True),
                    func.lower(User.last_name).contains(needle, autoescape=True),
                    func.lower(User.email).contains(needle, autoescape=True),
                )
            )

        total = (
            await self.session.execute(
                select(func.count()).select_from(statement.subquery())
            )
        ).scalar_one()

        result = await self.session.execute(
            statement.order_by(User.id.asc()).offset(offset).limit(limit)
        )
        return [self._row_to_model(r) for r in result.scalars().all()], total

    async def update_fields(self, tenant_id: int, user_id: int, **values: Any) -> UserProfile | None:
        values["updated_at"] = datetime.now(timezone.utc)
        await self.session.execute(
            update(User)
            .where(
                User.tenant_id == tenant_id,
                User.id == user_id,
                User.deleted_at.is_(None),
            )
            .values(**values)
        )
        row = await self.get_row(tenant_id, user_id)
        if row is not None:
            await self.session.refresh(row)
        return self._row_to_model(row) if row else None

    async def soft_delete(self, tenant_id: int, user_id: int) -> None:
        now = datetime.now(timezone.utc)
        await self.session.execute(
            update(User)
            .where(User.tenant_id == tenant_id, User.id == user_id, User.deleted_at.is_(None))
            .values(deleted_at=now, is_active=False, updated_at=now)
        )

    def _row_to_model(self, row: User) -> UserProfile:
        return UserProfile(
            id=row.id,
            tenant_id=row.tenant_id,
            email=row.email,
            first_name=row.first_name,
            last_name=row.last_name,
            roles=list(row.roles or []),
            active=bool(row.is_active),
            last_login=ensure_utc(row.last_login),
            created_at=ensure_utc(row.created_at),
        )


class TaskRepository:
    """Repository for task operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        tenant_id: int,
        created_by_id: int,
        draft: TaskDraft,
        completed_at: datetime | None,
    ) -> Task:
        now = datetime.now(timezone.utc)
        task_row = TaskTable(
            tenant_id=tenant_id,
            title=draft.title,
            description=draft.description,
            status=draft.status,
            priority=draft.priority,
            due_date=draft.due_date,
            created_by_id=created_by_id,
            assigned_to_id=draft.assigned_to_id,
            tags=draft.tags,
            completed_at=completed_at,
            created_at=now,
            updated_at=now,
        )
        self.session.add(task_row)
        await self.session.flush()
        return self._row_to_model(task_row)

    async def get(self, tenant_id: int, task_id: int) -> Task | None:
        """Get a live task by ID within a tenant."""
        result = await self.session.execute(
            select(TaskTable).where(
                TaskTable.tenant_id == tenant_id,
                TaskTable.id == task_id,
                TaskTable.deleted_at.is_(None),
            )
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def save(self, task: Task) -> Task:
        """Persist mutable fields of ``task``. tenant_id is part of the key, never a value."""
        await self.session.execute(
            update(TaskTable)
            .where(
                TaskTable.tenant_id == task.tenant_id,
                TaskTable.id == task.id,
                TaskTable.deleted_at.is_(None),
            )
            .values(
                title=task.title,
                description=task.description,
                status=task.status,
                priority=task.priority,
                due_date=task.due_date,
                assigned_to_id=task.assigned_to_id,
                tags=task.tags,
                completed_at=task.completed_at,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return await self._reload(task.tenant_id, task.id)

    async def soft_delete(self, tenant_id: int, task_id: int) -> None:
        now = datetime.now(timezone.utc)
        await self.session.execute(
            update(TaskTable)
            .where(
                TaskTable.tenant_id == tenant_id,
                TaskTable.id == task_id,
                TaskTable.deleted_at.is_(None),
            )
            .values(deleted_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    async def find(self, plan) -> tuple[list[Task], int]:
        """Run a compiled query plan. See ``taskgate.engine.query``."""
        total = (await self.session.execute(plan.count_statement())).scalar_one()
        result = await self.session.execute(plan.statement())
        return [self._row_to_model(r) for r in result.scalars().all()], total

    async def _reload(self, tenant_id: int, task_id: int) -> Task | None:
        result = await self.session.execute(
            select(TaskTable)
            .where(TaskTable.tenant_id == tenant_id, TaskTable.id == task_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    def _row_to_model(self, row: TaskTable) -> Task:
        return Task(
            id=row.id,
            tenant_id=row.tenant_id,
            title=row.title,
            description=row.description,
            status=row.status,
            priority=row.priority,
            due_date=ensure_utc(row.due_date),
            created_by_id=row.created_by_id,
            assigned_to_id=row.assigned_to_id,
            tags=row.tags,
            completed_at=ensure_utc(row.completed_at),
            created_at=ensure_utc(row.created_at),
            updated_at=ensure_utc(row.updated_at),
            deleted_at=ensure_utc(row.deleted_at),
        )


class AuditLogRepository:
    """Append-only audit log storage."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        tenant_id: int,
        user_id: int | None,
        action: str,
        entity_type: str,
        entity_id: int | None,
        details: str | None,
        ip_address: str | None,
        timestamp: datetime,
    ) -> AuditEntry:
        row = AuditLogTable(
            tenant_id=tenant_id,
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            ip_address=ip_address,
            timestamp=timestamp,
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def list(
        self,
        tenant_id: int,
        entity_type: str | None = None,
        entity_id: int | None = None,
        user_id: int | None = None,
        action: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[AuditEntry], int]:
        statement = select(AuditLogTable).where(AuditLogTable.tenant_id == tenant_id)
        if entity_type:
            statement = statement.where(AuditLogTable.entity_type == entity_type)
        if entity_id is not None:
            statement = statement.where(AuditLogTable.entity_id == entity_id)
        if user_id is not None:
            statement = statement.where(AuditLogTable.user_id == user_id)
        if action:
            statement = statement.where(AuditLogTable.action == action)

        total = (
            await self.session.execute(
                select(func.count()).select_from(statement.subquery())
            )
        ).scalar_one()

        result = await self.session.execute(
            statement.order_by(AuditLogTable.timestamp.desc(), AuditLogTable.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return [self._row_to_model(r) for r in result.scalars().all()], total

    def _row_to_model(self, row: AuditLogTable) -> AuditEntry:
        return AuditEntry(
            id=row.id,
            tenant_id=row.tenant_id,
            user_id=row.user_id,
            action=row.action,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            details=row.details,
            ip_address=row.ip_address,
            timestamp=ensure_utc(row.timestamp),
        )
