"""Tenant-scoped task query builder.

Compiles a FilterSpec into a SQLAlchemy predicate plus a sort and paging
plan. The tenant clause and the soft-delete clause are always present;
every optional clause is AND-ed onto them.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, TypeVar

from sqlalchemy import and_, func, or_, select
from sqlalchemy.sql.elements import ColumnElement

from taskgate.config import settings
from taskgate.db.tables import TaskTable
from taskgate.engine.errors import ValidationFailure
from taskgate.models.enums import TaskStatus
from taskgate.models.filters import FilterSpec
from taskgate.utils.time import to_utc

SORT_FIELDS: dict[str, Any] = {
    "createdAt": TaskTable.created_at,
    "updatedAt": TaskTable.updated_at,
    "dueDate": TaskTable.due_date,
    "priority": TaskTable.priority,
    "status": TaskTable.status,
    "title": TaskTable.title,
}

# snake_case spellings accepted as well
SORT_ALIASES = {
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "due_date": "dueDate",
}

SORT_DIRECTIONS = ("asc", "desc")

E = TypeVar("E", bound=Enum)


@dataclass(frozen=True)
class QueryPlan:
    """Compiled task query: predicate, ordering and one page window."""

    where: ColumnElement[bool]
    order_by: tuple[Any, ...]
    page: int
    size: int

    @property
    def offset(self) -> int:
        return self.page * self.size

    @property
    def limit(self) -> int:
        return self.size

    def statement(self):
        return (
            select(TaskTable)
            .where(self.where)
            .order_by(*self.order_by)
            .offset(self.offset)
            .limit(self.limit)
        )

    def count_statement(self):
        return select(func.count()).select_from(TaskTable).where(self.where)


class TaskQueryBuilder:
    """Builds QueryPlans. Holds no per-request state."""

    def __init__(
        self,
        default_size: int = settings.default_page_size,
        max_size: int = settings.max_page_size,
    ):
        self.default_size = default_size
        self.max_size = max_size

    def build(self, spec: FilterSpec, tenant_id: int, now: datetime) -> QueryPlan:
        """Compile ``spec`` for ``tenant_id``.

        Raises:
            ValidationFailure: bad paging, unknown sort, inverted due range
                or contradictory status constraints.
        """
        page, size = self.paging(spec.page, spec.size)
        clauses = [
            TaskTable.tenant_id == tenant_id,
            TaskTable.deleted_at.is_(None),
        ]
        clauses.extend(self._filters(spec, now))
        return QueryPlan(
            where=and_(*clauses),
            order_by=self._ordering(spec),
            page=page,
            size=size,
        )

    def paging(self, page: Optional[int], size: Optional[int]) -> tuple[int, int]:
        """Zero-indexed page and capped size, falling back to configured defaults."""
        page = 0 if page is None else page
        size = self.default_size if size is None else size
        if page < 0:
            raise ValidationFailure("Page index must not be negative", field="page")
        if size < 1:
            raise ValidationFailure("Page size must be at least 1", field="size")
        return page, min(size, self.max_size)

    def _filters(self, spec: FilterSpec, now: datetime) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = []

        search = (spec.search or "").strip().lower()
        if search:
            clauses.append(
                or_(
                    func.lower(TaskTable.title).contains(search, autoescape=True),
                    func.lower(TaskTable.description).contains(search, autoescape=True),
                )
            )

        clauses.extend(self._status_clauses(spec))

        if spec.priorities:
            clauses.append(TaskTable.priority.in_(list(dict.fromkeys(spec.priorities))))

        if spec.assigned_to_id is not None:
            clauses.append(TaskTable.assigned_to_id == spec.assigned_to_id)
        if spec.created_by_id is not None:
            clauses.append(TaskTable.created_by_id == spec.created_by_id)

        due_from = to_utc(spec.due_date_from)
        due_to = to_utc(spec.due_date_to)
        if due_from is not None and due_to is not None and due_from > due_to:
            raise ValidationFailure(
                "dueDateFrom must not be after dueDateTo", field="dueDateFrom"
            )
        if due_from is not None:
            clauses.append(TaskTable.due_date >= due_from)
        if due_to is not None:
            clauses.append(TaskTable.due_date <= due_to)

        tags = (spec.tags or "").strip().lower()
        if tags:
            clauses.append(func.lower(TaskTable.tags).contains(tags, autoescape=True))

        if spec.overdue:
            # NULL due dates never compare true
            clauses.append(TaskTable.due_date < to_utc(now))

        return clauses

    def _status_clauses(self, spec: FilterSpec) -> list[ColumnElement[bool]]:
        """Status set, ``completed`` and ``overdue`` are AND-ed together.

        A combination that can match no status is rejected rather than
        silently returning an empty page.
        """
        excludes_completed = spec.completed is False or bool(spec.overdue)
        requires_completed = spec.completed is True

        if requires_completed and spec.overdue:
            raise ValidationFailure(
                "overdue and completed filters cannot both be true", field="overdue"
            )

        if spec.statuses:
            allowed = list(dict.fromkeys(spec.statuses))
            if requires_completed:
                allowed = [s for s in allowed if s == TaskStatus.COMPLETED]
            if excludes_completed:
                allowed = [s for s in allowed if s != TaskStatus.COMPLETED]
            if not allowed:
                raise ValidationFailure(
                    "Status filter contradicts completed/overdue filter", field="statuses"
                )
            return [TaskTable.status.in_(allowed)]

        if requires_completed:
            return [TaskTable.status == TaskStatus.COMPLETED]
        if excludes_completed:
            return [TaskTable.status != TaskStatus.COMPLETED]
        return []

    def _ordering(self, spec: FilterSpec) -> tuple[Any, ...]:
        field = SORT_ALIASES.get(spec.sort_by, spec.sort_by) if spec.sort_by else "createdAt"
        column = SORT_FIELDS.get(field)
        if column is None:
            raise ValidationFailure(
                f"Unsupported sort field: {spec.sort_by}. "
                f"Allowed: {', '.join(SORT_FIELDS)}",
                field="sortBy",
            )

        direction = (spec.sort_direction or "desc").lower()
        if direction not in SORT_DIRECTIONS:
            raise ValidationFailure(
                f"Unsupported sort direction: {spec.sort_direction}", field="sortDirection"
            )

        if direction == "asc":
            return (column.asc(), TaskTable.id.asc())
        return (column.desc(), TaskTable.id.desc())


def parse_enum_list(enum_cls: type[E], values: Optional[list[str]], field: str) -> list[E]:
    """Parse enum names case-insensitively; unknown names are a ValidationFailure.

    Accepts repeated values and comma-separated values alike.
    """
    result: list[E] = []
    for raw in values or []:
        for value in raw.split(","):
            if not value.strip():
                continue
            try:
                result.append(enum_cls(value.strip().upper()))
            except ValueError:
                raise ValidationFailure(f"Unknown value for {field}: {value}", field=field)
    return result
