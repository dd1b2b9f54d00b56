"""
Task operations: lifecycle, assignment, tenant isolation and filtering.
"""

from datetime import timedelta

import pytest

from taskgate.engine.errors import InvalidStateTransition, NotFound, ValidationFailure
from taskgate.models import FilterSpec, TaskDraft, TaskPriority, TaskStatus
from taskgate.utils.time import utc_now


@pytest.fixture
async def acme(seed):
    tenant = await seed.tenant("Acme Corp")
    admin = await seed.user(tenant, "admin@acme.test", roles=("ADMIN",))
    member = await seed.user(tenant, "member@acme.test", first_name="Mia", last_name="Member")
    return tenant, admin, member


@pytest.fixture
async def globex(seed):
    tenant = await seed.tenant("Globex")
    admin = await seed.user(tenant, "admin@globex.test", roles=("ADMIN",))
    return tenant, admin


async def test_create_task_defaults(engine, acme, ctx_for):
    tenant, admin, _ = acme

    task = await engine.create_task(ctx_for(admin), TaskDraft(title="  Quarterly report  "))

    assert task.tenant_id == tenant.id
    assert task.created_by_id == admin.id
    assert task.title == "Quarterly report"
    assert task.status == TaskStatus.TODO
    assert task.priority == TaskPriority.MEDIUM
    assert task.completed_at is None
    assert task.deleted_at is None


async def test_create_completed_task_stamps_completed_at(engine, acme, ctx_for):
    _, admin, _ = acme

    task = await engine.create_task(
        ctx_for(admin), TaskDraft(title="Already done", status=TaskStatus.COMPLETED)
    )

    assert task.completed_at is not None


async def test_create_with_past_due_date_rejected(engine, acme, ctx_for):
    _, admin, _ = acme

    with pytest.raises(ValidationFailure) as exc_info:
        await engine.create_task(
            ctx_for(admin), TaskDraft(title="Late", due_date=utc_now() - timedelta(days=3))
        )

    assert exc_info.value.field == "dueDate"


async def test_status_lifecycle(engine, acme, ctx_for):
    """TODO -> IN_PROGRESS -> COMPLETED, then CANCELLED is refused."""
    _, admin, _ = acme
    ctx = ctx_for(admin)
    task = await engine.create_task(ctx, TaskDraft(title="Ship release"))

    task = await engine.change_status(ctx, task.id, TaskStatus.IN_PROGRESS)
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.completed_at is None

    task = await engine.change_status(ctx, task.id, TaskStatus.COMPLETED)
    assert task.status == TaskStatus.COMPLETED
    assert task.completed_at is not None

    with pytest.raises(InvalidStateTransition) as exc_info:
        await engine.change_status(ctx, task.id, TaskStatus.CANCELLED)
    assert "Valid transitions: TODO, IN_PROGRESS, IN_REVIEW" in exc_info.value.message

    reopened = await engine.change_status(ctx, task.id, TaskStatus.TODO)
    assert reopened.completed_at is None


async def test_self_transition_rejected(engine, acme, ctx_for):
    _, admin, _ = acme
    task = await engine.create_task(ctx_for(admin), TaskDraft(title="Stay put"))

    with pytest.raises(InvalidStateTransition):
        await engine.change_status(ctx_for(admin), task.id, TaskStatus.TODO)


async def test_update_task_goes_through_state_machine(engine, acme, ctx_for):
    _, admin, _ = acme
    ctx = ctx_for(admin)
    task = await engine.create_task(ctx, TaskDraft(title="Draft", status=TaskStatus.COMPLETED))

    with pytest.raises(InvalidStateTransition):
        await engine.update_task(
            ctx, task.id, TaskDraft(title="Draft", status=TaskStatus.CANCELLED)
        )

    updated = await engine.update_task(
        ctx,
        task.id,
        TaskDraft(
            title="Draft v2",
            status=TaskStatus.COMPLETED,
            priority=TaskPriority.HIGH,
            tags="docs, q1",
        ),
    )
    assert updated.title == "Draft v2"
    assert updated.priority == TaskPriority.HIGH
    assert updated.tags == "docs,q1"
    assert updated.completed_at == task.completed_at


async def test_update_without_assignee_unassigns(engine, acme, ctx_for):
    _, admin, member = acme
    ctx = ctx_for(admin)
    task = await engine.create_task(ctx, TaskDraft(title="Handover", assigned_to_id=member.id))
    assert task.assigned_to_id == member.id

    updated = await engine.update_task(ctx, task.id, TaskDraft(title="Handover"))

    assert updated.assigned_to_id is None


async def test_assign_and_unassign(engine, acme, ctx_for):
    _, admin, member = acme
    ctx = ctx_for(admin)
    task = await engine.create_task(ctx, TaskDraft(title="Review PR"))

    assigned = await engine.assign_task(ctx, task.id, member.id)
    assert assigned.assigned_to_id == member.id

    unassigned = await engine.unassign_task(ctx, task.id)
    assert unassigned.assigned_to_id is None


async def test_assign_inactive_user_rejected(engine, seed, acme, ctx_for):
    tenant, admin, _ = acme
    inactive = await seed.user(tenant, "gone@acme.test", active=False)
    task = await engine.create_task(ctx_for(admin), TaskDraft(title="Review PR"))

    with pytest.raises(ValidationFailure) as exc_info:
        await engine.assign_task(ctx_for(admin), task.id, inactive.id)

    assert exc_info.value.message == "Cannot assign task to inactive user"


async def test_assign_closed_task_rejected(engine, acme, ctx_for):
    _, admin, member = acme
    ctx = ctx_for(admin)
    task = await engine.create_task(ctx, TaskDraft(title="Old news"))
    await engine.change_status(ctx, task.id, TaskStatus.CANCELLED)

    with pytest.raises(ValidationFailure) as exc_info:
        await engine.assign_task(ctx, task.id, member.id)

    assert exc_info.value.message == "Cannot assign task in CANCELLED status"


async def test_unassign_closed_task_allowed(engine, acme, ctx_for):
    _, admin, member = acme
    ctx = ctx_for(admin)
    task = await engine.create_task(ctx, TaskDraft(title="Wrap up", assigned_to_id=member.id))
    await engine.change_status(ctx, task.id, TaskStatus.COMPLETED)

    unassigned = await engine.unassign_task(ctx, task.id)

    assert unassigned.assigned_to_id is None
    assert unassigned.status == TaskStatus.COMPLETED


async def test_create_for_inactive_assignee_rejected(engine, seed, acme, ctx_for):
    tenant, admin, _ = acme
    inactive = await seed.user(tenant, "gone@acme.test", active=False)

    with pytest.raises(ValidationFailure):
        await engine.create_task(
            ctx_for(admin), TaskDraft(title="Doomed", assigned_to_id=inactive.id)
        )


async def test_cross_tenant_task_is_not_found(engine, acme, globex, ctx_for):
    """Another tenant's task looks exactly like a missing one."""
    _, acme_admin, _ = acme
    _, globex_admin = globex
    task = await engine.create_task(ctx_for(acme_admin), TaskDraft(title="Acme secret"))

    foreign = ctx_for(globex_admin)
    with pytest.raises(NotFound) as foreign_exc:
        await engine.get_task(foreign, task.id)
    with pytest.raises(NotFound) as missing_exc:
        await engine.get_task(foreign, task.id + 1000)

    assert foreign_exc.value.message == f"Task not found with id: {task.id}"
    assert missing_exc.value.message == f"Task not found with id: {task.id + 1000}"

    for operation in (
        engine.change_status(foreign, task.id, TaskStatus.IN_PROGRESS),
        engine.update_task(foreign, task.id, TaskDraft(title="Hijack")),
        engine.delete_task(foreign, task.id),
        engine.unassign_task(foreign, task.id),
    ):
        with pytest.raises(NotFound):
            await operation

    still_there = await engine.get_task(ctx_for(acme_admin), task.id)
    assert still_there.title == "Acme secret"
    assert still_there.status == TaskStatus.TODO


async def test_assign_to_other_tenant_user_is_not_found(engine, acme, globex, ctx_for):
    _, acme_admin, _ = acme
    _, globex_admin = globex
    task = await engine.create_task(ctx_for(acme_admin), TaskDraft(title="Internal"))

    with pytest.raises(NotFound) as exc_info:
        await engine.assign_task(ctx_for(acme_admin), task.id, globex_admin.id)

    assert exc_info.value.entity == "User"


async def test_deleted_task_disappears(engine, acme, ctx_for):
    _, admin, _ = acme
    ctx = ctx_for(admin)
    task = await engine.create_task(ctx, TaskDraft(title="Temporary"))

    await engine.delete_task(ctx, task.id)

    with pytest.raises(NotFound):
        await engine.get_task(ctx, task.id)
    with pytest.raises(NotFound):
        await engine.delete_task(ctx, task.id)
    page = await engine.list_tasks(ctx, FilterSpec())
    assert page.total == 0


async def test_list_is_tenant_scoped(engine, acme, globex, ctx_for):
    _, acme_admin, _ = acme
    _, globex_admin = globex
    await engine.create_task(ctx_for(acme_admin), TaskDraft(title="Acme one"))
    await engine.create_task(ctx_for(acme_admin), TaskDraft(title="Acme two"))
    await engine.create_task(ctx_for(globex_admin), TaskDraft(title="Globex one"))

    acme_page = await engine.list_tasks(ctx_for(acme_admin), FilterSpec())
    globex_page = await engine.list_tasks(ctx_for(globex_admin), FilterSpec())

    assert acme_page.total == 2
    assert {t.title for t in acme_page.items} == {"Acme one", "Acme two"}
    assert [t.title for t in globex_page.items] == ["Globex one"]


async def test_filters(engine, acme, ctx_for):
    _, admin, member = acme
    ctx = ctx_for(admin)
    soon = utc_now() + timedelta(days=2)
    later = utc_now() + timedelta(days=20)

    await engine.create_task(
        ctx,
        TaskDraft(
            title="Fix login bug",
            description="Users see 100% CPU",
            priority=TaskPriority.URGENT,
            due_date=soon,
            tags="backend,auth",
            assigned_to_id=member.id,
        ),
    )
    await engine.create_task(
        ctx, TaskDraft(title="Write docs", priority=TaskPriority.LOW, due_date=later, tags="docs")
    )
    done = await engine.create_task(ctx, TaskDraft(title="Plan sprint"))
    await engine.change_status(ctx, done.id, TaskStatus.COMPLETED)

    async def titles(**kwargs) -> list[str]:
        page = await engine.list_tasks(ctx, FilterSpec(sort_by="title", sort_direction="asc", **kwargs))
        return [t.title for t in page.items]

    assert await titles(search="LOGIN") == ["Fix login bug"]
    assert await titles(search="100%") == ["Fix login bug"]
    assert await titles(search="%") == ["Fix login bug"]
    assert await titles(priorities=[TaskPriority.LOW, TaskPriority.URGENT]) == [
        "Fix login bug",
        "Write docs",
    ]
    assert await titles(assigned_to_id=member.id) == ["Fix login bug"]
    assert await titles(tags="DOCS") == ["Write docs"]
    assert await titles(completed=True) == ["Plan sprint"]
    assert await titles(completed=False) == ["Fix login bug", "Write docs"]
    assert await titles(statuses=[TaskStatus.TODO]) == ["Fix login bug", "Write docs"]
    assert await titles(due_date_from=utc_now(), due_date_to=utc_now() + timedelta(days=5)) == [
        "Fix login bug"
    ]


async def test_overdue_filter(engine, session, acme, ctx_for):
    """Overdue means past due and not completed."""
    from sqlalchemy import update

    from taskgate.db.tables import TaskTable

    tenant, admin, _ = acme
    ctx = ctx_for(admin)
    late = await engine.create_task(ctx, TaskDraft(title="Late task", due_date=utc_now()))
    finished = await engine.create_task(ctx, TaskDraft(title="Late but done", due_date=utc_now()))
    await engine.change_status(ctx, finished.id, TaskStatus.COMPLETED)
    await engine.create_task(ctx, TaskDraft(title="No due date"))

    past = utc_now() - timedelta(days=3)
    await session.execute(
        update(TaskTable)
        .where(TaskTable.tenant_id == tenant.id, TaskTable.id.in_([late.id, finished.id]))
        .values(due_date=past)
    )

    page = await engine.list_tasks(ctx, FilterSpec(overdue=True))

    assert [t.id for t in page.items] == [late.id]


async def test_paging_and_sorting(engine, acme, ctx_for):
    _, admin, _ = acme
    ctx = ctx_for(admin)
    for index in range(5):
        await engine.create_task(ctx, TaskDraft(title=f"Task {index}"))

    first = await engine.list_tasks(ctx, FilterSpec(size=2, sort_by="title", sort_direction="asc"))
    last = await engine.list_tasks(
        ctx, FilterSpec(page=2, size=2, sort_by="title", sort_direction="asc")
    )

    assert first.total == 5
    assert first.total_pages == 3
    assert [t.title for t in first.items] == ["Task 0", "Task 1"]
    assert [t.title for t in last.items] == ["Task 4"]


async def test_my_tasks_and_created_by_me(engine, acme, ctx_for):
    _, admin, member = acme
    await engine.create_task(ctx_for(admin), TaskDraft(title="For member", assigned_to_id=member.id))
    await engine.create_task(ctx_for(member), TaskDraft(title="By member"))

    mine = await engine.list_my_tasks(ctx_for(member), FilterSpec(assigned_to_id=admin.id))
    created = await engine.list_created_by_me(ctx_for(member), FilterSpec())

    assert [t.title for t in mine.items] == ["For member"]
    assert [t.title for t in created.items] == ["By member"]
