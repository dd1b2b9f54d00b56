"""
User administration, tenant deactivation and audit log queries.
"""

import pytest

from taskgate.auth.passwords import verify_password
from taskgate.engine.errors import (
    AuthorizationFailure,
    ConflictError,
    NotFound,
    ValidationFailure,
)
from taskgate.models import AuditAction, TaskDraft


@pytest.fixture
async def acme(seed):
    tenant = await seed.tenant("Acme Corp")
    admin = await seed.user(tenant, "admin@acme.test", roles=("ADMIN",), first_name="Ada")
    member = await seed.user(
        tenant, "member@acme.test", first_name="Mia", last_name="Member"
    )
    return tenant, admin, member


async def test_list_users_is_tenant_scoped(engine, seed, acme, ctx_for):
    _, admin, _ = acme
    other = await seed.tenant("Globex")
    await seed.user(other, "someone@globex.test")

    page = await engine.list_users(ctx_for(admin))

    assert page.total == 2
    assert {u.email for u in page.items} == {"admin@acme.test", "member@acme.test"}


async def test_search_users(engine, acme, ctx_for):
    _, admin, member = acme

    by_name = await engine.search_users(ctx_for(admin), "mia")
    by_email = await engine.search_users(ctx_for(admin), "ADMIN@")

    assert [u.id for u in by_name.items] == [member.id]
    assert [u.id for u in by_email.items] == [admin.id]


async def test_search_requires_query(engine, acme, ctx_for):
    _, admin, _ = acme

    with pytest.raises(ValidationFailure):
        await engine.search_users(ctx_for(admin), "   ")


async def test_user_admin_requires_admin_role(engine, acme, ctx_for):
    _, admin, member = acme
    ctx = ctx_for(member)

    for operation in (
        engine.deactivate_user(ctx, admin.id),
        engine.activate_user(ctx, admin.id),
        engine.delete_user(ctx, admin.id),
        engine.update_user_roles(ctx, admin.id, ["USER"]),
        engine.deactivate_tenant(ctx),
        engine.list_audit_logs(ctx),
    ):
        with pytest.raises(AuthorizationFailure):
            await operation


async def test_deactivate_and_activate_user(engine, acme, ctx_for):
    _, admin, member = acme

    deactivated = await engine.deactivate_user(ctx_for(admin), member.id)
    assert not deactivated.active

    activated = await engine.activate_user(ctx_for(admin), member.id)
    assert activated.active


async def test_admin_cannot_deactivate_or_delete_self(engine, acme, ctx_for):
    _, admin, _ = acme

    with pytest.raises(ValidationFailure) as exc_info:
        await engine.deactivate_user(ctx_for(admin), admin.id)
    assert exc_info.value.message == "Cannot deactivate your own account"

    with pytest.raises(ValidationFailure):
        await engine.delete_user(ctx_for(admin), admin.id)


async def test_deleted_user_disappears(engine, acme, ctx_for):
    _, admin, member = acme

    await engine.delete_user(ctx_for(admin), member.id)

    with pytest.raises(NotFound):
        await engine.get_user(ctx_for(admin), member.id)
    page = await engine.list_users(ctx_for(admin))
    assert [u.id for u in page.items] == [admin.id]


async def test_update_user_roles(engine, acme, ctx_for):
    _, admin, member = acme

    user = await engine.update_user_roles(ctx_for(admin), member.id, ["manager", "USER", "USER"])

    assert user.roles == ["MANAGER", "USER"]


@pytest.mark.parametrize("roles", [[], ["SUPERUSER"]])
async def test_update_user_roles_rejects_bad_input(engine, acme, ctx_for, roles):
    _, admin, member = acme

    with pytest.raises(ValidationFailure) as exc_info:
        await engine.update_user_roles(ctx_for(admin), member.id, roles)

    assert exc_info.value.field == "roles"


async def test_user_admin_cross_tenant_is_not_found(engine, seed, acme, ctx_for):
    _, admin, _ = acme
    other = await seed.tenant("Globex")
    stranger = await seed.user(other, "stranger@globex.test")

    with pytest.raises(NotFound):
        await engine.deactivate_user(ctx_for(admin), stranger.id)
    with pytest.raises(NotFound):
        await engine.get_user(ctx_for(admin), stranger.id)


@pytest.mark.parametrize("query", ["_", "%", "a%n"])
async def test_search_treats_wildcards_literally(engine, acme, ctx_for, query):
    _, admin, _ = acme

    page = await engine.search_users(ctx_for(admin), query)

    assert page.total == 0


async def test_search_matches_literal_underscore(engine, seed, acme, ctx_for):
    tenant, admin, _ = acme
    underscored = await seed.user(tenant, "ops_bot@acme.test")

    page = await engine.search_users(ctx_for(admin), "s_b")

    assert [u.id for u in page.items] == [underscored.id]


# ============================================================================
# Own profile & password
# ============================================================================


async def test_update_current_user(engine, acme, ctx_for):
    _, _, member = acme

    user = await engine.update_current_user(
        ctx_for(member), first_name="  Maria ", last_name="", email="maria@acme.test"
    )

    assert user.first_name == "Maria"
    assert user.last_name == "Member"
    assert user.email == "maria@acme.test"


async def test_update_current_user_rejects_taken_email(engine, acme, ctx_for):
    _, _, member = acme

    with pytest.raises(ConflictError):
        await engine.update_current_user(ctx_for(member), email="ADMIN@acme.test")

    # Keeping one's own address is not a conflict
    user = await engine.update_current_user(ctx_for(member), email="member@acme.test")
    assert user.email == "member@acme.test"


async def test_update_current_user_validates_fields(engine, acme, ctx_for):
    _, _, member = acme

    with pytest.raises(ValidationFailure) as exc_info:
        await engine.update_current_user(ctx_for(member), email="not-an-email")
    assert exc_info.value.field == "email"

    with pytest.raises(ValidationFailure) as exc_info:
        await engine.update_current_user(ctx_for(member), first_name="x" * 101)
    assert exc_info.value.field == "firstName"


async def test_change_password(engine, acme, ctx_for):
    _, _, member = acme

    await engine.change_password(ctx_for(member), "password123", "new-secret-42", "new-secret-42")

    row = await engine.users.get_row(member.tenant_id, member.id)
    assert verify_password("new-secret-42", row.password_hash)
    assert not verify_password("password123", row.password_hash)


async def test_change_password_rejections(engine, acme, ctx_for):
    _, _, member = acme
    ctx = ctx_for(member)

    with pytest.raises(ValidationFailure) as exc_info:
        await engine.change_password(ctx, "password123", "new-secret-42", "new-secret-43")
    assert exc_info.value.field == "confirmPassword"

    with pytest.raises(ValidationFailure) as exc_info:
        await engine.change_password(ctx, "wrong-password", "new-secret-42", "new-secret-42")
    assert exc_info.value.message == "Current password is incorrect"

    with pytest.raises(ValidationFailure) as exc_info:
        await engine.change_password(ctx, "password123", "short", "short")
    assert exc_info.value.field == "password"

    row = await engine.users.get_row(member.tenant_id, member.id)
    assert verify_password("password123", row.password_hash)


async def test_deactivate_tenant(engine, acme, ctx_for):
    tenant, admin, _ = acme

    result = await engine.deactivate_tenant(ctx_for(admin))

    assert result.id == tenant.id
    assert not result.active


async def test_audit_log_written_and_listed(engine, session, recorder, acme, ctx_for):
    """Mutations are audited against the caller's tenant, newest first."""
    tenant, admin, member = acme
    ctx = ctx_for(admin, client_ip="192.0.2.10")
    task = await engine.create_task(ctx, TaskDraft(title="Audited task"))
    await engine.assign_task(ctx, task.id, member.id)

    await session.commit()
    await recorder.drain(timeout=10.0)

    page = await engine.list_audit_logs(ctx)
    assert page.total == 2
    assert [e.action for e in page.items] == [
        AuditAction.TASK_ASSIGNED.value,
        AuditAction.TASK_CREATED.value,
    ]
    created = page.items[1]
    assert created.tenant_id == tenant.id
    assert created.user_id == admin.id
    assert created.entity_type == "Task"
    assert created.entity_id == task.id
    assert created.ip_address == "192.0.2.10"
    assert created.details == "Created task: Audited task"

    by_action = await engine.list_audit_logs(ctx, action=AuditAction.TASK_ASSIGNED.value)
    assert by_action.total == 1
    by_entity = await engine.list_audit_logs(ctx, entity_type="Task", entity_id=task.id)
    assert by_entity.total == 2
