"""Best-effort asynchronous audit recording.

Audit writes run off the request's critical path on their own session.
Ordering relative to the audited mutation is not guaranteed, and a write
in flight when the process dies is lost (at-most-once).
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskgate.db.repositories import AuditLogRepository
from taskgate.models.enums import AuditAction
from taskgate.utils.time import utc_now

if TYPE_CHECKING:
    from taskgate.auth.context import RequestContext

logger = logging.getLogger("taskgate.audit")


@dataclass(frozen=True)
class AuditRecord:
    """Audit entry captured synchronously at the call site."""

    tenant_id: Optional[int]
    user_id: Optional[int]
    action: str
    entity_type: str
    entity_id: Optional[int]
    details: Optional[str]
    ip_address: Optional[str]
    timestamp: datetime


class AuditRecorder:
    """Schedules audit writes; failures are logged and never propagate."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(
        self,
        ctx: Optional["RequestContext"],
        action: AuditAction | str,
        entity_type: str,
        entity_id: Optional[int] = None,
        details: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> None:
        """Record an action performed within ``ctx``.

        Tenant, user and client address are read from the explicit context
        before dispatch, never from ambient request state.
        """
        self.record_for(
            tenant_id=ctx.tenant_id if ctx else None,
            user_id=ctx.user_id if ctx else None,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            ip=ip if ip is not None else (ctx.client_ip if ctx else None),
        )

    def record_for(
        self,
        tenant_id: Optional[int],
        user_id: Optional[int],
        action: AuditAction | str,
        entity_type: str,
        entity_id: Optional[int] = None,
        details: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> None:
        """Record an action for an explicit tenant (login, registration)."""
        entry = AuditRecord(
            tenant_id=tenant_id,
            user_id=user_id,
            action=action.value if isinstance(action, AuditAction) else action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            ip_address=ip,
            timestamp=utc_now(),
        )
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            logger.warning(f"Audit log dispatch failed for {entry.action}: {e}")
            return
        task = loop.create_task(self._write(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, entry: AuditRecord) -> None:
        if entry.tenant_id is None:
            logger.warning(
                f"Tenant context not available, skipping audit log for {entry.action}"
            )
            return
        try:
            async with self._session_factory() as session:
                await AuditLogRepository(session).append(
                    tenant_id=entry.tenant_id,
                    user_id=entry.user_id,
                    action=entry.action,
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    details=entry.details,
                    ip_address=entry.ip_address,
                    timestamp=entry.timestamp,
                )
                await session.commit()
            logger.debug(
                f"Audit log: {entry.action} {entry.entity_type} {entry.entity_id} "
                f"by user {entry.user_id} in tenant {entry.tenant_id}"
            )
        except Exception as e:
            logger.warning(f"Failed to write audit log for {entry.action}: {e}")

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding audit writes (shutdown, tests)."""
        if not self._pending:
            return
        pending = list(self._pending)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} audit writes still pending after drain")
