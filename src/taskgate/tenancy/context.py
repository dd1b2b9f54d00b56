"""Per-request tenant context.

Backed by a ContextVar, so every asyncio task (one per in-flight request)
and every thread started through the event loop sees its own copy.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from taskgate.engine.errors import TenantContextMissing


class TenantContextStore:
    """Holder of the active tenant identifier for the current request."""

    def __init__(self, name: str = "taskgate_tenant_id"):
        self._var: ContextVar[Optional[int]] = ContextVar(name, default=None)

    def set(self, tenant_id: int) -> None:
        self._var.set(tenant_id)

    def get(self) -> Optional[int]:
        return self._var.get()

    def clear(self) -> None:
        self._var.set(None)

    def require(self) -> int:
        """Return the tenant id or raise when none was resolved."""
        tenant_id = self._var.get()
        if tenant_id is None:
            raise TenantContextMissing()
        return tenant_id

    @contextmanager
    def scope(self, tenant_id: Optional[int]) -> Iterator[Optional[int]]:
        """Bind ``tenant_id`` for the duration of the block.

        The previous value (``None`` at the top of a request) is restored on
        every exit path, including exceptions.
        """
        token = self._var.set(tenant_id)
        try:
            yield tenant_id
        finally:
            self._var.reset(token)


tenant_context = TenantContextStore()
