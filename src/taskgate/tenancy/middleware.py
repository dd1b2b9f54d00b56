"""Tenant resolution middleware.

Pure ASGI so the tenant scope wraps the whole downstream call, including
exception handlers, and is released on every exit path.
"""

import logging
from typing import Optional

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from taskgate.tenancy.context import TenantContextStore, tenant_context

logger = logging.getLogger(__name__)


class InvalidTenantHeader(ValueError):
    """Tenant header present but not a decimal integer."""


def parse_tenant_header(raw: Optional[str]) -> Optional[int]:
    """Parse the tenant header value; ``None``/blank means no tenant."""
    if raw is None or not raw.strip():
        return None
    value = raw.strip()
    if not (value.isascii() and value.isdigit()):
        raise InvalidTenantHeader(value)
    return int(value)


class TenantResolutionMiddleware:
    """Populate the tenant context from a request header for one request."""

    def __init__(
        self,
        app: ASGIApp,
        header_name: str = "X-Tenant-ID",
        store: TenantContextStore = tenant_context,
    ):
        self.app = app
        self.header_name = header_name.lower().encode("latin-1")
        self.store = store

    def _read_header(self, scope: Scope) -> Optional[str]:
        for key, value in scope.get("headers", []):
            if key.lower() == self.header_name:
                return value.decode("latin-1")
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        try:
            tenant_id = parse_tenant_header(self._read_header(scope))
        except InvalidTenantHeader as exc:
            logger.info(f"Rejected request with invalid tenant header: {exc}")
            response = JSONResponse(
                status_code=400,
                content={"detail": "Invalid tenant ID format", "code": "INVALID_TENANT"},
            )
            await response(scope, receive, send)
            return

        scope.setdefault("state", {})["tenant_id"] = tenant_id
        with self.store.scope(tenant_id):
            await self.app(scope, receive, send)
