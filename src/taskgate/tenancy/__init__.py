"""Tenant context propagation."""

from taskgate.tenancy.context import TenantContextStore, tenant_context
from taskgate.tenancy.middleware import TenantResolutionMiddleware, parse_tenant_header

__all__ = [
    "TenantContextStore",
    "TenantResolutionMiddleware",
    "parse_tenant_header",
    "tenant_context",
]
