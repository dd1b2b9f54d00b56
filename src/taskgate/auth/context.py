"""Request context threaded explicitly through every engine call."""

from dataclasses import dataclass
from typing import Optional

from taskgate.engine.errors import AuthorizationFailure, TenantContextMissing
from taskgate.models.principal import Principal
from taskgate.tenancy.context import TenantContextStore, tenant_context


@dataclass(frozen=True)
class RequestContext:
    """Tenant, caller and client address for the current request."""

    tenant_id: int
    principal: Principal
    client_ip: Optional[str] = None

    @property
    def user_id(self) -> int:
        return self.principal.user_id

    @classmethod
    def resolve(
        cls,
        principal: Principal,
        client_ip: Optional[str] = None,
        store: TenantContextStore = tenant_context,
    ) -> "RequestContext":
        """Snapshot the tenant store into an explicit value.

        The token's tenant must match the tenant resolved for the request.
        """
        tenant_id = store.get()
        if tenant_id is None:
            raise TenantContextMissing()
        if principal.tenant_id != tenant_id:
            raise AuthorizationFailure("Token does not belong to this tenant")
        return cls(tenant_id=tenant_id, principal=principal, client_ip=client_ip)
