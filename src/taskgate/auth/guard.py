"""Role checks invoked explicitly at the top of protected operations."""

from taskgate.engine.errors import AuthorizationFailure
from taskgate.models.enums import RoleName
from taskgate.models.principal import Principal


def require_role(principal: Principal, role: RoleName) -> None:
    """Raise AuthorizationFailure unless ``principal`` is active and holds ``role``."""
    if not principal.active or not principal.has_role(role):
        raise AuthorizationFailure(f"{role.value} role required")


def require_admin(principal: Principal) -> None:
    require_role(principal, RoleName.ADMIN)
