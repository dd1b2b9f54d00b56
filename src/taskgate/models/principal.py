"""Principal model - the authenticated identity for one request."""

from typing import TYPE_CHECKING, Iterable

from pydantic import BaseModel, ConfigDict, computed_field

from taskgate.models.enums import RoleName

if TYPE_CHECKING:
    from taskgate.models.user import UserProfile

AUTHORITY_PREFIX = "ROLE_"


class Principal(BaseModel):
    """Authenticated user bound to exactly one tenant. Immutable."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    tenant_id: int
    email: str
    roles: frozenset[str] = frozenset()
    active: bool = True

    @computed_field  # type: ignore[misc]
    @property
    def authorities(self) -> tuple[str, ...]:
        return tuple(sorted(AUTHORITY_PREFIX + role for role in self.roles))

    def has_role(self, role: RoleName | str) -> bool:
        name = role.value if isinstance(role, RoleName) else role
        return name in self.roles

    @classmethod
    def build(
        cls,
        user_id: int,
        tenant_id: int,
        email: str,
        roles: Iterable[str],
        active: bool = True,
    ) -> "Principal":
        return cls(
            user_id=user_id,
            tenant_id=tenant_id,
            email=email,
            roles=frozenset(roles),
            active=active,
        )

    @classmethod
    def from_profile(cls, user: "UserProfile") -> "Principal":
        """Build a principal from the stored user, so roles and status are current."""
        return cls.build(
            user_id=user.id,
            tenant_id=user.tenant_id,
            email=user.email,
            roles=user.roles,
            active=user.active,
        )
