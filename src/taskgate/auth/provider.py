"""Password authentication against a tenant-scoped user lookup."""

import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.auth.passwords import verify_password
from taskgate.db.repositories import UserRepository
from taskgate.engine.errors import AuthenticationFailure, AuthFailureReason
from taskgate.models.principal import Principal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    """Login credentials for one tenant."""

    email: str
    tenant_id: int
    password: str = field(repr=False)

    @classmethod
    def from_identifier(cls, identifier: str, password: str) -> "Credentials":
        """Parse the legacy ``email:tenantId`` compound identifier."""
        parts = (identifier or "").split(":")
        if len(parts) != 2 or not parts[0]:
            raise AuthenticationFailure(AuthFailureReason.INVALID_FORMAT)
        email, raw_tenant = parts
        if not (raw_tenant.isascii() and raw_tenant.isdigit()):
            raise AuthenticationFailure(AuthFailureReason.INVALID_FORMAT)
        return cls(email=email, tenant_id=int(raw_tenant), password=password)


class AuthenticationProvider:
    """Verifies credentials and builds a Principal."""

    def __init__(self, session: AsyncSession):
        self.users = UserRepository(session)

    async def authenticate(self, credentials: Credentials) -> Principal:
        """Return the authenticated principal.

        Raises:
            AuthenticationFailure: reason NOT_FOUND or BAD_CREDENTIALS.
        """
        user = await self.users.find_active_by_email(credentials.tenant_id, credentials.email)
        if user is None:
            logger.info(f"Authentication failed for tenant {credentials.tenant_id}: user not found")
            raise AuthenticationFailure(AuthFailureReason.NOT_FOUND)

        if not verify_password(credentials.password, user.password_hash):
            logger.info(f"Authentication failed for user {user.id}: bad credentials")
            raise AuthenticationFailure(AuthFailureReason.BAD_CREDENTIALS)

        return Principal.build(
            user_id=user.id,
            tenant_id=user.tenant_id,
            email=user.email,
            roles=user.roles or [],
            active=bool(user.is_active),
        )

    async def authenticate_identifier(self, identifier: str, password: str) -> Principal:
        """Authenticate with the compound ``email:tenantId`` identifier."""
        return await self.authenticate(Credentials.from_identifier(identifier, password))
