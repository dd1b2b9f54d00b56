"""Registration, login and token refresh."""

import logging
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.audit.recorder import AuditRecorder
from taskgate.auth.passwords import hash_password
from taskgate.auth.provider import AuthenticationProvider, Credentials
from taskgate.auth.token import TokenClaims, TokenService
from taskgate.db.repositories import TenantRepository, UserRepository
from taskgate.engine.errors import (
    AuthenticationFailure,
    AuthFailureReason,
    ConflictError,
    TokenValidationError,
    ValidationFailure,
)
from taskgate.engine.validation import (
    slugify,
    validate_email,
    validate_name,
    validate_password,
)
from taskgate.models import AuditAction, Principal, RoleName, Tenant, UserProfile
from taskgate.utils.time import utc_now

logger = logging.getLogger(__name__)


class AuthResult(BaseModel):
    """Tokens issued by a successful authentication."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: Optional[UserProfile] = None
    tenant: Optional[Tenant] = None


class AuthService:
    """Account entry points. The only operations that run without a bearer token."""

    def __init__(self, session: AsyncSession, tokens: TokenService, audit: AuditRecorder):
        self.session = session
        self.tokens = tokens
        self.audit = audit
        self.tenants = TenantRepository(session)
        self.users = UserRepository(session)
        self.provider = AuthenticationProvider(session)

    async def register(
        self,
        organization_name: str,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        ip: Optional[str] = None,
    ) -> AuthResult:
        """Create an organization and its first user, who becomes ADMIN."""
        name = validate_name(organization_name, "organizationName")
        email = validate_email(email)
        password = validate_password(password)
        first_name = validate_name(first_name, "firstName")
        last_name = validate_name(last_name, "lastName")

        if await self.tenants.name_exists(name):
            raise ConflictError("Organization name already exists")

        try:
            tenant = await self.tenants.create(name=name, slug=await self._unique_slug(name))
            user = await self.users.create(
                tenant_id=tenant.id,
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                roles=[RoleName.ADMIN.value],
            )
            # Audit rows reference the tenant, so it must be visible to other sessions
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.info(f"Registration conflict for organization {name!r}: {e.orig}")
            raise ConflictError("Organization name already exists")

        logger.info(f"Tenant {tenant.id} ({tenant.slug}) registered with admin user {user.id}")
        self.audit.record_for(
            tenant.id,
            user.id,
            AuditAction.TENANT_REGISTERED,
            "Tenant",
            tenant.id,
            f"Registered organization {tenant.name}",
            ip=ip,
        )
        return self._issue(Principal.from_profile(user), user=user, tenant=tenant)

    async def login(
        self,
        tenant_slug: str,
        email: str,
        password: str,
        ip: Optional[str] = None,
    ) -> AuthResult:
        """Authenticate by organization slug, email and password.

        Unknown or inactive organizations fail exactly like bad credentials.
        """
        tenant = await self.tenants.get_by_slug((tenant_slug or "").strip().lower())
        if tenant is None or not tenant.active:
            logger.info(f"Login rejected for tenant slug {tenant_slug!r}: unknown or inactive")
            raise AuthenticationFailure(AuthFailureReason.NOT_FOUND)

        principal = await self.provider.authenticate(
            Credentials(email=(email or "").strip(), tenant_id=tenant.id, password=password or "")
        )
        user = await self.users.update_fields(tenant.id, principal.user_id, last_login=utc_now())
        logger.info(f"User {principal.user_id} logged in to tenant {tenant.id}")
        self.audit.record_for(
            tenant.id, principal.user_id, AuditAction.LOGIN, "User", principal.user_id, ip=ip
        )
        return self._issue(principal, user=user, tenant=tenant)

    async def refresh(self, refresh_token: str) -> AuthResult:
        """Exchange a refresh token for a new access token.

        The user is reloaded so that deactivation and role changes take
        effect at the next refresh. The refresh token itself is returned
        unchanged.
        """
        claims = self.tokens.validate(refresh_token)
        if not claims.is_refresh:
            logger.info("Refresh rejected: access token presented")
            raise TokenValidationError(AuthFailureReason.INVALID)

        user = await self._active_account(claims)
        return AuthResult(
            access_token=self.tokens.issue_access_token(Principal.from_profile(user)),
            refresh_token=refresh_token,
            expires_in=self.tokens.access_ttl_seconds,
            user=user,
        )

    async def load_principal(self, claims: TokenClaims) -> Principal:
        """Principal for a validated access token, reloaded from the store.

        A user who was deactivated or deleted, or whose organization was
        deactivated, is refused even though the token has not expired. Roles
        come from the stored user rather than the token.
        """
        return Principal.from_profile(await self._active_account(claims))

    async def current_user(self, principal: Principal) -> UserProfile:
        """Profile of the authenticated caller."""
        user = await self.users.get(principal.tenant_id, principal.user_id)
        if user is None:
            raise AuthenticationFailure(AuthFailureReason.NOT_FOUND, "Unauthorized")
        return user

    async def _unique_slug(self, name: str) -> str:
        base = slugify(name)
        slug = base
        counter = 1
        while await self.tenants.slug_exists(slug):
            slug = f"{base}-{counter}"
            counter += 1
            if counter > 1000:
                raise ValidationFailure("Could not derive a unique slug", field="organizationName")
        return slug

    async def _active_account(self, claims: TokenClaims) -> UserProfile:
        tenant = await self.tenants.get(claims.tenant_id)
        user = await self.users.get(claims.tenant_id, claims.user_id)
        if tenant is None or not tenant.active or user is None or not user.active:
            logger.info(f"Token rejected for user {claims.user_id}: account unavailable")
            raise AuthenticationFailure(AuthFailureReason.NOT_FOUND, "Unauthorized")
        return user

    def _issue(
        self,
        principal: Principal,
        user: Optional[UserProfile] = None,
        tenant: Optional[Tenant] = None,
    ) -> AuthResult:
        return AuthResult(
            access_token=self.tokens.issue_access_token(principal),
            refresh_token=self.tokens.issue_refresh_token(principal),
            expires_in=self.tokens.access_ttl_seconds,
            user=user,
            tenant=tenant,
        )
