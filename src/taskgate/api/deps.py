"""API dependencies."""

import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.audit.recorder import AuditRecorder
from taskgate.auth.context import RequestContext
from taskgate.auth.service import AuthService
from taskgate.auth.token import TokenService
from taskgate.config import MIN_PRODUCTION_SECRET_LENGTH, Environment, settings
from taskgate.db.base import async_session_factory
from taskgate.engine.core import TaskGateEngine
from taskgate.engine.errors import AuthenticationFailure, AuthFailureReason, TokenValidationError
from taskgate.models import Principal

logger = logging.getLogger("taskgate.api")

BEARER_PREFIX = "Bearer "

# Audit writes open their own sessions; one recorder per process
audit_recorder = AuditRecorder(async_session_factory)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_token_service() -> TokenService:
    return TokenService.from_settings(settings)


async def get_audit_recorder() -> AuditRecorder:
    return audit_recorder


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


async def get_engine(
    session: AsyncSession = Depends(get_db_session),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> TaskGateEngine:
    return TaskGateEngine(session, audit)


async def get_auth_service(
    session: AsyncSession = Depends(get_db_session),
    tokens: TokenService = Depends(get_token_service),
    audit: AuditRecorder = Depends(get_audit_recorder),
) -> AuthService:
    return AuthService(session, tokens, audit)


async def get_principal(
    authorization: str | None = Header(None),
    tokens: TokenService = Depends(get_token_service),
    auth: AuthService = Depends(get_auth_service),
) -> Principal:
    """
    Authenticate the bearer access token.

    Refresh tokens are rejected here; they are only accepted by the refresh
    exchange. The user and tenant are reloaded on every request, so a
    deactivated account stops working before its token expires.
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationFailure(AuthFailureReason.MALFORMED, "Unauthorized")

    claims = tokens.validate(authorization[len(BEARER_PREFIX):].strip())
    if claims.is_refresh:
        logger.info(f"Refresh token presented as bearer for user {claims.user_id}")
        raise TokenValidationError(AuthFailureReason.INVALID)
    return await auth.load_principal(claims)


async def get_request_context(
    request: Request,
    principal: Principal = Depends(get_principal),
) -> RequestContext:
    """Snapshot tenant, principal and client address for the engine."""
    return RequestContext.resolve(principal, client_ip=client_ip(request))


def validate_auth_config() -> None:
    """
    Validate token signing configuration at startup.

    Raises:
        RuntimeError: If no signing secret is configured
    """
    if not settings.jwt_secret:
        raise RuntimeError(
            "SECURITY ERROR: TASKGATE_JWT_SECRET is not set. "
            "A shared signing secret is required to issue and validate tokens."
        )

    if len(settings.jwt_secret) < MIN_PRODUCTION_SECRET_LENGTH:
        # Staging/production already refuse short secrets in Settings
        logger.warning(
            f"TASKGATE_JWT_SECRET is shorter than {MIN_PRODUCTION_SECRET_LENGTH} characters; "
            f"acceptable only in {Environment.DEVELOPMENT.value}"
        )

    logger.info(
        f"Authentication enabled: {settings.jwt_algorithm} bearer tokens for {settings.env.value}"
    )
