"""Signed token issuing and validation.

One shared HMAC secret signs tokens for every tenant. Tokens are not
partitioned by key; tenant isolation relies on the ``tenantId`` claim being
compared with the request's tenant downstream.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError
from pydantic import BaseModel, ConfigDict, ValidationError

from taskgate.config import Settings, settings
from taskgate.engine.errors import AuthFailureReason, TokenValidationError
from taskgate.models.principal import Principal
from taskgate.utils.time import utc_now

logger = logging.getLogger(__name__)

REFRESH_TOKEN_TYPE = "refresh"
ACCESS_TOKEN_TYPE = "access"

_DECODE_OPTIONS = {
    "verify_aud": False,
    "require_exp": True,
    "require_iat": True,
    "require_sub": True,
}


class TokenClaims(BaseModel):
    """Claims of a token that passed signature and expiry checks."""

    model_config = ConfigDict(frozen=True)

    subject: str
    user_id: int
    tenant_id: int
    email: Optional[str] = None
    roles: tuple[str, ...] = ()
    token_type: str = ACCESS_TOKEN_TYPE
    issued_at: datetime
    expires_at: datetime

    @property
    def is_refresh(self) -> bool:
        return self.token_type == REFRESH_TOKEN_TYPE


def _looks_like_jwt(token: str) -> bool:
    return token.count(".") == 2


def _int_claim(payload: dict[str, Any], name: str) -> int:
    value = payload.get(name)
    if isinstance(value, bool) or not isinstance(value, int):
        raise TokenValidationError(AuthFailureReason.INVALID)
    return value


class TokenService:
    """Issues and validates access and refresh tokens. Stateless and thread-safe."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=60),
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        if not secret:
            raise ValueError("Token signing secret is not configured")
        self._secret = secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "TokenService":
        return cls(
            secret=config.jwt_secret or "",
            algorithm=config.jwt_algorithm,
            access_ttl=timedelta(minutes=config.access_token_ttl_minutes),
            refresh_ttl=timedelta(days=config.refresh_token_ttl_days),
        )

    @property
    def access_ttl_seconds(self) -> int:
        return int(self.access_ttl.total_seconds())

    def _encode(self, claims: dict[str, Any], now: datetime, ttl: timedelta) -> str:
        claims["iat"] = int(now.timestamp())
        claims["exp"] = int((now + ttl).timestamp())
        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def issue_access_token(self, principal: Principal, now: datetime | None = None) -> str:
        """Short-lived token carrying identity, tenant and role names."""
        claims = {
            "sub": principal.email,
            "userId": principal.user_id,
            "tenantId": principal.tenant_id,
            "email": principal.email,
            "roles": sorted(principal.roles),
        }
        return self._encode(claims, now or utc_now(), self.access_ttl)

    def issue_refresh_token(self, principal: Principal, now: datetime | None = None) -> str:
        """Long-lived token for access-token renewal. Carries no roles."""
        claims = {
            "sub": principal.email,
            "userId": principal.user_id,
            "tenantId": principal.tenant_id,
            "type": REFRESH_TOKEN_TYPE,
        }
        return self._encode(claims, now or utc_now(), self.refresh_ttl)

    def validate(self, token: str | None) -> TokenClaims:
        """Verify signature and expiry and return the claims.

        Raises:
            TokenValidationError: reason MALFORMED, EXPIRED,
                UNSUPPORTED_SIGNATURE or INVALID.
        """
        try:
            return self._validate(token)
        except TokenValidationError as exc:
            logger.info(f"Token rejected: {exc.reason.value}")
            raise

    def _validate(self, token: str | None) -> TokenClaims:
        if not isinstance(token, str) or not token.strip() or not _looks_like_jwt(token):
            raise TokenValidationError(AuthFailureReason.MALFORMED)

        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise TokenValidationError(AuthFailureReason.MALFORMED)

        if header.get("alg") != self.algorithm:
            raise TokenValidationError(AuthFailureReason.UNSUPPORTED_SIGNATURE)

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options=_DECODE_OPTIONS,
            )
        except ExpiredSignatureError:
            raise TokenValidationError(AuthFailureReason.EXPIRED)
        except JWTClaimsError:
            raise TokenValidationError(AuthFailureReason.INVALID)
        except JWTError:
            raise TokenValidationError(AuthFailureReason.INVALID)

        roles = payload.get("roles") or []
        if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
            raise TokenValidationError(AuthFailureReason.INVALID)

        try:
            return TokenClaims(
                subject=payload["sub"],
                user_id=_int_claim(payload, "userId"),
                tenant_id=_int_claim(payload, "tenantId"),
                email=payload.get("email"),
                roles=tuple(roles),
                token_type=payload.get("type") or ACCESS_TOKEN_TYPE,
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError, ValidationError):
            raise TokenValidationError(AuthFailureReason.INVALID)

    # Claim readers validate first and fail exactly like validate()

    def user_id(self, token: str) -> int:
        return self.validate(token).user_id

    def tenant_id(self, token: str) -> int:
        return self.validate(token).tenant_id

    def username(self, token: str) -> str:
        return self.validate(token).subject
