"""TaskGate authentication module."""

from taskgate.auth.models import User
from taskgate.auth.passwords import hash_password, verify_password
from taskgate.auth.token import TokenClaims, TokenService

__all__ = [
    "User",
    "TokenClaims",
    "TokenService",
    "hash_password",
    "verify_password",
]
