"""
Authentication Models for TaskGate

User accounts are scoped to a tenant: the same email may exist once per
organization.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB

from taskgate.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Tenant member able to log in."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    email = Column(String(150), nullable=False)
    password_hash = Column(String(255), nullable=False)  # bcrypt
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    # Role names, e.g. ["ADMIN"]
    roles = Column(JSON().with_variant(JSONB, "postgresql"), default=list, nullable=False)

    # Account status
    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("email", "tenant_id", name="uq_users_email_tenant"),
        Index("idx_users_tenant_active", "tenant_id", "deleted_at"),
    )

    def __repr__(self):
        return f"<User {self.email} tenant={self.tenant_id}>"
