"""Database engine and session factory."""

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from taskgate.config import settings


class Base(DeclarativeBase):
    """Declarative base for TaskGate tables."""


def _engine_options(database_url: str) -> dict[str, Any]:
    """Pool sizing only applies to server databases."""
    options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if database_url.startswith("postgresql"):
        options.update(pool_size=20, max_overflow=10)
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# Request handlers and audit writes each open their own session
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db() -> None:
    """Create missing tables. Deployed databases are migrated with Alembic."""
    # User lives in the auth package; register it with the metadata first
    import taskgate.auth.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
