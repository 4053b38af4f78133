"""
Database Infrastructure
=======================

Async engine and session factory for the maintenance request store.

PostgreSQL goes through asyncpg; SQLite URLs (local runs, tests) go
through aiosqlite and get no connection pool settings.
"""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from maintenance_sla.config import settings


class Base(DeclarativeBase):
    """Declarative base shared by all table models."""


_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> tuple[str, dict[str, Any]]:
    options: dict[str, Any] = {"echo": settings.debug}
    if url.startswith("sqlite"):
        return url, options

    options.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )
    # asyncpg takes ssl=, not libpq's sslmode=
    return url.replace("sslmode=", "ssl="), options


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Session factory handed to SQLAlchemyMaintenanceRequestRepository.

    Raises:
        RuntimeError: If init_database() has not run
    """
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the engine and session factory. Called once at startup.

    Args:
        database_url: Overrides settings.database_url
    """
    global _engine, _session_maker

    url, options = _engine_options(database_url or settings.database_url)
    _engine = create_async_engine(url, **options)
    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return _engine


async def close_database() -> None:
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


async def create_tables() -> None:
    """Create the request table if missing. Deployments with migrations skip this."""
    from maintenance_sla.sla.infrastructure import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
