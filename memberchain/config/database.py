"""
Database configuration.

Async engine and session factory for the ledger tables.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from memberchain.models.base import Base


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create async engine for the given URL.

    SQLite gets a NullPool so every session opens its own connection.

    Args:
        database_url: SQLAlchemy async URL
        echo: Log SQL statements

    Returns:
        AsyncEngine instance
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo, poolclass=NullPool)

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create session maker bound to engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """
    Create ledger tables if they do not exist.

    Intended for development and tests; production schemas are managed
    by the surrounding system's migrations.
    """
    import memberchain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
