"""Async engine and sessions for the inventory database.

Learn: Shop traffic is bursty (a stream raid can mean dozens of buys in a
few seconds) but each request holds a session for one short transaction,
so a small pool with pre-ping is enough. Sessions keep attributes after
commit because routes serialize rows the service just committed.
"""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mxeaez.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per shop request."""
    async with session_factory() as session:
        yield session


async def create_schema() -> None:
    """Create inventory, redemption and presence tables if missing."""
    from mxeaez.db.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
