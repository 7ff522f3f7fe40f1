"""
Engine, sessions and the declarative base for the reservation tables.

One session is one unit of work:
- API requests get theirs from `get_db`; it commits when the handler returns.
  Payment and delete routes commit early themselves so QR files are only
  touched once the rows they belong to are durable.
- The expiry sweeper opens a fresh `get_db_session` per reservation, so a
  lock timeout on one row never rolls back the others.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from canchaqr.core.config import settings


def pool_options(environment: str) -> Dict[str, object]:
    """Pool sizing; local runs keep a couple of connections."""
    if environment == "production":
        return {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_recycle": settings.DB_POOL_RECYCLE,
            "pool_pre_ping": True,
        }
    return {"pool_size": 2, "max_overflow": 5, "pool_pre_ping": True}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **pool_options(settings.ENVIRONMENT),
)

# Rows stay readable after commit; routes serialize them after committing.
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request."""
    async with session_scope() as session:
        yield session


def get_db_session():
    """
    Session for work outside a request (sweeper, migrations, scripts).

        async with get_db_session() as db:
            await expire_reservation(db, reservation_id, cutoff)
    """
    return session_scope()
