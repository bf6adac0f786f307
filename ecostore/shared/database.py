"""
Relational store: async SQLAlchemy engine, session factory and declarative base.

Every mutating operation runs in one session transaction; handlers receive
their session through the ``get_session`` dependency.
"""

from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ecostore.shared.utils import settings


class Base(DeclarativeBase):
    pass


def get_engine(url: str = settings.DATABASE_URL, **kwargs) -> AsyncEngine:
    return create_async_engine(url, **kwargs)


engine = get_engine()
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create missing tables. Model modules must be imported first."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping(session: AsyncSession) -> bool:
    try:
        await session.execute(text("SELECT 1"))
    except Exception:
        return False
    return True
