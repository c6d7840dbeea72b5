"""
Async engine and session factory.

Services own their transactions (they commit inside the entity lock), so
the request-scoped session only has to roll back whatever a failed request
left open.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gigflow.core.config import get_settings

settings = get_settings()


def build_engine(url: str, **kwargs):
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_size", settings.DB_POOL_SIZE)
        kwargs.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
        kwargs.setdefault("pool_timeout", settings.DB_POOL_TIMEOUT)
        kwargs.setdefault("pool_recycle", settings.DB_POOL_RECYCLE)
        kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, echo=settings.DEBUG, **kwargs)


engine = build_engine(settings.DATABASE_URL)

SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
