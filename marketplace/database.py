"""Database engine and session management."""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from marketplace.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        if ":memory:" in url:
            # One shared connection, otherwise every session sees an empty database
            return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        return {}
    return {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True}


engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a database session."""
    async with AsyncSessionLocal() as session:
        yield session


async def init_db():
    """
    Create all tables.

    Production databases are migrated with Alembic; this is for local
    development and tests.
    """
    import marketplace.models  # noqa: F401  registers every table on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
