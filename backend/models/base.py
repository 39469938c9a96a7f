"""SQLAlchemy async engine and session setup for the Supabase Postgres database."""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from config import settings


def engine_options(database_url: str) -> dict:
    """Engine kwargs for the given URL.

    Supabase exposes Postgres through a transaction-mode pooler, which cannot
    keep asyncpg's server-side prepared statements, so their cache is off.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "postgresql":
        return {"echo": False}
    options: dict = {"echo": False, "pool_pre_ping": True}
    if url.get_driver_name() == "asyncpg":
        options["connect_args"] = {"statement_cache_size": 0}
    return options


async_engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))
async_session_factory = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db():
    """FastAPI dependency that yields an async database session."""
    async with async_session_factory() as session:
        yield session
