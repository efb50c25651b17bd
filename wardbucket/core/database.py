"""
Database connection and session management

One session is one transaction. Request handlers get theirs from ``get_db``;
scripts use ``session_scope``.
"""
from contextlib import asynccontextmanager
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from typing import AsyncGenerator
import logging

from wardbucket.core.config import settings

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    options = {
        "echo": settings.DATABASE_ECHO and settings.ENVIRONMENT == "development",
        "pool_pre_ping": True,
    }
    # SQLite runs without a connection pool to size
    if make_url(url).get_backend_name() != "sqlite":
        options["pool_size"] = settings.DATABASE_POOL_SIZE
        options["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)

Base = declarative_base()


async def init_db(create_tables: bool = False) -> None:
    """Check the connection; optionally create missing tables."""
    async with engine.begin() as conn:
        if create_tables:
            import wardbucket.models  # noqa: F401
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database session

    Every geo mutation made while handling a request commits together or
    rolls back together.

    Usage in FastAPI:
        @app.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope(session_factory: async_sessionmaker = async_session_maker):
    """
    Transactional scope for scripts outside the request cycle.

    Usage:
        async with session_scope() as db:
            await geo_tree_service.add(db, ...)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
