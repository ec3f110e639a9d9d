"""
Async SQLAlchemy plumbing: one engine per process, one session per request.
PostgreSQL (psycopg) in deployments, SQLite (aiosqlite) under test.
"""

import logging
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from qrtruck.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # TestClient and asyncio.run() each bring their own event loop
        return {"poolclass": NullPool}
    return {"pool_size": 5, "max_overflow": 10, "pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    **_engine_options(settings.database_url),
)

# Routes return ORM objects after commit, so keep them loaded.
async_session_maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a session that is closed after the response."""
    async with async_session_maker() as session:
        yield session


async def init_db() -> None:
    import qrtruck.models  # noqa: F401  registers the tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Schema ensured on {engine.url.render_as_string(hide_password=True)}")
