from __future__ import annotations

from pathlib import Path
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from usage_sync.core.config.settings import get_settings

_SQLITE_PREFIX = "sqlite+aiosqlite:///"

DATABASE_URL = get_settings().database_url
REPLICA_DATABASE_URL = get_settings().database_replica_url


def _engine_kwargs(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        return {"echo": False, "poolclass": NullPool}
    settings = get_settings()
    return {
        "echo": False,
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": settings.database_pool_timeout_seconds,
        "pool_pre_ping": True,
    }


engine = create_async_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
# without a configured replica, replica reads are served by the primary
replica_engine: AsyncEngine = (
    create_async_engine(REPLICA_DATABASE_URL, **_engine_kwargs(REPLICA_DATABASE_URL)) if REPLICA_DATABASE_URL else engine
)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
ReplicaSessionLocal = async_sessionmaker(replica_engine, expire_on_commit=False, class_=AsyncSession)


def _ensure_sqlite_dir(url: str) -> None:
    if not url.startswith(_SQLITE_PREFIX):
        return
    path = url[len(_SQLITE_PREFIX) :]
    if path == ":memory:":
        return
    Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            if session.in_transaction():
                await session.rollback()


async def get_replica_session() -> AsyncIterator[AsyncSession]:
    async with ReplicaSessionLocal() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


async def init_db() -> None:
    from usage_sync.db.models import Base

    _ensure_sqlite_dir(DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    if replica_engine is not engine:
        await replica_engine.dispose()
    await engine.dispose()
