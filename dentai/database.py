import os

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from dentai.config import settings


class Base(DeclarativeBase):
    pass


def normalize_url(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def build_engine(url: str) -> AsyncEngine:
    url = normalize_url(url)
    if not url.startswith("sqlite"):
        return create_async_engine(url, echo=False, pool_size=5, max_overflow=10, pool_pre_ping=True)

    engine = create_async_engine(url, echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        # readers keep going while the pipeline commits
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url)
async_session = build_session_factory(engine)


async def create_tables(target: AsyncEngine | None = None):
    target = target or engine
    if target.url.get_backend_name() == "sqlite" and target.url.database not in (None, "", ":memory:"):
        os.makedirs(os.path.dirname(os.path.abspath(target.url.database)), exist_ok=True)
    async with target.begin() as conn:
        from dentai.models import record  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)
