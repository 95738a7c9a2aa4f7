from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from app.config import get_settings

settings = get_settings()


def to_async_url(url: str) -> str:
    """Convert a sync database URL to its async driver variant."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


database_url = to_async_url(settings.database_url)

engine = create_async_engine(database_url, echo=False)


class Base(DeclarativeBase):
    pass


def create_task_db_engine() -> AsyncEngine:
    """
    Build a database engine for one Celery task.

    Each task runs on its own event loop, so pooled connections must not
    outlive it. The caller disposes the engine when the task ends.

    Returns:
        AsyncEngine with NullPool
    """
    return create_async_engine(database_url, echo=False, poolclass=NullPool)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async_session = create_session_factory(engine)


async def init_db():
    # Register all models on Base.metadata before create_all
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
