from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from stockhold.app.core.base import Base
from stockhold.app.core.settings import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    """Async engine for the sql store. Pool sizing applies to server databases only."""
    if not settings.DATABASE_URL:
        raise ValueError("DATABASE_URL is not configured")
    if settings.is_sqlite:
        if ":memory:" in settings.DATABASE_URL:
            # a :memory: database lives and dies with its connection
            return create_async_engine(
                url=settings.DATABASE_URL,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_async_engine(url=settings.DATABASE_URL, echo=False)
    return create_async_engine(
        url=settings.DATABASE_URL,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_timeout=30,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create reservation and inventory tables if they do not exist."""
    import stockhold.app.models.inventory  # noqa: F401 - register with Base.metadata
    import stockhold.app.models.reservation  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
