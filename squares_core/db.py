from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from squares_core.models.schemas import Base


def create_engine(url: str) -> AsyncEngine:
    """Create the async engine for the pool store.

    Postgres gets a connection pool sized for the scheduler plus API traffic;
    sqlite (local runs and tests) uses the driver defaults.
    """
    if url.startswith("sqlite"):
        return create_async_engine(url=url, echo=False)
    return create_async_engine(url, pool_size=20, max_overflow=20)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        autocommit=False,
        class_=AsyncSession,
        autoflush=True,
        bind=engine,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create tables if not exists"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
