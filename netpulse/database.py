"""Database engine, session factory, and table creation."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import NetPulseConfig
from .models.base import Base
from .utils.logging import get_logger

logger = get_logger("netpulse.database")


def create_engine(config: NetPulseConfig) -> AsyncEngine:
    """Create the async database engine for the configured URL."""
    connect_args = {}
    if config.database_url.startswith("sqlite"):
        connect_args["timeout"] = config.db_timeout_seconds
    return create_async_engine(
        config.database_url,
        echo=config.debug,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the async session factory bound to an engine."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_tables_ready")


async def close_engine(engine: AsyncEngine) -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()
