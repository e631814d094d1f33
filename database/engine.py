import logging

from sqlalchemy import BigInteger, Integer, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# SQLite only autoincrements INTEGER PRIMARY KEY columns
IdType = BigInteger().with_variant(Integer(), "sqlite")


# Base class for declarative models
class Base(DeclarativeBase):
    pass


class Database:
    """
    Owns the async engine and session factory for one process.

    Built by the composition root from settings; nothing connects at import
    time.
    """

    def __init__(self, url: str, echo: bool = False):
        engine_kwargs: dict = {"echo": echo}
        if url.startswith("sqlite") and (":memory:" in url or url.endswith("://")):
            # One shared connection so every session sees the same in-memory db
            engine_kwargs.update(
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        logger.info(f"Database engine created for {self.engine.url.render_as_string(hide_password=True)}")

    async def init_db(self) -> None:
        """Create tables for every imported model."""
        # Register models on Base.metadata before create_all
        import database.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        """Readiness probe."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def close(self) -> None:
        """Close database engine and connections."""
        await self.engine.dispose()
