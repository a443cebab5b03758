"""
prizepool/database.py
Database configuration
"""
import os
import logging
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from dotenv import load_dotenv

# Import Base from orm.base to avoid circular imports
from prizepool.orm.base import Base
import prizepool.orm  # ensures all models are registered

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./prizepool.db")

if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")


def make_engine(database_url: str, **overrides):
    """
    Build an async engine with pool settings for the given dialect.

    Background workers call this with their own URL so they never share
    the web process's pool or event loop.
    """
    if "sqlite" in database_url.lower():
        options = dict(
            echo=False,
            future=True,
            pool_pre_ping=True,
            connect_args={
                "timeout": 30.0,   # SQLite busy timeout in seconds
            },
        )
    else:
        options = dict(
            echo=False,
            future=True,
            pool_pre_ping=True,
            pool_size=20,           # Base pool size
            max_overflow=30,        # Additional connections under load
            pool_timeout=30,        # Wait up to 30s for connection
            pool_recycle=3600,      # Recycle connections after 1 hour
        )
    if overrides.get("poolclass") is not None:
        # sizing arguments only apply to QueuePool
        for key in ("pool_size", "max_overflow", "pool_timeout"):
            options.pop(key, None)
    options.update(overrides)
    return create_async_engine(database_url, **options)


def make_sessionmaker(bind):
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = make_engine(DATABASE_URL)

AsyncSessionLocal = make_sessionmaker(engine)


async def get_db():
    """Dependency for getting async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create tables that do not exist yet."""
    logger.info("Initializing database...")

    try:
        logger.info(f"Database dialect: {engine.url.get_backend_name()}")
        if engine.url.get_backend_name() == "sqlite":
            logger.warning("Running on SQLite, JSONB downgraded to JSON.")

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("✓ Database initialization complete")

    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise


async def close_db():
    """Close database connection"""
    await engine.dispose()
    logger.info("Database connection closed")
