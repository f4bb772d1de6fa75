import logging
from contextlib import asynccontextmanager
from pathlib import Path
from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy import event

from magenta_epg.config import settings
from magenta_epg.models import Base

logger = logging.getLogger(__name__)

# Engine and session factory - initialized in init_db() during startup
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _create_session_factory(engine):
    """Create async session factory from engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory (initialized in init_db)"""
    global _session_factory
    if _session_factory is None:
        raise RuntimeError("Cache database not initialized. Call init_db() during startup.")
    return _session_factory


async def init_db(database_path: Path | str | None = None) -> None:
    """Initialize cache database schema and engine"""
    global _engine, _session_factory

    if database_path is None:
        database_path = settings.cache_database_path
    Path(database_path).parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Initializing cache database at {database_path}")

    if _engine is not None:
        await _engine.dispose()

    _engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_path}",
        echo=False,
        future=True,
        pool_pre_ping=True,
        connect_args={"timeout": 30, "check_same_thread": False},
    )

    def configure_sqlite(dbapi_conn, _):
        """Configure SQLite connection parameters"""
        cursor = dbapi_conn.cursor()
        # Readers see either the old or the fully committed new payload
        cursor.execute("PRAGMA journal_mode = WAL")
        cursor.execute("PRAGMA synchronous = NORMAL")
        cursor.close()

    event.listen(_engine.sync_engine, "connect", configure_sqlite)

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    _session_factory = _create_session_factory(_engine)

    logger.info("Cache database initialized successfully")


async def close_db() -> None:
    """Close database connections on shutdown"""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        logger.info("Cache database connections closed")
    _engine = None
    _session_factory = None


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Provide an async session wrapped in a transaction (auto commit/rollback)."""
    session_factory = get_session_factory()

    async with session_factory() as session:
        async with session.begin():
            yield session
