from __future__ import annotations
"""SQLAlchemy 2.0 async database engine and session management.

Strict MySQL 8.0+ dialect in production; the long-text columns degrade to
plain TEXT on other backends so the schema can be created on SQLite in tests.
"""

import logging

from sqlalchemy import Text
from sqlalchemy.dialects.mysql import LONGTEXT
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from storyreel.config import Settings, get_settings

logger = logging.getLogger(__name__)

# LONGTEXT on MySQL, TEXT elsewhere
LongText = Text().with_variant(LONGTEXT(), "mysql")

MYSQL_TABLE_ARGS = {
    "mysql_charset": "utf8mb4",
    "mysql_collate": "utf8mb4_unicode_ci",
}


class Base(DeclarativeBase):
    """Base class for all ORM models.

    Forces utf8mb4 charset to prevent Emoji crashes in MySQL.
    """

    __table_args__ = MYSQL_TABLE_ARGS


SessionFactory = async_sessionmaker[AsyncSession]

_engine: AsyncEngine | None = None
_session_factory: SessionFactory | None = None


def create_engine_for(settings: Settings) -> AsyncEngine:
    """Build an async engine with pool health settings for the configured URL."""
    url = settings.DATABASE_URL
    if url.startswith("mysql"):
        return create_async_engine(
            url,
            echo=settings.DEBUG,
            pool_recycle=3600,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=20,
            connect_args={"connect_timeout": 30},
        )
    return create_async_engine(url, echo=settings.DEBUG)


def make_session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    """Lazy-init the module-level engine from application settings."""
    global _engine
    if _engine is None:
        _engine = create_engine_for(get_settings())
    return _engine


def get_session_factory() -> SessionFactory:
    """Lazy-init the module-level session factory bound to :func:`get_engine`."""
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables defined by Base metadata (development / tests)."""
    import storyreel.models  # noqa: F401  registers the models

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine connection pool.

    Called at application shutdown.
    """
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None
