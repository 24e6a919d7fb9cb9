"""SQL connection management for the audit store (SQLModel with asyncpg or aiosqlite)."""

import ssl
from typing import AsyncGenerator, Optional
from urllib.parse import urlparse, urlunparse

from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from hardmoney_audit.config.settings import settings
from hardmoney_audit.config.logger import app_logger

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


def get_db_url(db_url: Optional[str] = None) -> str:
    """Get database URL for SQLAlchemy with an async driver."""
    db_url = db_url or settings.effective_database_url
    if not db_url:
        raise ValueError("DATABASE_URL not configured")
    # SQLite or other non-Postgres URLs are returned as-is
    if db_url.startswith("sqlite"):
        return db_url

    # For Postgres URLs, strip sslmode (asyncpg handles SSL via connect_args)
    parsed = urlparse(db_url)
    query_parts = [p for p in parsed.query.split("&") if not p.startswith("sslmode=") and p]
    query = "&".join(query_parts)
    clean_url = urlunparse(
        (
            parsed.scheme,
            parsed.netloc,
            parsed.path,
            parsed.params,
            query,
            parsed.fragment,
        )
    )

    if clean_url.startswith("postgresql://"):
        clean_url = clean_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif clean_url.startswith("postgres://"):
        clean_url = clean_url.replace("postgres://", "postgresql+asyncpg://", 1)

    return clean_url


async def init_db(db_url: Optional[str] = None) -> None:
    """Initialize the database engine and create the audit table."""
    global _engine, _session_maker

    if _engine is not None:
        return

    url = get_db_url(db_url)
    app_logger.info("Initializing audit database connection")

    engine_kwargs = {"echo": False}
    if url.startswith("postgresql+asyncpg://"):
        # SSL context for Supabase / Postgres (no certificate verification)
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        engine_kwargs.update(pool_size=20, max_overflow=0, connect_args={"ssl": ssl_context})

    engine = create_async_engine(url, **engine_kwargs)

    # Register the table with SQLModel metadata
    from hardmoney_audit.models import audit_event  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
    except Exception as e:
        app_logger.error(f"Failed to initialize audit database: {e}")
        await engine.dispose()
        raise

    _engine = engine
    _session_maker = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    app_logger.info("Audit database initialized successfully")


async def close_db() -> None:
    """Close the database engine."""
    global _engine, _session_maker

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_maker = None
        app_logger.info("Audit database connection closed")


@asynccontextmanager
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Async context manager yielding a session, initializing the engine on first use."""
    if not _session_maker:
        await init_db()

    async with _session_maker() as session:
        yield session


async def ping_database() -> tuple[bool, str]:
    """Run a lightweight health query against the database."""
    if not _engine or not _session_maker:
        return False, "Database not initialized"

    try:
        from sqlalchemy import text
        async with _session_maker() as session:
            result = await session.execute(text("SELECT 1"))
            row = result.scalar()
            if row == 1:
                return True, "Database connection healthy"
            return False, f"Unexpected response: {row}"
    except Exception as e:
        return False, f"Database query failed: {str(e)}"
