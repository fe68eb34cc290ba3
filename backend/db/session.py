"""Async engine, session factory and FastAPI session dependency for the identity store."""

import asyncio
import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from core.config import DATABASE_URL
from db.base import Base

logger = logging.getLogger(__name__)

INIT_MAX_ATTEMPTS = 15
INIT_MAX_DELAY = 5.0


def _make_async_url(url: str) -> Optional[str]:
    """Convert a DB URL to the async driver form.

    Returns None if the URL scheme is not supported for async operations.
    """
    scheme, sep, rest = url.partition("://")
    if not sep:
        return None
    if "+" in scheme:
        # Already names an explicit driver
        return url
    if scheme in ("postgis", "postgresql", "postgres"):
        return f"postgresql+psycopg://{rest}"
    if scheme == "sqlite":
        return f"sqlite+aiosqlite://{rest}"
    return None


def build_engine(url: str, **kwargs) -> Optional[AsyncEngine]:
    """Create an AsyncEngine for ``url``, or None when the scheme is unsupported."""
    async_url = _make_async_url(url)
    if async_url is None:
        logger.warning("Unsupported DATABASE_URL scheme; persistence disabled")
        return None
    if async_url.startswith("sqlite") and "poolclass" not in kwargs:
        # aiosqlite connections are bound to the loop that opened them
        kwargs["poolclass"] = NullPool
    return create_async_engine(async_url, echo=False, **kwargs)


def make_session_factory(engine: AsyncEngine) -> sessionmaker:
    """Build an AsyncSession factory bound to ``engine``.

    Objects stay loaded after commit; services commit mid-flow and keep
    returning the rows they just wrote.
    """
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine: Optional[AsyncEngine] = build_engine(DATABASE_URL) if DATABASE_URL else None
AsyncSessionLocal = make_session_factory(engine) if engine is not None else None


async def init_db() -> None:
    """Create the identity tables, waiting for the database to accept connections."""
    if engine is None:
        logger.info("DATABASE_URL not set; skipping table creation")
        return
    # Register every model on Base.metadata before create_all
    import db.models  # noqa: F401

    delay = 1.0
    for attempt in range(1, INIT_MAX_ATTEMPTS + 1):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Identity tables ready")
            return
        except OperationalError as exc:
            if attempt >= INIT_MAX_ATTEMPTS:
                raise
            logger.warning(
                "Database not ready (attempt %s/%s): %s",
                attempt,
                INIT_MAX_ATTEMPTS,
                exc,
            )
            await asyncio.sleep(delay)
            delay = min(delay * 1.5, INIT_MAX_DELAY)


async def dispose_db() -> None:
    if engine is not None:
        await engine.dispose()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped session for dependency injection."""
    if AsyncSessionLocal is None:
        raise RuntimeError(
            "Database session factory is not configured; "
            "set DATABASE_URL (postgresql://... or sqlite:///...)."
        )
    async with AsyncSessionLocal() as session:
        yield session
