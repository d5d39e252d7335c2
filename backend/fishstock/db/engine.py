"""SQLAlchemy async engine and session factory."""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from fishstock.config import settings


def _build_engine_kwargs(url: str) -> dict:
    """Return engine kwargs appropriate for the dialect of *url*."""
    if url.startswith(("postgresql", "postgres")):
        return {
            "echo": settings.DEBUG,
            "pool_size": settings.FISHSTOCK_DB_POOL_SIZE,
            "max_overflow": settings.FISHSTOCK_DB_MAX_OVERFLOW,
            "pool_timeout": settings.FISHSTOCK_DB_POOL_TIMEOUT,
            "pool_pre_ping": True,   # ensure stale connections are recycled
            "pool_recycle": 1800,    # recycle connections older than 30 min
        }
    # SQLite: one aiosqlite connection per session; connections are never
    # shared between event loops.
    return {
        "echo": settings.DEBUG,
        "poolclass": NullPool,
        "connect_args": {"check_same_thread": False},
    }


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine for *url*, with SQLite pragmas applied on connect."""
    eng = create_async_engine(url, **_build_engine_kwargs(url))

    if url.startswith("sqlite"):
        # WAL lets readers proceed alongside a single writer; busy_timeout makes
        # a second writer wait for the lock instead of failing immediately.
        # The driver's own deferred BEGIN is switched off so that SAVEPOINT
        # always runs inside the session's transaction.
        @event.listens_for(eng.sync_engine, "connect")
        def _set_sqlite_pragmas(dbapi_conn, _conn_rec):  # type: ignore[misc]
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        # IMMEDIATE takes the write lock up front, so a transaction that reads
        # before it writes waits on busy_timeout instead of failing on upgrade.
        @event.listens_for(eng.sync_engine, "begin")
        def _begin_immediate(conn):  # type: ignore[misc]
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return eng


def build_sessionmaker(eng: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.FISHSTOCK_DB_URL)
async_session = build_sessionmaker(engine)


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """FastAPI dependency — yields a session and commits/rollbacks."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
