"""
Database session configuration.

This module handles engine creation for the SQLite location store using
SQLAlchemy with async support (aiosqlite driver).
"""

from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from crataegus.app.core.config import settings

# Create declarative base for models
Base = declarative_base()


def database_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{Path(path)}"


def create_store_engine(
    path: Path,
    echo: bool = settings.db_echo,
    busy_timeout_seconds: float = settings.db_busy_timeout_seconds,
) -> AsyncEngine:
    """
    Create an async engine for the SQLite file at `path`.

    The engine is lazy: nothing touches the file until the first connection,
    so an unreachable path surfaces on first use rather than here.
    """
    engine = create_async_engine(
        database_url(path),
        echo=echo,
        connect_args={"timeout": busy_timeout_seconds},
        future=True,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """WAL lets readers and VACUUM INTO run alongside the single writer."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_seconds * 1000)}")
        cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
