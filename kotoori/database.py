"""Database engine and session management."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from kotoori.models.base import Base

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection
    from sqlalchemy.pool import ConnectionPoolEntry

    from kotoori.config import Settings

logger = logging.getLogger(__name__)

# Columns added after the first release. Older databases get them via
# ALTER TABLE; every entry must be nullable or carry a default.
_ADDITIVE_COLUMNS: dict[str, tuple[tuple[str, str], ...]] = {
    "tracked_files": (
        ("is_alive", "BOOLEAN NOT NULL DEFAULT 1"),
        ("lost_at", "DATETIME"),
        ("updated_at", "DATETIME NOT NULL DEFAULT '1970-01-01 00:00:00.000000'"),
    ),
    "snapshots": (
        ("parent_id", "INTEGER"),
        ("char_count", "INTEGER NOT NULL DEFAULT 0"),
        ("change_delta", "INTEGER NOT NULL DEFAULT 0"),
        ("created_at", "DATETIME NOT NULL DEFAULT '1970-01-01 00:00:00.000000'"),
    ),
}


def enable_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own SQLite transactions so SAVEPOINTs nest correctly.

    The sqlite3 driver otherwise starts and ends transactions on its own,
    which breaks ``session.begin_nested()``.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection: Any, record: ConnectionPoolEntry) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN")


def create_engine(
    settings: Settings,
) -> tuple[
    AsyncEngine,
    async_sessionmaker[AsyncSession],
]:
    """Create async engine and session factory.

    Returns (engine, session_factory) tuple.
    """
    engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
    )
    enable_savepoints(engine)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


def ensure_database_dir(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    if not database_url.startswith("sqlite"):
        return
    db_path = database_url.split("///", 1)[-1] if "///" in database_url else None
    if db_path and db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)


async def init_schema(engine: AsyncEngine) -> list[str]:
    """Create missing tables and backfill columns added in later versions.

    Returns the list of ``table.column`` names that were added.
    """
    added: list[str] = []
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        for table, columns in _ADDITIVE_COLUMNS.items():
            result = await conn.execute(text(f"PRAGMA table_info({table})"))
            existing = {str(row[1]) for row in result}
            for name, ddl in columns:
                if name in existing:
                    continue
                await conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))
                added.append(f"{table}.{name}")
    for column in added:
        logger.warning("Added missing column %s to existing history database", column)
    return added
