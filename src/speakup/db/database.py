"""SQLite database connection and schema management.

Provides connection management and schema initialization for the
SQLite-backed content store. Documents are stored as JSON text keyed by
document id, mirroring the remote document store layout.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_PATH = Path("db/speakup.db")

# Current database (module-level for simplicity in CLI context)
_db_path: Path | None = None


def init_db(db_path: Path | None = None) -> Path:
    """Initialize database with schema.

    Creates the database file and all required tables if they don't exist.

    Args:
        db_path: Path to database file. Defaults to db/speakup.db

    Returns:
        The path that was initialized
    """
    global _db_path
    _db_path = db_path or DEFAULT_DB_PATH

    with get_db(_db_path) as conn:
        _create_schema(conn)

    logger.info("database.initialized", path=str(_db_path))
    return _db_path


@contextmanager
def get_db(db_path: Path | None = None) -> Generator[sqlite3.Connection, None, None]:
    """Get database connection as context manager.

    Commits on success and rolls back on any error, so every block is
    all-or-nothing.

    Args:
        db_path: Explicit database file; defaults to the initialized one

    Yields:
        SQLite connection with row factory set to sqlite3.Row

    Example:
        with get_db() as conn:
            rows = conn.execute("SELECT * FROM exercises").fetchall()
    """
    path = db_path or _db_path or DEFAULT_DB_PATH

    # Ensure directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create database schema.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        -- exercises: catalog documents, queried by level
        CREATE TABLE IF NOT EXISTS exercises (
            doc_id TEXT PRIMARY KEY,
            level TEXT,
            data TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        -- user_progress: one document per user id
        CREATE TABLE IF NOT EXISTS user_progress (
            uid TEXT PRIMARY KEY,
            data TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_exercises_level ON exercises(level);
        """
    )
