"""Repository functions for the exercises and user_progress tables.

Payloads are JSON text. Rows whose JSON cannot be parsed are returned as
the raw string so the decoding layer can reject them as malformed.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from speakup.db.database import get_db

logger = structlog.get_logger(__name__)


def _load_payload(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def select_exercise_documents(level: str, db_path: Path | None = None) -> list[tuple[str, Any]]:
    """Get all exercise documents for a level, ordered by document id.

    Args:
        level: Level label (e.g. "A1")
        db_path: Database file

    Returns:
        List of (doc_id, payload) pairs
    """
    with get_db(db_path) as conn:
        rows = conn.execute(
            "SELECT doc_id, data FROM exercises WHERE level = ? ORDER BY doc_id",
            (level,),
        ).fetchall()

    return [(row["doc_id"], _load_payload(row["data"])) for row in rows]


def select_progress_document(uid: str, db_path: Path | None = None) -> Any | None:
    """Get a user's progress payload.

    Returns:
        Parsed payload, or None if the user has no document yet
    """
    with get_db(db_path) as conn:
        row = conn.execute(
            "SELECT data FROM user_progress WHERE uid = ?", (uid,)
        ).fetchone()

    if row is None:
        return None
    return _load_payload(row["data"])


def merge_progress_document(uid: str, document: dict[str, Any], db_path: Path | None = None) -> None:
    """Create or merge a user's progress document.

    Fields already stored but absent from document are kept.

    Raises:
        sqlite3.Error: On database errors
    """
    with get_db(db_path) as conn:
        row = conn.execute(
            "SELECT data FROM user_progress WHERE uid = ?", (uid,)
        ).fetchone()

        existing = _load_payload(row["data"]) if row is not None else {}
        merged = dict(existing) if isinstance(existing, dict) else {}
        merged.update(document)

        conn.execute(
            """
            INSERT INTO user_progress (uid, data) VALUES (?, ?)
            ON CONFLICT(uid) DO UPDATE SET
                data = excluded.data,
                updated_at = datetime('now')
            """,
            (uid, json.dumps(merged, ensure_ascii=False)),
        )

    logger.debug("user_progress.merged", uid=uid)


def upsert_exercise_documents(
    documents: list[tuple[str, dict[str, Any]]], db_path: Path | None = None
) -> None:
    """Insert or replace exercise documents in a single transaction.

    Raises:
        sqlite3.Error: On database errors (nothing is written)
    """
    with get_db(db_path) as conn:
        conn.executemany(
            """
            INSERT INTO exercises (doc_id, level, data) VALUES (?, ?, ?)
            ON CONFLICT(doc_id) DO UPDATE SET
                level = excluded.level,
                data = excluded.data,
                updated_at = datetime('now')
            """,
            [
                (doc_id, data.get("level"), json.dumps(data, ensure_ascii=False))
                for doc_id, data in documents
            ],
        )

    logger.debug("exercises.upserted", count=len(documents))
