"""SQLite-backed content store.

Durable backend for a single machine. Database calls run in a worker
thread; after each committed write, subscribers in this process receive
a fresh snapshot.
"""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any

import structlog

from speakup.core.errors import PersistenceFailureError, SubscriptionFailureError
from speakup.core.models import EXERCISES_COLLECTION, PROGRESS_COLLECTION
from speakup.db import documents_repository as repo
from speakup.db.database import init_db
from speakup.store.base import ContentStore

logger = structlog.get_logger(__name__)


class SqliteContentStore(ContentStore):
    """Content store persisted in a SQLite file."""

    def __init__(self, db_path: Path):
        super().__init__()
        self.db_path = init_db(db_path)

    async def _read_exercise_documents(self, level: str) -> list[tuple[str, Any]]:
        try:
            return await asyncio.to_thread(repo.select_exercise_documents, level, self.db_path)
        except sqlite3.Error as e:
            raise SubscriptionFailureError(EXERCISES_COLLECTION, str(e)) from e

    async def _read_progress_document(self, user_id: str) -> Any | None:
        try:
            return await asyncio.to_thread(repo.select_progress_document, user_id, self.db_path)
        except sqlite3.Error as e:
            raise SubscriptionFailureError(PROGRESS_COLLECTION, str(e)) from e

    async def _write_progress_document(self, user_id: str, document: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(repo.merge_progress_document, user_id, document, self.db_path)
        except sqlite3.Error as e:
            logger.error("sqlite_store.write_failed", collection=PROGRESS_COLLECTION, error=str(e))
            raise PersistenceFailureError(PROGRESS_COLLECTION, str(e)) from e

    async def _write_exercise_documents(self, documents: list[tuple[str, dict[str, Any]]]) -> None:
        try:
            await asyncio.to_thread(repo.upsert_exercise_documents, documents, self.db_path)
        except sqlite3.Error as e:
            logger.error("sqlite_store.write_failed", collection=EXERCISES_COLLECTION, error=str(e))
            raise PersistenceFailureError(EXERCISES_COLLECTION, str(e)) from e
