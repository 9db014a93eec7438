"""Process-local content store.

Keeps documents in dictionaries. Used by tests, demos and the "memory"
store backend. Documents are stored as JSON-shaped dicts, exactly as a
remote store would hold them, so decoding rules apply the same way.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

import structlog

from speakup.core.models import EXERCISES_COLLECTION, PROGRESS_COLLECTION
from speakup.store.base import ContentStore

logger = structlog.get_logger(__name__)


class InMemoryContentStore(ContentStore):
    """Content store backed by in-process dictionaries."""

    def __init__(self) -> None:
        super().__init__()
        self._documents: dict[str, dict[str, Any]] = {
            EXERCISES_COLLECTION: {},
            PROGRESS_COLLECTION: {},
        }

    def put_document(self, collection: str, doc_id: str, data: Any) -> None:
        """Store a raw document without notification.

        Intended for fixtures and bootstrap data; payloads are not validated.
        """
        self._documents.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def document(self, collection: str, doc_id: str) -> Any | None:
        """Return a copy of a raw stored document."""
        return copy.deepcopy(self._documents.get(collection, {}).get(doc_id))

    async def _read_exercise_documents(self, level: str) -> list[tuple[str, Any]]:
        docs = self._documents[EXERCISES_COLLECTION]
        return [
            (doc_id, copy.deepcopy(data))
            for doc_id, data in sorted(docs.items())
            if isinstance(data, Mapping) and data.get("level") == level
        ]

    async def _read_progress_document(self, user_id: str) -> Any | None:
        return copy.deepcopy(self._documents[PROGRESS_COLLECTION].get(user_id))

    async def _write_progress_document(self, user_id: str, document: dict[str, Any]) -> None:
        docs = self._documents[PROGRESS_COLLECTION]
        existing = docs.get(user_id)
        merged = dict(existing) if isinstance(existing, Mapping) else {}
        merged.update(copy.deepcopy(document))
        docs[user_id] = merged

    async def _write_exercise_documents(self, documents: list[tuple[str, dict[str, Any]]]) -> None:
        docs = self._documents[EXERCISES_COLLECTION]
        for doc_id, data in documents:
            docs[doc_id] = copy.deepcopy(data)
