"""Content store adapters.

- base: ContentStore contract and Subscription streams
- memory: in-process store
- sqlite_store: durable SQLite store
"""

from __future__ import annotations

from pathlib import Path

from speakup.config.app_config import StoreConfig
from speakup.store.base import ContentStore, Subscription
from speakup.store.memory import InMemoryContentStore
from speakup.store.sqlite_store import SqliteContentStore


def create_store(config: StoreConfig) -> ContentStore:
    """Build the store selected by configuration."""
    if config.backend == "memory":
        return InMemoryContentStore()
    return SqliteContentStore(Path(config.db_path))


__all__ = [
    "ContentStore",
    "InMemoryContentStore",
    "SqliteContentStore",
    "Subscription",
    "create_store",
]
