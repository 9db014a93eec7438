"""Reactive content store contract.

A ContentStore exposes the two collections the progress engine needs:

- exercises: queried by level, delivered as live snapshots
- userProgress: keyed by user id, delivered as live optional values

Live reads are Subscription objects: async iterators that receive a full
snapshot on creation and again after every committed write that touches
their query. Cancelling a subscription unregisters it from the store.

Concrete stores only implement the raw document primitives; decoding,
malformed-document skipping and change notification live here.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar

import structlog

from speakup.core.errors import MalformedDocumentError, SubscriptionFailureError
from speakup.core.models import (
    EXERCISES_COLLECTION,
    PROGRESS_COLLECTION,
    Exercise,
    UserProgress,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Queue markers
_END = object()


class _Failure:
    def __init__(self, reason: str):
        self.reason = reason


class Subscription(Generic[T]):
    """A live, cancellable stream of values pushed by a store.

    Iterating yields each pushed value in arrival order. Iteration stops
    after cancel(); a transport failure raises SubscriptionFailureError
    and ends the subscription.
    """

    def __init__(
        self,
        collection: str,
        key: str,
        on_cancel: Callable[[Subscription[Any]], None],
    ):
        self.collection = collection
        self.key = key
        self._on_cancel = on_cancel
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def push(self, value: T) -> None:
        """Deliver a new value to the consumer."""
        if not self._cancelled:
            self._queue.put_nowait(value)

    def fail(self, reason: str) -> None:
        """Deliver a transport failure to the consumer."""
        if not self._cancelled:
            self._queue.put_nowait(_Failure(reason))

    def cancel(self) -> None:
        """Stop the stream and unregister it from its store. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        self._on_cancel(self)
        self._queue.put_nowait(_END)
        logger.debug("subscription.cancelled", collection=self.collection, key=self.key)

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        if self._cancelled:
            raise StopAsyncIteration

        item = await self._queue.get()

        if self._cancelled or item is _END:
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self.cancel()
            raise SubscriptionFailureError(self.collection, item.reason)
        return item


class ContentStore(ABC):
    """Base class for reactive document stores."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription[Any]] = []
        # Serializes writes, notifications and initial snapshots so a
        # subscriber never sees an older snapshot after a newer one
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Raw document primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    async def _read_exercise_documents(self, level: str) -> list[tuple[str, Any]]:
        """Return (doc_id, payload) pairs whose level matches, ordered by id.

        Raises:
            SubscriptionFailureError: On transport errors
        """

    @abstractmethod
    async def _read_progress_document(self, user_id: str) -> Any | None:
        """Return the raw progress payload, or None when absent.

        Raises:
            SubscriptionFailureError: On transport errors
        """

    @abstractmethod
    async def _write_progress_document(self, user_id: str, document: dict[str, Any]) -> None:
        """Create or merge a progress document.

        Raises:
            PersistenceFailureError: On transport errors
        """

    @abstractmethod
    async def _write_exercise_documents(self, documents: list[tuple[str, dict[str, Any]]]) -> None:
        """Write all exercise documents or none of them.

        Raises:
            PersistenceFailureError: On transport errors
        """

    # -------------------------------------------------------------------------
    # One-shot reads
    # -------------------------------------------------------------------------

    async def get_exercises(self, level: str) -> list[Exercise]:
        """Read the catalog for a level, skipping malformed documents."""
        raw = await self._read_exercise_documents(level)
        return _decode_exercises(raw)

    async def get_user_progress(self, user_id: str) -> UserProgress | None:
        """Read a user's progress; None when absent or unreadable."""
        raw = await self._read_progress_document(user_id)
        return _decode_progress(user_id, raw)

    # -------------------------------------------------------------------------
    # Live subscriptions
    # -------------------------------------------------------------------------

    async def subscribe_exercises(self, level: str) -> Subscription[list[Exercise]]:
        """Subscribe to the catalog for a level.

        The returned subscription already holds the current snapshot.

        Raises:
            SubscriptionFailureError: If the initial read fails
        """
        async with self._lock:
            snapshot = await self.get_exercises(level)
            subscription: Subscription[list[Exercise]] = Subscription(
                EXERCISES_COLLECTION, level, self._unregister
            )
            self._subscriptions.append(subscription)
            subscription.push(snapshot)

        logger.debug("subscription.started", collection=EXERCISES_COLLECTION, key=level)
        return subscription

    async def subscribe_user_progress(self, user_id: str) -> Subscription[UserProgress | None]:
        """Subscribe to one user's progress document.

        Emits None while the document does not exist.

        Raises:
            SubscriptionFailureError: If the initial read fails
        """
        async with self._lock:
            snapshot = await self.get_user_progress(user_id)
            subscription: Subscription[UserProgress | None] = Subscription(
                PROGRESS_COLLECTION, user_id, self._unregister
            )
            self._subscriptions.append(subscription)
            subscription.push(snapshot)

        logger.debug("subscription.started", collection=PROGRESS_COLLECTION, key=user_id)
        return subscription

    @property
    def listener_count(self) -> int:
        """Number of live subscriptions registered against this store."""
        return len(self._subscriptions)

    def listeners_for(self, collection: str) -> list[Subscription[Any]]:
        return [s for s in self._subscriptions if s.collection == collection]

    def report_transport_error(self, reason: str, collection: str | None = None) -> None:
        """Fail every live subscription, optionally only for one collection."""
        for subscription in list(self._subscriptions):
            if collection is None or subscription.collection == collection:
                subscription.fail(reason)
        logger.warning("store.transport_error", reason=reason, collection=collection)

    def _unregister(self, subscription: Subscription[Any]) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def merge_write_progress(self, progress: UserProgress) -> None:
        """Create or update a user's progress document.

        Raises:
            PersistenceFailureError: If the write does not commit
        """
        async with self._lock:
            await self._write_progress_document(progress.user_id, progress.to_document())
            logger.debug(
                "store.progress_written",
                user_id=progress.user_id,
                level=progress.current_level_tier,
                xp=progress.xp_points,
            )
            await self._notify_progress(progress.user_id)

    async def batch_write_exercises(self, exercises: Iterable[Exercise]) -> None:
        """Atomically write a batch of catalog entries.

        Raises:
            PersistenceFailureError: If the batch does not commit
        """
        exercises = list(exercises)
        async with self._lock:
            levels = {e.level for e in exercises}
            # An upsert can move an id out of a watched level
            levels |= await self._levels_holding({e.id for e in exercises}, exclude=levels)

            await self._write_exercise_documents([(e.id, e.to_document()) for e in exercises])
            logger.info("store.exercises_written", count=len(exercises))
            for level in sorted(levels):
                await self._notify_exercises(level)

    async def _levels_holding(self, doc_ids: set[str], exclude: set[str]) -> set[str]:
        """Subscribed levels (outside exclude) that currently hold any of doc_ids."""
        found = set()
        for level in sorted({s.key for s in self.listeners_for(EXERCISES_COLLECTION)} - exclude):
            try:
                stored = await self._read_exercise_documents(level)
            except SubscriptionFailureError:
                # Let the post-write notification report the failure
                found.add(level)
                continue
            if doc_ids & {doc_id for doc_id, _ in stored}:
                found.add(level)
        return found

    # -------------------------------------------------------------------------
    # Change notification
    # -------------------------------------------------------------------------

    async def _notify_exercises(self, level: str) -> None:
        listeners = [
            s for s in self.listeners_for(EXERCISES_COLLECTION) if s.key == level
        ]
        if not listeners:
            return
        try:
            snapshot = await self.get_exercises(level)
        except SubscriptionFailureError as e:
            for subscription in listeners:
                subscription.fail(e.reason)
            return
        for subscription in listeners:
            subscription.push(list(snapshot))

    async def _notify_progress(self, user_id: str) -> None:
        listeners = [
            s for s in self.listeners_for(PROGRESS_COLLECTION) if s.key == user_id
        ]
        if not listeners:
            return
        try:
            snapshot = await self.get_user_progress(user_id)
        except SubscriptionFailureError as e:
            for subscription in listeners:
                subscription.fail(e.reason)
            return
        for subscription in listeners:
            subscription.push(snapshot)


# =============================================================================
# DECODING
# =============================================================================


def _decode_exercises(raw: list[tuple[str, Any]]) -> list[Exercise]:
    exercises = []
    for doc_id, data in raw:
        try:
            exercises.append(Exercise.from_document(doc_id, data))
        except MalformedDocumentError as e:
            logger.warning(
                "store.malformed_document_skipped",
                collection=e.collection,
                doc_id=e.doc_id,
                reason=e.reason,
            )
    return exercises


def _decode_progress(user_id: str, raw: Any | None) -> UserProgress | None:
    if raw is None:
        return None
    try:
        return UserProgress.from_document(raw, user_id=user_id)
    except MalformedDocumentError as e:
        logger.warning(
            "store.malformed_document_skipped",
            collection=e.collection,
            doc_id=e.doc_id,
            reason=e.reason,
        )
        return None
