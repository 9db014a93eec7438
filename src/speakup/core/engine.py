"""Exercise session / progress engine.

Owns the state of one learner's practice session:

- subscribes to the learner's progress document and, for every emission,
  to the exercise catalog of the derived level (one catalog subscription
  at a time)
- evaluates answers, awards XP, records completions
- promotes the learner to the next tier once LEVEL_UP_THRESHOLD of the
  level's exercises are completed

Progress commits are optimistic: in-memory state changes immediately and
the merge-write runs in the background. A failed write surfaces an error
message but is never rolled back; the next progress push reconciles.

State machine: LOADING -> ACTIVE -> (FINISHED | ERROR). restart() takes a
FINISHED session back to ACTIVE.

All methods must be called from a running asyncio event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Any, Union

import structlog

from speakup.core.errors import (
    AuthenticationMissingError,
    PersistenceFailureError,
    SpeakUpError,
    SubscriptionFailureError,
)
from speakup.core.models import Exercise, UserProgress
from speakup.core.projection import SessionProjection, project
from speakup.core.seed import SEED_EXERCISES
from speakup.store.base import ContentStore, Subscription

logger = structlog.get_logger(__name__)

# XP awarded per correct answer
XP_PER_CORRECT = 10

# Fraction of a level's exercises that must be completed to level up
LEVEL_UP_THRESHOLD = 0.80


# =============================================================================
# STATE
# =============================================================================


class EngineStatus(Enum):
    """Lifecycle of a practice session."""

    LOADING = auto()
    ACTIVE = auto()
    FINISHED = auto()
    ERROR = auto()


@dataclass(frozen=True)
class AnswerIdle:
    """Waiting for the learner to pick an answer."""


@dataclass(frozen=True)
class AnswerCorrect:
    """The learner answered correctly."""

    explanation: str


@dataclass(frozen=True)
class AnswerWrong:
    """The learner answered incorrectly."""

    selected_index: int
    explanation: str


AnswerState = Union[AnswerIdle, AnswerCorrect, AnswerWrong]

IDLE = AnswerIdle()


@dataclass
class SessionState:
    """Everything a quiz or dashboard view needs to render."""

    user_progress: UserProgress = field(default_factory=lambda: UserProgress(user_id=""))
    pending_exercises: list[Exercise] = field(default_factory=list)
    total_exercises_in_level: int = 0
    current_index: int = 0
    answer_state: AnswerState = IDLE
    is_finished: bool = False
    is_loading: bool = True
    status: EngineStatus = EngineStatus.LOADING
    error_message: str | None = None
    # Class name of the error behind error_message
    error_kind: str | None = None

    @property
    def current_exercise(self) -> Exercise | None:
        """The exercise on screen, or None when nothing is pending."""
        if 0 <= self.current_index < len(self.pending_exercises):
            return self.pending_exercises[self.current_index]
        return None

    @property
    def projection(self) -> SessionProjection:
        return project(self.user_progress, self.total_exercises_in_level)

    def snapshot(self) -> SessionState:
        """Detached copy safe to hand to consumers."""
        return replace(self, pending_exercises=list(self.pending_exercises))


StateListener = Callable[[SessionState], Any]


# =============================================================================
# ENGINE
# =============================================================================


class ProgressEngine:
    """Session state machine mediating between a ContentStore and the UI."""

    def __init__(
        self,
        store: ContentStore,
        *,
        xp_per_correct: int = XP_PER_CORRECT,
        level_up_threshold: float = LEVEL_UP_THRESHOLD,
    ):
        self.store = store
        self.xp_per_correct = xp_per_correct
        self.level_up_threshold = level_up_threshold
        self.state = SessionState()

        self._user_id: str | None = None
        self._closed = False
        self._listeners: list[StateListener] = []

        self._progress_subscription: Subscription[UserProgress | None] | None = None
        self._progress_task: asyncio.Task[None] | None = None
        self._catalog_subscription: Subscription[list[Exercise]] | None = None
        self._catalog_task: asyncio.Task[None] | None = None
        # Cancel-then-subscribe must not interleave with another replacement
        self._catalog_lock = asyncio.Lock()

        self._background: set[asyncio.Task[Any]] = set()
        self._loaded = asyncio.Event()

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def _streaming(self) -> bool:
        """True while the progress stream of a loaded user is live."""
        subscription = self._progress_subscription
        return subscription is not None and not subscription.cancelled and not self._closed

    @property
    def catalog_level(self) -> str | None:
        """Level of the live catalog subscription, if any."""
        if self._catalog_subscription is None or self._catalog_subscription.cancelled:
            return None
        return self._catalog_subscription.key

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: StateListener) -> None:
        """Call listener with the state after every change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.state)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load_for_user(self, user_id: str | None) -> None:
        """Start following a user's progress and matching catalog.

        Never raises for authentication or subscription problems; they move
        the session to ERROR with a user-visible message instead.
        """
        self._cancel_progress_subscription()
        async with self._catalog_lock:
            self._cancel_catalog_subscription()

        self._user_id = user_id or None
        self._loaded.clear()
        self.state.is_loading = True
        self.state.status = EngineStatus.LOADING
        self._notify()

        if not user_id:
            error = AuthenticationMissingError("no signed-in user id")
            logger.warning("engine.authentication_missing")
            self._fail_loading(error, "Usuario no autenticado.")
            return

        try:
            subscription = await self.store.subscribe_user_progress(user_id)
        except SubscriptionFailureError as e:
            logger.warning("engine.progress_subscription_failed", user_id=user_id, reason=e.reason)
            self._fail_loading(e, f"Error al cargar progreso: {e.reason}")
            return

        if self._closed:
            subscription.cancel()
            return

        self._progress_subscription = subscription
        self._progress_task = asyncio.create_task(self._consume_progress(user_id, subscription))
        logger.info("engine.loading", user_id=user_id)

    async def _consume_progress(
        self, user_id: str, subscription: Subscription[UserProgress | None]
    ) -> None:
        try:
            async for progress in subscription:
                current = progress or UserProgress(user_id=user_id)
                self.apply_progress(current)
                await self._replace_catalog_subscription(current.level_label)
        except SubscriptionFailureError as e:
            logger.warning("engine.progress_subscription_failed", user_id=user_id, reason=e.reason)
            self._cancel_progress_subscription()
            async with self._catalog_lock:
                self._cancel_catalog_subscription()
            self._fail_loading(e, f"Error al cargar progreso: {e.reason}")

    def apply_progress(self, progress: UserProgress) -> None:
        """Replace the in-memory progress with a full value.

        Applying the same value twice leaves the state unchanged.
        """
        self.state.user_progress = progress
        self._notify()

    async def _replace_catalog_subscription(self, level: str) -> None:
        async with self._catalog_lock:
            self._cancel_catalog_subscription()
            # Streams stay down after a failure until the next load_for_user
            if not self._streaming:
                return

            try:
                subscription = await self.store.subscribe_exercises(level)
            except SubscriptionFailureError as e:
                logger.warning("engine.catalog_subscription_failed", level=level, reason=e.reason)
                self._cancel_progress_subscription()
                self._fail_loading(e, f"Error al cargar ejercicios: {e.reason}")
                return

            if self._closed:
                subscription.cancel()
                return

            self._catalog_subscription = subscription
            self._catalog_task = asyncio.create_task(self._consume_catalog(subscription))
            logger.debug("engine.catalog_subscribed", user_id=self._user_id, level=level)

    async def _consume_catalog(self, subscription: Subscription[list[Exercise]]) -> None:
        try:
            async for exercises in subscription:
                self.on_exercise_catalog_update(exercises)
        except SubscriptionFailureError as e:
            logger.warning(
                "engine.catalog_subscription_failed", level=subscription.key, reason=e.reason
            )
            self._cancel_progress_subscription()
            self._fail_loading(e, f"Error al cargar ejercicios: {e.reason}")

    def on_exercise_catalog_update(self, exercises: Iterable[Exercise]) -> None:
        """Rebuild the pending queue from a fresh catalog snapshot.

        Every update restarts the position at the first pending exercise.
        An empty catalog means nothing has loaded yet, so it never counts
        as finished.
        """
        exercises = list(exercises)
        completed = self.state.user_progress.completed_exercise_ids
        pending = [e for e in exercises if e.id not in completed]
        finished = len(exercises) > 0 and not pending

        self.state.pending_exercises = pending
        self.state.total_exercises_in_level = len(exercises)
        self.state.current_index = 0
        self.state.answer_state = IDLE
        self.state.is_finished = finished
        self.state.is_loading = False
        self.state.status = EngineStatus.FINISHED if finished else EngineStatus.ACTIVE

        self._loaded.set()
        logger.debug(
            "engine.catalog_updated",
            user_id=self._user_id,
            total=len(exercises),
            pending=len(pending),
            finished=finished,
        )
        self._notify()

    def _fail_loading(self, error: SpeakUpError, message: str) -> None:
        self.state.is_loading = False
        self.state.status = EngineStatus.ERROR
        self._set_error(error, message)
        self._loaded.set()
        self._notify()

    def _set_error(self, error: SpeakUpError, message: str) -> None:
        self.state.error_message = message
        self.state.error_kind = type(error).__name__

    async def wait_until_loaded(self, timeout: float | None = None) -> bool:
        """Wait for the first catalog snapshot or a loading failure.

        Returns:
            False if the timeout elapsed first
        """
        try:
            await asyncio.wait_for(self._loaded.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # -------------------------------------------------------------------------
    # Answering
    # -------------------------------------------------------------------------

    def submit_answer(self, selected_index: int) -> bool:
        """Evaluate an answer for the current exercise.

        Ignored when an answer is already showing or nothing is pending.

        Returns:
            True if the answer was evaluated
        """
        exercise = self.state.current_exercise
        if exercise is None or not isinstance(self.state.answer_state, AnswerIdle):
            logger.debug("engine.answer_ignored", selected_index=selected_index)
            return False

        if exercise.is_correct(selected_index):
            self.state.answer_state = AnswerCorrect(exercise.explanation)
            self.commit_correct_answer(exercise.id)
        else:
            self.state.answer_state = AnswerWrong(selected_index, exercise.explanation)
            self._notify()

        return True

    def commit_correct_answer(self, exercise_id: str) -> UserProgress:
        """Record a completed exercise, award XP and check for level-up.

        XP is awarded on every call; submit_answer's idle guard is what
        keeps one exercise from paying twice. The new value is applied in
        memory at once and persisted in the background.

        Returns:
            The progress value now held in memory
        """
        current = self.state.user_progress
        completed = current.completed_exercise_ids | {exercise_id}
        tier = current.current_level_tier
        total = self.state.total_exercises_in_level

        leveled_up = total > 0 and len(completed) / total >= self.level_up_threshold
        if leveled_up:
            tier += 1
            # Completions never carry over to the next level
            completed = frozenset()

        updated = UserProgress(
            user_id=self._user_id or current.user_id,
            current_level_tier=tier,
            xp_points=current.xp_points + self.xp_per_correct,
            completed_exercise_ids=completed,
        )
        self.state.user_progress = updated
        self._notify()

        logger.info(
            "engine.answer_committed",
            user_id=updated.user_id,
            exercise_id=exercise_id,
            xp=updated.xp_points,
            completed=updated.completed_count,
            total=total,
        )

        self._spawn(self._persist_progress(updated))

        if leveled_up:
            logger.info(
                "engine.level_up",
                user_id=updated.user_id,
                level=updated.current_level_tier,
                label=updated.level_label,
            )
            if self._streaming:
                self._spawn(self._replace_catalog_subscription(updated.level_label))

        return updated

    async def _persist_progress(self, progress: UserProgress) -> None:
        try:
            await self.store.merge_write_progress(progress)
        except PersistenceFailureError as e:
            # Optimistic state stays; the next progress push reconciles
            logger.error("engine.progress_write_failed", user_id=progress.user_id, reason=e.reason)
            self._set_error(e, f"No se pudo guardar tu progreso: {e.reason}")
            self._notify()

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def advance(self) -> None:
        """Move to the next pending exercise, or finish the session."""
        next_index = self.state.current_index + 1
        if next_index < len(self.state.pending_exercises):
            self.state.current_index = next_index
            self.state.answer_state = IDLE
        else:
            self.state.is_finished = True
            self.state.status = EngineStatus.FINISHED
        self._notify()

    def restart(self) -> None:
        """Replay the already-loaded pending queue from the start."""
        self.state.current_index = 0
        self.state.answer_state = IDLE
        self.state.is_finished = False
        if self.state.status == EngineStatus.FINISHED:
            self.state.status = EngineStatus.ACTIVE
        self._notify()

    def clear_error(self) -> None:
        """Acknowledge the current error message."""
        self.state.error_message = None
        self.state.error_kind = None
        self._notify()

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    async def seed_catalog(self, exercises: Iterable[Exercise] = SEED_EXERCISES) -> bool:
        """Write the bootstrap catalog atomically, then reload the catalog.

        Returns:
            True if the batch committed
        """
        self.state.is_loading = True
        self._notify()

        try:
            await self.store.batch_write_exercises(exercises)
        except PersistenceFailureError as e:
            logger.error("engine.seed_failed", reason=e.reason)
            self.state.is_loading = False
            self._set_error(e, f"Seed falló: {e.reason}")
            self._notify()
            return False

        if self._streaming:
            await self._replace_catalog_subscription(self.state.user_progress.level_label)
        else:
            self.state.is_loading = False
            self._notify()

        logger.info("engine.catalog_seeded", user_id=self._user_id)
        return True

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def flush(self) -> None:
        """Wait for background writes and catalog reloads to finish."""
        while self._background:
            await asyncio.gather(*list(self._background))

    def _cancel_progress_subscription(self) -> None:
        if self._progress_subscription is not None:
            self._progress_subscription.cancel()
            self._progress_subscription = None

    def _cancel_catalog_subscription(self) -> None:
        if self._catalog_subscription is not None:
            self._catalog_subscription.cancel()
            self._catalog_subscription = None

    async def close(self) -> None:
        """Tear the session down, leaving no listeners in the store."""
        if self._closed:
            return
        self._closed = True

        self._cancel_progress_subscription()
        try:
            await self.flush()
        finally:
            async with self._catalog_lock:
                self._cancel_catalog_subscription()

            tasks = [t for t in (self._progress_task, self._catalog_task) if t is not None]
            if tasks:
                await asyncio.gather(*tasks)

            self._listeners.clear()
            logger.info("engine.closed", user_id=self._user_id)
