"""Session management for Web API.

Each session wraps one ProgressEngine and one event queue of state
snapshots per connected SSE client.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from speakup.config.app_config import AppConfig, load_app_config
from speakup.core.engine import ProgressEngine, SessionState
from speakup.store import ContentStore, create_store

logger = structlog.get_logger(__name__)

# Snapshots kept for slow SSE clients; older ones are dropped
EVENT_QUEUE_SIZE = 100


@dataclass
class Session:
    """An active practice session."""

    session_id: str
    user_id: str | None
    engine: ProgressEngine
    created_at: str = ""
    status: str = "active"  # active | completed
    # One queue of state snapshots per SSE client; None ends a stream
    event_queues: list[asyncio.Queue[SessionState | None]] = field(default_factory=list)

    def __post_init__(self):
        if not self.created_at:
            self.created_at = datetime.now(timezone.utc).isoformat()

    def open_stream(self) -> asyncio.Queue[SessionState | None]:
        """Register a new SSE client and return its queue."""
        queue: asyncio.Queue[SessionState | None] = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)
        if self.status == "completed":
            queue.put_nowait(None)
        self.event_queues.append(queue)
        return queue

    def close_stream(self, queue: asyncio.Queue[SessionState | None]) -> None:
        if queue in self.event_queues:
            self.event_queues.remove(queue)

    def publish(self, state: SessionState | None) -> None:
        """Enqueue a snapshot for every client, dropping the oldest one when full."""
        item = state.snapshot() if state is not None else None
        for queue in list(self.event_queues):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(item)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "created_at": self.created_at,
            "status": self.status,
            "engine_status": self.engine.state.status.name,
        }


class SessionManager:
    """Manages active practice sessions.

    All sessions share one content store.
    """

    def __init__(self, store: ContentStore | None = None, config: AppConfig | None = None):
        self._config = config or load_app_config()
        self._store = store
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    @property
    def store(self) -> ContentStore:
        if self._store is None:
            self._store = create_store(self._config.store)
        return self._store

    async def create_session(self, user_id: str | None) -> Session:
        """Create a session and load the user's exercises.

        Waits up to the configured timeout for the first catalog snapshot;
        a session that is still loading afterwards keeps loading in the
        background.

        Args:
            user_id: Signed-in user, or None

        Returns:
            The created Session object
        """
        session_id = str(uuid.uuid4())[:8]  # Short UUID for convenience

        engine = ProgressEngine(
            self.store,
            xp_per_correct=self._config.progression.xp_per_correct,
            level_up_threshold=self._config.progression.level_up_threshold,
        )
        session = Session(session_id=session_id, user_id=user_id, engine=engine)
        engine.add_listener(session.publish)

        async with self._lock:
            self._sessions[session_id] = session

        await engine.load_for_user(user_id)
        loaded = await engine.wait_until_loaded(self._config.api.load_timeout_seconds)

        logger.info(
            "session_created",
            session_id=session_id,
            user_id=user_id,
            loaded=loaded,
            engine_status=engine.state.status.name,
        )
        return session

    async def get_session(self, session_id: str) -> Session | None:
        """Get a session by ID."""
        async with self._lock:
            return self._sessions.get(session_id)

    async def end_session(self, session_id: str) -> bool:
        """End a session and release its subscriptions.

        Returns:
            True if session was ended, False if not found
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)

        if session is None:
            return False

        await session.engine.close()

        # Signal end of event stream
        session.status = "completed"
        session.publish(None)

        logger.info("session_ended", session_id=session_id)
        return True

    async def close_all(self) -> None:
        """End every session (application shutdown)."""
        async with self._lock:
            session_ids = list(self._sessions)
        for session_id in session_ids:
            await self.end_session(session_id)

    async def list_sessions(self) -> list[Session]:
        """List all active sessions."""
        async with self._lock:
            return list(self._sessions.values())

    async def get_session_count(self) -> int:
        """Get count of active sessions."""
        async with self._lock:
            return len(self._sessions)


# Global session manager instance
_session_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    """Get the global session manager instance."""
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager


def reset_session_manager(store: ContentStore | None = None) -> SessionManager:
    """Replace the session manager (for testing)."""
    global _session_manager
    _session_manager = SessionManager(store=store)
    return _session_manager
