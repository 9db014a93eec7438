"""Tests for ProgressEngine loading and live subscriptions (F3)."""

import pytest

from speakup.core.engine import EngineStatus, ProgressEngine
from speakup.core.models import EXERCISES_COLLECTION, PROGRESS_COLLECTION, UserProgress
from speakup.store.memory import InMemoryContentStore


class _BrokenDiskStore(InMemoryContentStore):
    """Store whose progress writes fail below the domain errors."""

    async def _write_progress_document(self, user_id, document):
        raise OSError("disk full")


@pytest.fixture
def engine(store):
    """Engine over an in-memory store."""
    return ProgressEngine(store)


async def _load(engine, user_id="u1"):
    await engine.load_for_user(user_id)
    assert await engine.wait_until_loaded(2.0)


class TestLoadForUser:
    """Tests for load_for_user."""

    @pytest.mark.asyncio
    async def test_missing_user_is_error(self, engine, store):
        """Loading without a user id fails without subscribing."""
        await engine.load_for_user(None)

        state = engine.state
        assert state.status == EngineStatus.ERROR
        assert state.error_kind == "AuthenticationMissingError"
        assert state.error_message == "Usuario no autenticado."
        assert not state.is_loading
        assert store.listener_count == 0
        await engine.close()

    @pytest.mark.asyncio
    async def test_new_user_gets_level_one_catalog(self, engine, store, make_exercises, load_catalog):
        """Users without a progress document start at A1."""
        load_catalog(store, make_exercises(5) + make_exercises(3, "A2"))

        await _load(engine)

        state = engine.state
        assert state.status == EngineStatus.ACTIVE
        assert state.user_progress == UserProgress(user_id="u1")
        assert state.total_exercises_in_level == 5
        assert len(state.pending_exercises) == 5
        assert engine.catalog_level == "A1"
        assert store.listener_count == 2
        await engine.close()

    @pytest.mark.asyncio
    async def test_stored_progress_filters_pending(self, engine, store, make_exercises, load_catalog):
        """Completed exercises from the stored document are not pending."""
        load_catalog(store, make_exercises(5))
        store.put_document(
            PROGRESS_COLLECTION,
            "u1",
            UserProgress(
                user_id="u1", xp_points=20, completed_exercise_ids={"a1_001", "a1_002"}
            ).to_document(),
        )

        await _load(engine)

        assert [e.id for e in engine.state.pending_exercises] == ["a1_003", "a1_004", "a1_005"]
        assert engine.state.user_progress.xp_points == 20
        await engine.close()

    @pytest.mark.asyncio
    async def test_empty_catalog_loads_unfinished(self, engine):
        """An empty store loads into an active, unfinished session."""
        await _load(engine)

        assert engine.state.status == EngineStatus.ACTIVE
        assert not engine.state.is_finished
        assert engine.state.total_exercises_in_level == 0
        await engine.close()

    @pytest.mark.asyncio
    async def test_setup_failure_is_error(self, faulty_store):
        """A store that cannot be read moves the session to ERROR."""
        engine = ProgressEngine(faulty_store)
        faulty_store.read_error = "unreachable"

        await _load(engine)

        assert engine.state.status == EngineStatus.ERROR
        assert engine.state.error_message == "Error al cargar progreso: unreachable"
        assert engine.state.error_kind == "SubscriptionFailureError"
        assert faulty_store.listener_count == 0
        await engine.close()

    @pytest.mark.asyncio
    async def test_catalog_transport_error_keeps_data(
        self, engine, store, make_exercises, load_catalog, wait_until
    ):
        """A failing catalog stream surfaces an error but keeps loaded exercises."""
        load_catalog(store, make_exercises(5))
        await _load(engine)

        store.report_transport_error("connection reset", collection=EXERCISES_COLLECTION)
        await wait_until(lambda: engine.state.status == EngineStatus.ERROR)

        assert engine.state.error_message == "Error al cargar ejercicios: connection reset"
        assert len(engine.state.pending_exercises) == 5
        assert store.listener_count == 0
        await engine.close()

    @pytest.mark.asyncio
    async def test_progress_transport_error_stays_error(
        self, engine, store, make_exercises, load_catalog, wait_until
    ):
        """After the progress stream fails, later catalog writes do not revive the session."""
        load_catalog(store, make_exercises(5))
        await _load(engine)

        store.report_transport_error("connection reset", collection=PROGRESS_COLLECTION)
        await wait_until(lambda: engine.state.status == EngineStatus.ERROR)
        await store.batch_write_exercises(make_exercises(6))

        assert engine.state.status == EngineStatus.ERROR
        assert engine.state.error_message == "Error al cargar progreso: connection reset"
        assert engine.state.total_exercises_in_level == 5
        assert store.listener_count == 0
        await engine.close()

    @pytest.mark.asyncio
    async def test_level_up_after_failure_does_not_resubscribe(
        self, engine, store, make_exercises, load_catalog, wait_until
    ):
        """A stream failure is not retried by later commits."""
        load_catalog(store, make_exercises(5) + make_exercises(3, "A2"))
        store.put_document(
            PROGRESS_COLLECTION,
            "u1",
            UserProgress(
                user_id="u1", completed_exercise_ids={"a1_001", "a1_002", "a1_003"}
            ).to_document(),
        )
        await _load(engine)
        store.report_transport_error("offline", collection=PROGRESS_COLLECTION)
        await wait_until(lambda: engine.state.status == EngineStatus.ERROR)

        engine.submit_answer(engine.state.current_exercise.correct_option_index)
        await engine.flush()

        assert engine.state.user_progress.current_level_tier == 2
        assert engine.catalog_level is None
        assert store.listener_count == 0
        await engine.close()


class TestSubscriptionLifecycle:
    """Tests for subscription replacement and teardown."""

    @pytest.mark.asyncio
    async def test_close_releases_listeners(self, engine, store, make_exercises, load_catalog):
        """Closing the engine leaves no listeners in the store."""
        load_catalog(store, make_exercises(3))
        await _load(engine)

        await engine.close()

        assert store.listener_count == 0
        assert engine.catalog_level is None

    @pytest.mark.asyncio
    async def test_close_releases_listeners_when_write_crashes(
        self, make_exercises, load_catalog
    ):
        """Unexpected write errors still leave no listeners behind."""
        store = _BrokenDiskStore()
        load_catalog(store, make_exercises(5))
        engine = ProgressEngine(store)
        await _load(engine)
        engine.submit_answer(engine.state.current_exercise.correct_option_index)

        with pytest.raises(OSError):
            await engine.close()

        assert store.listener_count == 0
        assert engine.catalog_level is None

    @pytest.mark.asyncio
    async def test_repeated_pushes_keep_one_catalog_listener(
        self, engine, store, make_exercises, load_catalog, wait_until
    ):
        """Every progress push replaces the catalog subscription."""
        load_catalog(store, make_exercises(3))
        await _load(engine)

        for xp in (5, 6, 7):
            await store.merge_write_progress(UserProgress(user_id="u1", xp_points=xp))
            assert len(store.listeners_for(EXERCISES_COLLECTION)) <= 1

        await wait_until(
            lambda: engine.state.user_progress.xp_points == 7
            and len(store.listeners_for(EXERCISES_COLLECTION)) == 1
        )
        assert len(store.listeners_for(PROGRESS_COLLECTION)) == 1
        await engine.close()

    @pytest.mark.asyncio
    async def test_reload_for_other_user_cancels_previous(
        self, engine, store, make_exercises, load_catalog
    ):
        """Loading another user drops the first user's subscriptions."""
        load_catalog(store, make_exercises(3))
        await _load(engine, "u1")

        await _load(engine, "u2")

        assert engine.user_id == "u2"
        assert [s.key for s in store.listeners_for(PROGRESS_COLLECTION)] == ["u2"]
        assert store.listener_count == 2
        await engine.close()


class TestReconciliation:
    """Tests for confirmed writes flowing back through the store."""

    @pytest.mark.asyncio
    async def test_confirmed_answer_reloads_queue(
        self, engine, store, make_exercises, load_catalog, wait_until
    ):
        """After the write commits, the answered exercise leaves the queue."""
        load_catalog(store, make_exercises(5))
        await _load(engine)
        exercise = engine.state.current_exercise

        engine.submit_answer(exercise.correct_option_index)
        assert engine.state.user_progress.xp_points == 10

        await wait_until(lambda: len(engine.state.pending_exercises) == 4)
        assert exercise.id not in [e.id for e in engine.state.pending_exercises]
        assert engine.state.current_index == 0
        assert store.document(PROGRESS_COLLECTION, "u1")["xpPoints"] == 10
        await engine.close()

    @pytest.mark.asyncio
    async def test_level_up_switches_catalog(
        self, engine, store, make_exercises, load_catalog, wait_until
    ):
        """Reaching the threshold moves the catalog subscription to the next level."""
        load_catalog(store, make_exercises(5) + make_exercises(3, "A2"))
        store.put_document(
            PROGRESS_COLLECTION,
            "u1",
            UserProgress(
                user_id="u1", completed_exercise_ids={"a1_001", "a1_002", "a1_003"}
            ).to_document(),
        )
        await _load(engine)
        assert engine.state.current_exercise.id == "a1_004"

        engine.submit_answer(engine.state.current_exercise.correct_option_index)

        await wait_until(
            lambda: engine.catalog_level == "A2" and engine.state.total_exercises_in_level == 3
        )
        await engine.flush()

        assert engine.state.user_progress.current_level_tier == 2
        assert [e.id for e in engine.state.pending_exercises] == ["a2_001", "a2_002", "a2_003"]
        document = store.document(PROGRESS_COLLECTION, "u1")
        assert document["currentLevel"] == 2
        assert document["completedExercises"] == []
        await engine.close()

    @pytest.mark.asyncio
    async def test_remote_catalog_edit_resets_position(
        self, engine, store, make_exercises, load_catalog, wait_until
    ):
        """Catalog changes from elsewhere restart at the first pending exercise."""
        load_catalog(store, make_exercises(5))
        await _load(engine)
        engine.advance()
        assert engine.state.current_index == 1

        await store.batch_write_exercises(make_exercises(6))

        await wait_until(lambda: engine.state.total_exercises_in_level == 6)
        assert engine.state.current_index == 0
        await engine.close()

    @pytest.mark.asyncio
    async def test_seed_reloads_catalog(self, engine, store, wait_until):
        """Seeding a loaded session delivers the new exercises."""
        await _load(engine)
        assert engine.state.total_exercises_in_level == 0

        assert await engine.seed_catalog()

        await wait_until(lambda: engine.state.total_exercises_in_level == 5)
        assert not engine.state.is_loading
        await engine.close()
