"""Unit tests for scoring and progress tracking."""

import pytest

from codequest.game_engine.arena.scoring import ProgressTracker
from codequest.game_engine.arena.state import initial_state
from codequest.services.progress_store import InMemoryProgressStore, UserProgress


class FailingStore:
    """A store whose every call fails."""

    def __init__(self):
        self.calls = 0

    async def get_progress(self, user_id: str) -> UserProgress:
        self.calls += 1
        raise ConnectionError("store offline")

    async def set_high_score(self, user_id: str, score: int) -> None:
        self.calls += 1
        raise ConnectionError("store offline")

    async def add_completed_challenge(self, user_id: str, challenge_id: str) -> None:
        self.calls += 1
        raise ConnectionError("store offline")


class UnreadableStore(InMemoryProgressStore):
    """An in-memory store whose reads fail until switched back on."""

    def __init__(self):
        super().__init__()
        self.readable = False
        self.high_score_writes = []

    async def get_progress(self, user_id: str) -> UserProgress:
        if not self.readable:
            raise ConnectionError("store offline")
        return await super().get_progress(user_id)

    async def set_high_score(self, user_id: str, score: int) -> None:
        self.high_score_writes.append(score)
        await super().set_high_score(user_id, score)


class TestInMemoryProgressStore:
    """Tests for the bundled store."""

    @pytest.mark.asyncio
    async def test_unknown_user_starts_empty(self, store):
        progress = await store.get_progress("new")
        assert progress == UserProgress(user_id="new")

    @pytest.mark.asyncio
    async def test_high_score_only_increases(self, store):
        await store.set_high_score("ada", 50)
        await store.set_high_score("ada", 30)
        assert (await store.get_progress("ada")).high_score == 50

    @pytest.mark.asyncio
    async def test_completion_is_idempotent(self, store):
        await store.add_completed_challenge("ada", "array-sum")
        await store.add_completed_challenge("ada", "array-sum")
        assert (await store.get_progress("ada")).completed_challenge_ids == ["array-sum"]

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, store):
        progress = await store.get_progress("ada")
        progress.completed_challenge_ids.append("hacked")
        assert (await store.get_progress("ada")).completed_challenge_ids == []


class TestProgressTracker:
    """Tests for the tracker."""

    def test_award_updates_state(self, catalog):
        tracker = ProgressTracker(InMemoryProgressStore())
        state = tracker.award_challenge(initial_state(), catalog.get_by_id("find-bug"))
        assert state.score == 200
        assert state.solved == frozenset({"find-bug"})
        assert state.level == 2
        # Anonymous play never queues writes
        assert tracker.pending == 0

    @pytest.mark.asyncio
    async def test_award_skips_already_recorded(self, catalog, store):
        await store.add_completed_challenge("ada", "array-sum")
        tracker = ProgressTracker(store)
        await tracker.sign_in("ada")
        tracker.award_challenge(initial_state(), catalog.get_by_id("array-sum"))
        assert tracker.pending == 0

    @pytest.mark.asyncio
    async def test_high_score_only_when_beaten(self, store):
        await store.set_high_score("ada", 100)
        tracker = ProgressTracker(store)
        await tracker.sign_in("ada")
        assert not tracker.maybe_update_high_score(80)
        assert tracker.maybe_update_high_score(120)
        assert await tracker.flush() == 1
        assert tracker.high_score == 120

    @pytest.mark.asyncio
    async def test_sign_in_survives_store_failure(self):
        tracker = ProgressTracker(FailingStore())
        progress = await tracker.sign_in("ada")
        assert progress == UserProgress(user_id="ada")
        assert tracker.user_id == "ada"
        assert not tracker.loaded

    @pytest.mark.asyncio
    async def test_failed_writes_are_dropped(self, catalog):
        store = FailingStore()
        tracker = ProgressTracker(store)
        await tracker.sign_in("ada")

        state = tracker.award_challenge(initial_state(), catalog.get_by_id("array-sum"))
        # The record was never read, so the score is held rather than queued
        assert not tracker.maybe_update_high_score(state.score)
        assert tracker.pending == 1

        assert await tracker.flush() == 0
        assert tracker.pending == 0
        # sign-in read, retried read, challenge write
        assert store.calls == 3
        # Game state is unaffected by persistence failures
        assert state.score == 100
        assert state.solved == frozenset({"array-sum"})

    @pytest.mark.asyncio
    async def test_sign_out_clears_pending(self, store):
        tracker = ProgressTracker(store)
        await tracker.sign_in("ada")
        tracker.maybe_update_high_score(10)
        tracker.sign_out()
        assert tracker.pending == 0
        assert tracker.user_id is None
        assert await tracker.flush() == 0

    @pytest.mark.asyncio
    async def test_unread_record_is_never_overwritten(self):
        store = UnreadableStore()
        await store.set_high_score("ada", 500)
        store.high_score_writes.clear()
        tracker = ProgressTracker(store)
        await tracker.sign_in("ada")

        assert not tracker.maybe_update_high_score(30)
        assert await tracker.flush() == 0
        assert store.high_score_writes == []
        assert tracker.high_score == 0

        store.readable = True
        assert await tracker.flush() == 0
        assert tracker.loaded
        assert tracker.high_score == 500
        assert store.high_score_writes == []
        assert (await store.get_progress("ada")).high_score == 500

    @pytest.mark.asyncio
    async def test_held_score_written_once_record_loads(self):
        store = UnreadableStore()
        await store.set_high_score("ada", 500)
        store.high_score_writes.clear()
        tracker = ProgressTracker(store)
        await tracker.sign_in("ada")

        tracker.maybe_update_high_score(450)
        tracker.maybe_update_high_score(700)
        store.readable = True
        assert await tracker.flush() == 1
        assert store.high_score_writes == [700]
        assert tracker.high_score == 700
