"""Unit tests for the game state machine."""

import pytest

from codequest.core.exceptions import InvalidActionError
from codequest.game_engine.arena.engine import (
    GameEngine,
    change_direction,
    countdown_tick,
    toggle_play,
)
from codequest.game_engine.arena.grid import Direction, Position
from codequest.game_engine.arena.simulation import ArenaEvent
from codequest.game_engine.arena.state import ArenaConfig, GameOverReason, Mode, initial_state
from codequest.game_engine.exercises.judge import ResultType


ARRAY_SUM_SOLUTION = "def array_sum(numbers):\n    return sum(numbers)"


class TestTransitions:
    """Tests for the pure transition functions."""

    def test_toggle_from_idle_starts_countdown(self, arena_config):
        state = toggle_play(initial_state(), arena_config)
        assert state.mode == Mode.COUNTDOWN
        assert state.countdown == 3

    def test_toggle_pauses_running_and_countdown(self, arena_config, make_state):
        assert toggle_play(make_state((Position(7, 7),)), arena_config).mode == Mode.IDLE
        counting = toggle_play(initial_state(), arena_config)
        paused = toggle_play(counting, arena_config)
        assert paused.mode == Mode.IDLE
        assert paused.countdown is None

    def test_toggle_ignored_in_challenge_and_game_over(self, arena_config):
        for mode in (Mode.CHALLENGE_ACTIVE, Mode.GAME_OVER):
            state = initial_state().with_mode(mode)
            assert toggle_play(state, arena_config) is state

    def test_countdown_reaches_zero_then_runs(self, arena_config):
        state = toggle_play(initial_state(), arena_config)
        seen = []
        while state.mode == Mode.COUNTDOWN:
            seen.append(state.countdown)
            state = countdown_tick(state)
        assert seen == [3, 2, 1, 0]
        assert state.mode == Mode.RUNNING
        assert state.countdown is None

    def test_direction_ignored_outside_play(self, arena_config):
        for mode in (Mode.COUNTDOWN, Mode.CHALLENGE_ACTIVE, Mode.GAME_OVER):
            state = initial_state().with_mode(mode)
            assert change_direction(state, Direction.UP, arena_config) is state

    def test_direction_buffered_while_idle(self, arena_config):
        state = change_direction(initial_state(), Direction.DOWN, arena_config)
        assert state.next_direction == Direction.DOWN
        assert state.direction == Direction.RIGHT

    def test_reverse_guard_is_opt_in(self, make_state):
        state = make_state((Position(5, 5), Position(4, 5)))
        allowed = change_direction(state, Direction.LEFT, ArenaConfig())
        assert allowed.next_direction == Direction.LEFT
        blocked = change_direction(state, Direction.LEFT, ArenaConfig(block_reverse_direction=True))
        assert blocked.next_direction == Direction.RIGHT


class TestGameEngine:
    """Tests for the engine shell."""

    def test_starts_idle_at_initial_layout(self, engine):
        assert engine.state == initial_state()
        assert engine.version == 0

    def test_version_bumps_on_change_only(self, engine):
        engine.tick()
        assert engine.version == 0
        engine.toggle_play()
        assert engine.version == 1

    def test_countdown_epoch_changes_on_start_and_cancel(self, engine):
        start = engine.countdown_epoch
        engine.toggle_play()
        assert engine.countdown_epoch == start + 1
        engine.toggle_play()
        assert engine.countdown_epoch == start + 2
        assert engine.state.countdown is None

    def test_listeners_are_notified(self, engine):
        calls = []
        engine.subscribe(lambda e: calls.append(e.state.mode))
        engine.toggle_play()
        assert calls == [Mode.COUNTDOWN]

    def test_unknown_direction(self, engine):
        with pytest.raises(InvalidActionError):
            engine.set_direction("SIDEWAYS")

    def test_direction_from_string(self, engine):
        engine.set_direction("up")
        assert engine.state.next_direction == Direction.UP

    def test_submit_without_challenge(self, engine):
        with pytest.raises(InvalidActionError):
            engine.submit_code(ARRAY_SUM_SOLUTION)

    def test_solving_awards_and_resumes(self, engine, activate_challenge):
        activate_challenge(engine, 0)
        results = engine.submit_code(ARRAY_SUM_SOLUTION)
        state = engine.state

        assert all(r.passed for r in results)
        assert state.mode == Mode.RUNNING
        assert state.score == 100
        assert state.solved == frozenset({"array-sum"})
        assert state.level == 2
        assert state.active_challenge is None
        assert [s.position for s in state.challenges] == [Position(11, 5), Position(6, 12)]
        assert state.test_results == tuple(results)

    def test_failed_submission_stays_active(self, engine, activate_challenge):
        activate_challenge(engine, 0)
        results = engine.submit_code("def array_sum(numbers):\n    return 0")
        assert engine.state.mode == Mode.CHALLENGE_ACTIVE
        assert engine.state.score == 0
        assert engine.state.test_results == tuple(results)
        assert results[0].type == ResultType.FAILURE

    def test_skip_keeps_tile(self, engine, activate_challenge):
        activate_challenge(engine, 1)
        engine.submit_code("def count_down(n):\n    return 'nope'\n\n\n\n")
        engine.skip_challenge()
        state = engine.state
        assert state.mode == Mode.RUNNING
        assert state.active_challenge is None
        assert state.test_results == ()
        assert state.score == 0
        assert len(state.challenges) == 3

    def test_skip_without_challenge(self, engine):
        with pytest.raises(InvalidActionError):
            engine.skip_challenge()

    def test_hints_reveal_in_order(self, engine, activate_challenge, catalog):
        activate_challenge(engine, 2)
        hints = catalog.get_by_id("list-comprehension").hints
        revealed = [engine.request_hint() for _ in hints]
        assert revealed == list(hints)
        assert engine.request_hint() is None
        assert engine.state.hints_revealed == len(hints)

    def test_hint_without_challenge(self, engine):
        with pytest.raises(InvalidActionError):
            engine.request_hint()

    def test_reset_from_any_mode(self, engine, activate_challenge):
        activate_challenge(engine, 0)
        engine.submit_code(ARRAY_SUM_SOLUTION)
        engine.reset()
        assert engine.state == initial_state()
        engine.reset()
        assert engine.state == initial_state()

    def test_game_over_is_terminal(self, engine, make_state):
        engine.state = make_state((Position(14, 7),))
        assert engine.tick() == ArenaEvent.GAME_OVER
        assert engine.state.game_over_reason == GameOverReason.WALL
        engine.toggle_play()
        engine.set_direction(Direction.LEFT)
        assert engine.tick() == ArenaEvent.NONE
        assert engine.state.mode == Mode.GAME_OVER

    def test_snapshot_hides_solution(self, engine, activate_challenge):
        activate_challenge(engine, 0)
        engine.request_hint()
        data = engine.snapshot().to_dict()
        assert data["mode"] == "challenge_active"
        assert "solution" not in data["active_challenge"]
        assert len(data["active_challenge"]["hints"]) == 1
        assert data["grid_size"] == 15

    def test_seeded_engines_agree(self, catalog, make_state):
        states = []
        for _ in range(2):
            engine = GameEngine(catalog=catalog, config=ArenaConfig(), seed=99)
            engine.state = make_state((Position(11, 10),))
            engine.tick()
            states.append(engine.state.food)
        assert states[0] == states[1]


class TestHighScore:
    """Tests for persistence triggered by game events."""

    @pytest.mark.asyncio
    async def test_game_over_records_high_score(self, engine, store, make_state):
        await engine.sign_in("ada")
        engine.state = make_state((Position(14, 7),), score=70)
        engine.tick()
        await engine.tracker.flush()
        progress = await store.get_progress("ada")
        assert progress.high_score == 70

    @pytest.mark.asyncio
    async def test_bug_game_over_records_score_before_penalty(self, engine, store, make_state):
        await engine.sign_in("ada")
        engine.state = make_state((Position(7, 11),), score=15)
        engine.tick()
        assert engine.state.score == 0
        await engine.tracker.flush()
        assert (await store.get_progress("ada")).high_score == 15

    @pytest.mark.asyncio
    async def test_solving_records_completion(self, engine, store, activate_challenge):
        await engine.sign_in("ada")
        activate_challenge(engine, 0)
        engine.submit_code(ARRAY_SUM_SOLUTION)
        await engine.tracker.flush()
        progress = await store.get_progress("ada")
        assert progress.completed_challenge_ids == ["array-sum"]
        assert engine.snapshot().to_dict()["user_id"] == "ada"
