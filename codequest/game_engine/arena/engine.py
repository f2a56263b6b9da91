"""
CodeQuest game engine.

The state machine is a set of pure transition functions over GameState.
GameEngine is the thin mutable shell around them: it owns the current state,
the RNG and the collaborators, and swaps in each new state with a single
assignment.

Modes:
    IDLE -> COUNTDOWN -> RUNNING <-> CHALLENGE_ACTIVE
    RUNNING -> GAME_OVER (terminal until reset)
"""

import logging
import random
from dataclasses import replace
from typing import Callable, Optional

from codequest.config import settings
from codequest.core.exceptions import InvalidActionError
from codequest.core.metrics import record_arena_tick, record_game_over
from codequest.game_engine.arena.grid import Direction
from codequest.game_engine.arena.scoring import ProgressTracker
from codequest.game_engine.arena.simulation import ArenaEvent, advance
from codequest.game_engine.arena.state import (
    ArenaConfig,
    GameSnapshot,
    GameState,
    Mode,
    initial_state,
)
from codequest.game_engine.exercises.challenges import ChallengeCatalog, default_catalog
from codequest.game_engine.exercises.judge import SolutionJudge, TestResult
from codequest.services.progress_store import InMemoryProgressStore

logger = logging.getLogger(__name__)


def toggle_play(state: GameState, config: ArenaConfig) -> GameState:
    """Start a countdown from Idle, or pause a running or counting game."""
    if state.mode == Mode.IDLE:
        return state.with_mode(Mode.COUNTDOWN, countdown=config.countdown_start)
    if state.mode in (Mode.RUNNING, Mode.COUNTDOWN):
        return state.with_mode(Mode.IDLE, countdown=None)
    return state


def countdown_tick(state: GameState) -> GameState:
    """One countdown step. Reaching zero is shown once, then play starts."""
    if state.mode != Mode.COUNTDOWN or state.countdown is None:
        return state
    if state.countdown > 0:
        return replace(state, countdown=state.countdown - 1)
    return state.with_mode(Mode.RUNNING, countdown=None)


def change_direction(state: GameState, direction: Direction, config: ArenaConfig) -> GameState:
    """Buffer a heading for the next step."""
    if state.mode in (Mode.COUNTDOWN, Mode.CHALLENGE_ACTIVE, Mode.GAME_OVER):
        return state
    if (
        config.block_reverse_direction
        and len(state.snake) > 1
        and direction.is_opposite(state.direction)
    ):
        return state
    return replace(state, next_direction=direction)


def skip_challenge(state: GameState) -> GameState:
    """Close the active challenge without solving it. Its tile stays."""
    if state.mode != Mode.CHALLENGE_ACTIVE:
        raise InvalidActionError("No active challenge to skip", "no_active_challenge")
    return state.with_mode(
        Mode.RUNNING,
        active_challenge=None,
        active_slot=None,
        hints_revealed=0,
        test_results=(),
    )


def reveal_hint(state: GameState) -> GameState:
    """Reveal the next hint of the active challenge, if any are left."""
    challenge = state.active_challenge
    if state.mode != Mode.CHALLENGE_ACTIVE or challenge is None:
        raise InvalidActionError("No active challenge", "no_active_challenge")
    if state.hints_revealed >= len(challenge.hints):
        return state
    return replace(state, hints_revealed=state.hints_revealed + 1)


def parse_direction(value: "Direction | str") -> Direction:
    if isinstance(value, Direction):
        return value
    try:
        return Direction(str(value).upper())
    except ValueError:
        raise InvalidActionError(f"Unknown direction: {value}", "invalid_direction") from None


Listener = Callable[["GameEngine"], None]


class GameEngine:
    """Owns one game session and applies every transition to it."""

    def __init__(
        self,
        catalog: Optional[ChallengeCatalog] = None,
        judge: Optional[SolutionJudge] = None,
        tracker: Optional[ProgressTracker] = None,
        config: Optional[ArenaConfig] = None,
        seed: Optional[int] = None,
    ):
        self.catalog = catalog or default_catalog()
        self.judge = judge or SolutionJudge(self.catalog)
        self.tracker = tracker or ProgressTracker(InMemoryProgressStore())
        self.config = config or ArenaConfig.from_settings()
        self.rng = random.Random(seed)

        self.state: GameState = initial_state()
        self.version = 0
        self.countdown_epoch = 0  # Bumped whenever a countdown starts or is cancelled
        self._listeners: list[Listener] = []

    # -- Subscriptions ------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        """Call ``listener(engine)`` after every state change."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _commit(self, new_state: GameState, peak_score: Optional[int] = None) -> None:
        old_state = self.state
        if new_state is old_state:
            return

        if (new_state.mode == Mode.COUNTDOWN) != (old_state.mode == Mode.COUNTDOWN):
            self.countdown_epoch += 1

        self.state = new_state
        self.version += 1

        if new_state.mode == Mode.GAME_OVER and old_state.mode != Mode.GAME_OVER:
            reason = new_state.game_over_reason.value if new_state.game_over_reason else "unknown"
            record_game_over(reason)
            final = max(new_state.score, peak_score or 0)
            logger.info(f"Game over ({reason}) with score {final}")
            self.tracker.maybe_update_high_score(final)

        for listener in list(self._listeners):
            listener(self)

    # -- Timers -------------------------------------------------------------

    def tick(self) -> ArenaEvent:
        """Advance the arena one step."""
        before = self.state
        outcome = advance(before, self.catalog, self.config, self.rng)
        if outcome.event != ArenaEvent.NONE:
            record_arena_tick(outcome.event.value)
        if outcome.event == ArenaEvent.CHALLENGE and outcome.state.active_challenge:
            logger.info(f"Challenge {outcome.state.active_challenge.id} activated")
        self._commit(outcome.state, peak_score=before.score)
        return outcome.event

    def countdown_tick(self) -> None:
        self._commit(countdown_tick(self.state))

    # -- Player input -------------------------------------------------------

    def toggle_play(self) -> Mode:
        self._commit(toggle_play(self.state, self.config))
        return self.state.mode

    def set_direction(self, direction: "Direction | str") -> None:
        self._commit(change_direction(self.state, parse_direction(direction), self.config))

    def submit_code(self, source: str) -> list[TestResult]:
        """Judge a submission for the active challenge.

        A full pass credits the challenge, removes its tile and resumes play.

        Raises:
            InvalidActionError: No challenge is active
        """
        state = self.state
        challenge = state.active_challenge
        if state.mode != Mode.CHALLENGE_ACTIVE or challenge is None:
            raise InvalidActionError("No active challenge", "no_active_challenge")

        results = self.judge.evaluate(challenge, source)
        state = replace(state, test_results=tuple(results))

        if results and all(r.passed for r in results):
            state = self.tracker.award_challenge(state, challenge)
            state = state.with_mode(
                Mode.RUNNING,
                challenges=tuple(s for s in state.challenges if s != state.active_slot),
                active_challenge=None,
                active_slot=None,
                hints_revealed=0,
            )
            logger.info(f"Challenge {challenge.id} solved (+{challenge.points}), score {state.score}")

        self._commit(state)
        return results

    def skip_challenge(self) -> None:
        self._commit(skip_challenge(self.state))

    def request_hint(self) -> Optional[str]:
        """Reveal the next hint and return it, or None when all are shown."""
        before = self.state.hints_revealed
        self._commit(reveal_hint(self.state))
        state = self.state
        if state.hints_revealed == before or state.active_challenge is None:
            return None
        return state.active_challenge.hints[state.hints_revealed - 1]

    def reset(self) -> None:
        """Replace the whole state with the starting layout."""
        self.countdown_epoch += 1
        self._commit(initial_state())
        logger.info("Game reset")

    # -- Players ------------------------------------------------------------

    async def sign_in(self, user_id: str) -> None:
        await self.tracker.sign_in(user_id)
        self._touch()

    def sign_out(self) -> None:
        self.tracker.sign_out()
        self._touch()

    def _touch(self) -> None:
        self.version += 1
        for listener in list(self._listeners):
            listener(self)

    # -- Views --------------------------------------------------------------

    def snapshot(self) -> GameSnapshot:
        return GameSnapshot(
            grid_size=self.config.grid_size,
            state=self.state,
            high_score=self.tracker.high_score,
            user_id=self.tracker.user_id,
            version=self.version,
        )


# Global engine instance
game_engine = GameEngine(seed=settings.game_seed)


def get_engine() -> GameEngine:
    """FastAPI dependency returning the process-wide engine."""
    return game_engine
