"""Arena simulation: one snake step per tick.

``advance`` is pure. It takes a state and an RNG and returns the next state
plus the event the step produced; the caller owns timing and side effects.
"""

import random
from dataclasses import dataclass, replace
from enum import Enum

from codequest.game_engine.arena.grid import Position
from codequest.game_engine.arena.state import (
    ArenaConfig,
    GameOverReason,
    GameState,
    Mode,
)
from codequest.game_engine.exercises.challenges import ChallengeCatalog


class ArenaEvent(str, Enum):
    NONE = "none"
    MOVED = "moved"
    FOOD = "food"
    CHALLENGE = "challenge"
    BUG = "bug"
    BUG_SPAWNED = "bug_spawned"
    STARTED = "started"  # Countdown(0) promoted to Running
    GAME_OVER = "game_over"


@dataclass(frozen=True)
class StepOutcome:
    state: GameState
    event: ArenaEvent


def random_empty_cell(
    occupied: set[Position],
    grid_size: int,
    rng: random.Random,
) -> Position:
    """Uniformly random free cell, by rejection sampling."""
    # A full board would make the sampling loop spin forever
    assert len(occupied) < grid_size * grid_size, "No empty cell left on the grid"
    while True:
        cell = Position(rng.randrange(grid_size), rng.randrange(grid_size))
        if cell not in occupied:
            return cell


def advance(
    state: GameState,
    catalog: ChallengeCatalog,
    config: ArenaConfig,
    rng: random.Random,
) -> StepOutcome:
    """Advance the arena by one step.

    Outside Running the state is returned untouched, except that a finished
    countdown is promoted to Running without moving.
    """
    if state.mode == Mode.COUNTDOWN and state.countdown == 0:
        return StepOutcome(state.with_mode(Mode.RUNNING, countdown=None), ArenaEvent.STARTED)
    if state.mode != Mode.RUNNING:
        return StepOutcome(state, ArenaEvent.NONE)

    direction = state.next_direction
    target = state.head.moved(direction)
    state = replace(state, direction=direction, ticks=state.ticks + 1)

    # Walls are checked before the head moves
    if not target.in_bounds(config.grid_size):
        return _game_over(state, GameOverReason.WALL)
    if target in state.snake[1:]:
        return _game_over(state, GameOverReason.SELF)

    grown = (target,) + state.snake

    if target in state.food:
        food = tuple(p for p in state.food if p != target)
        occupied = state.occupied() | {target}
        replacement = random_empty_cell(occupied, config.grid_size, rng)
        return StepOutcome(
            replace(
                state,
                snake=grown,
                food=food + (replacement,),
                score=state.score + config.food_points,
            ),
            ArenaEvent.FOOD,
        )

    slot = next((s for s in state.challenges if s.position == target), None)
    if slot is not None:
        return StepOutcome(
            state.with_mode(
                Mode.CHALLENGE_ACTIVE,
                snake=grown[:-1],
                active_challenge=catalog.get_by_index(slot.catalog_index),
                active_slot=slot,
                hints_revealed=0,
                test_results=(),
            ),
            ArenaEvent.CHALLENGE,
        )

    if target in state.bugs:
        trimmed = grown[:-2] if len(grown) > 2 else grown[:-1]
        bugs = tuple(b for b in state.bugs if b != target)
        state = replace(state, snake=trimmed or (target,), bugs=bugs)
        if state.score - config.bug_penalty < 0:
            return _game_over(state, GameOverReason.BUG, score=0)
        return StepOutcome(
            replace(state, score=state.score - config.bug_penalty),
            ArenaEvent.BUG,
        )

    if len(state.bugs) < config.bug_floor:
        occupied = state.occupied() | {target}
        bug = random_empty_cell(occupied, config.grid_size, rng)
        return StepOutcome(
            replace(state, snake=grown[:-1], bugs=state.bugs + (bug,)),
            ArenaEvent.BUG_SPAWNED,
        )

    return StepOutcome(replace(state, snake=grown[:-1]), ArenaEvent.MOVED)


def _game_over(state: GameState, reason: GameOverReason, **changes) -> StepOutcome:
    return StepOutcome(
        state.with_mode(Mode.GAME_OVER, game_over_reason=reason, **changes),
        ArenaEvent.GAME_OVER,
    )
