"""Game state for the arena.

GameState is immutable. Every transition builds a new value with
``dataclasses.replace`` and the engine swaps it in with a single assignment,
so a half-applied update is never observable.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from codequest.config import settings
from codequest.game_engine.arena.grid import Direction, Position
from codequest.game_engine.exercises.challenges import Challenge
from codequest.game_engine.exercises.judge import TestResult


class Mode(str, Enum):
    """Lifecycle mode of a game."""
    IDLE = "idle"
    COUNTDOWN = "countdown"
    RUNNING = "running"
    CHALLENGE_ACTIVE = "challenge_active"
    GAME_OVER = "game_over"


class GameOverReason(str, Enum):
    WALL = "wall"
    SELF = "self"
    BUG = "bug"


@dataclass(frozen=True)
class ChallengeSlot:
    """A challenge tile and the catalog entry it was bound to at creation."""
    position: Position
    catalog_index: int


@dataclass(frozen=True)
class ArenaConfig:
    """Tunable rules of the arena."""
    grid_size: int = 15
    food_points: int = 10
    bug_penalty: int = 20
    bug_floor: int = 3
    countdown_start: int = 3
    block_reverse_direction: bool = False

    @classmethod
    def from_settings(cls) -> "ArenaConfig":
        return cls(
            grid_size=settings.grid_size,
            food_points=settings.food_points,
            bug_penalty=settings.bug_penalty,
            bug_floor=settings.bug_floor,
            countdown_start=settings.countdown_start,
            block_reverse_direction=settings.block_reverse_direction,
        )


@dataclass(frozen=True)
class GameState:
    """Complete state of one game session."""
    snake: tuple[Position, ...]  # Head first, never empty
    direction: Direction
    next_direction: Direction  # Buffered input, applied on the next step
    food: tuple[Position, ...]
    challenges: tuple[ChallengeSlot, ...]
    bugs: tuple[Position, ...]
    score: int = 0
    level: int = 1
    mode: Mode = Mode.IDLE
    game_over_reason: Optional[GameOverReason] = None
    active_challenge: Optional[Challenge] = None
    active_slot: Optional[ChallengeSlot] = None
    solved: frozenset[str] = field(default_factory=frozenset)
    countdown: Optional[int] = None
    hints_revealed: int = 0
    test_results: tuple[TestResult, ...] = ()
    ticks: int = 0

    @property
    def head(self) -> Position:
        return self.snake[0]

    def occupied(self) -> set[Position]:
        """Every cell holding the snake or an entity."""
        cells = set(self.snake)
        cells.update(self.food)
        cells.update(self.bugs)
        cells.update(slot.position for slot in self.challenges)
        return cells

    def with_mode(self, mode: Mode, **changes: Any) -> "GameState":
        return replace(self, mode=mode, **changes)


def initial_state() -> GameState:
    """The fixed starting layout. Reset returns here."""
    return GameState(
        snake=(Position(7, 7),),
        direction=Direction.RIGHT,
        next_direction=Direction.RIGHT,
        food=(Position(12, 10),),
        challenges=(
            ChallengeSlot(Position(3, 3), 0),
            ChallengeSlot(Position(11, 5), 1),
            ChallengeSlot(Position(6, 12), 2),
        ),
        bugs=(Position(8, 11), Position(13, 3), Position(2, 9)),
    )


@dataclass(frozen=True)
class GameSnapshot:
    """Read-only render record handed to the presentation layer."""
    grid_size: int
    state: GameState
    high_score: int = 0
    user_id: Optional[str] = None
    version: int = 0

    def to_dict(self) -> dict[str, Any]:
        state = self.state
        cells = (
            [{"x": p.x, "y": p.y, "type": "food"} for p in state.food]
            + [
                {"x": s.position.x, "y": s.position.y, "type": "challenge"}
                for s in state.challenges
            ]
            + [{"x": p.x, "y": p.y, "type": "bug"} for p in state.bugs]
        )
        return {
            "grid_size": self.grid_size,
            "snake": [{"x": p.x, "y": p.y} for p in state.snake],
            "direction": state.direction.value,
            "cells": cells,
            "score": state.score,
            "level": state.level,
            "mode": state.mode.value,
            "game_over_reason": state.game_over_reason.value if state.game_over_reason else None,
            "countdown": state.countdown,
            "active_challenge": self._challenge_view(state),
            "test_results": [r.to_dict() for r in state.test_results],
            "solved": sorted(state.solved),
            "high_score": self.high_score,
            "user_id": self.user_id,
            "ticks": state.ticks,
            "version": self.version,
        }

    @staticmethod
    def _challenge_view(state: GameState) -> Optional[dict[str, Any]]:
        challenge = state.active_challenge
        if challenge is None:
            return None
        view = challenge.to_dict(include_solution=False)
        view["hints"] = list(challenge.hints[: state.hints_revealed])
        view["hints_total"] = len(challenge.hints)
        return view
