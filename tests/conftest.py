from dataclasses import replace
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from codequest.game_engine.arena.engine import GameEngine, get_engine
from codequest.game_engine.arena.grid import Direction, Position
from codequest.game_engine.arena.scoring import ProgressTracker
from codequest.game_engine.arena.state import ArenaConfig, GameState, Mode, initial_state
from codequest.game_engine.exercises.challenges import default_catalog
from codequest.main import app
from codequest.services.progress_store import InMemoryProgressStore


# Cell just left of each starting challenge tile, in catalog order
CHALLENGE_APPROACH = {
    0: Position(2, 3),   # (3, 3) -> array-sum
    1: Position(10, 5),  # (11, 5) -> find-bug
    2: Position(5, 12),  # (6, 12) -> list-comprehension
}


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def arena_config() -> ArenaConfig:
    return ArenaConfig()


@pytest.fixture
def store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def engine(catalog, arena_config, store) -> GameEngine:
    """A fresh engine with a fixed seed and default rules."""
    return GameEngine(
        catalog=catalog,
        tracker=ProgressTracker(store),
        config=arena_config,
        seed=1234,
    )


def running_state(snake: tuple[Position, ...], direction: Direction = Direction.RIGHT, **changes) -> GameState:
    """Initial layout with the snake placed and the game running."""
    fields = {
        "snake": snake,
        "direction": direction,
        "next_direction": direction,
        "mode": Mode.RUNNING,
    }
    fields.update(changes)
    return replace(initial_state(), **fields)


@pytest.fixture
def make_state() -> Callable[..., GameState]:
    return running_state


@pytest.fixture
def activate_challenge() -> Callable[[GameEngine, int], GameEngine]:
    """Steer the snake onto a starting challenge tile."""

    def _activate(engine: GameEngine, slot_index: int = 0) -> GameEngine:
        engine.state = running_state((CHALLENGE_APPROACH[slot_index],))
        engine.tick()
        assert engine.state.mode == Mode.CHALLENGE_ACTIVE
        return engine

    return _activate


@pytest_asyncio.fixture
async def client(engine) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client bound to the test engine."""
    app.dependency_overrides[get_engine] = lambda: engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
