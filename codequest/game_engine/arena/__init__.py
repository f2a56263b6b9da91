from codequest.game_engine.arena.engine import GameEngine, game_engine, get_engine
from codequest.game_engine.arena.grid import Direction, Position
from codequest.game_engine.arena.state import GameOverReason, GameState, Mode, initial_state

__all__ = [
    "GameEngine",
    "game_engine",
    "get_engine",
    "Direction",
    "Position",
    "GameOverReason",
    "GameState",
    "Mode",
    "initial_state",
]
