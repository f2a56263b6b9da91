"""
Game session API routes.

One process-wide game session. Every endpoint returns the fresh snapshot (or
the verdict plus snapshot) so clients without a socket can still poll.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from codequest.core.exceptions import InvalidActionError, bad_request, conflict
from codequest.game_engine.arena.engine import GameEngine, get_engine
from codequest.game_engine.arena.grid import Direction

router = APIRouter()


# Request/Response models

class DirectionRequest(BaseModel):
    """Request to change the snake's heading."""

    direction: Direction


class RunCodeRequest(BaseModel):
    """Code submitted for the active challenge."""

    code: str = Field(default="", max_length=20_000)


class RunCodeResponse(BaseModel):
    """Judge verdict for a submission."""

    passed: bool
    results: list[dict[str, Any]]
    state: dict[str, Any]


class HintResponse(BaseModel):
    hint: str | None
    hints_revealed: int
    state: dict[str, Any]


class PlayerRequest(BaseModel):
    """Attach a player identity to the session."""

    user_id: str = Field(..., min_length=1, max_length=100)


class PlayerResponse(BaseModel):
    user_id: str | None
    high_score: int
    completed_challenge_ids: list[str]


def _state(engine: GameEngine) -> dict[str, Any]:
    return engine.snapshot().to_dict()


# Routes

@router.get("/state")
async def get_state(engine: GameEngine = Depends(get_engine)) -> dict[str, Any]:
    """Get the current render snapshot."""
    return _state(engine)


@router.post("/toggle")
async def toggle(engine: GameEngine = Depends(get_engine)) -> dict[str, Any]:
    """
    Start or pause the game.

    Idle starts a countdown; Running or Countdown pauses back to Idle.
    """
    engine.toggle_play()
    return _state(engine)


@router.post("/direction")
async def set_direction(
    request: DirectionRequest,
    engine: GameEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Buffer a direction change for the next step."""
    try:
        engine.set_direction(request.direction)
    except InvalidActionError as e:
        raise bad_request(e.message)
    return _state(engine)


@router.post("/run", response_model=RunCodeResponse)
async def run_code(
    request: RunCodeRequest,
    engine: GameEngine = Depends(get_engine),
) -> RunCodeResponse:
    """
    Judge code for the active challenge.

    A full pass awards the points, removes the tile and resumes play.
    """
    try:
        results = engine.submit_code(request.code)
    except InvalidActionError as e:
        raise conflict(e.message)

    await engine.tracker.flush()
    return RunCodeResponse(
        passed=bool(results) and all(r.passed for r in results),
        results=[r.to_dict() for r in results],
        state=_state(engine),
    )


@router.post("/skip")
async def skip(engine: GameEngine = Depends(get_engine)) -> dict[str, Any]:
    """Close the active challenge and resume play. The tile stays."""
    try:
        engine.skip_challenge()
    except InvalidActionError as e:
        raise conflict(e.message)
    return _state(engine)


@router.post("/hint", response_model=HintResponse)
async def hint(engine: GameEngine = Depends(get_engine)) -> HintResponse:
    """Reveal the next hint for the active challenge."""
    try:
        text = engine.request_hint()
    except InvalidActionError as e:
        raise conflict(e.message)
    return HintResponse(
        hint=text,
        hints_revealed=engine.state.hints_revealed,
        state=_state(engine),
    )


@router.post("/reset")
async def reset(engine: GameEngine = Depends(get_engine)) -> dict[str, Any]:
    """Restore the starting layout from any mode."""
    engine.reset()
    await engine.tracker.flush()
    return _state(engine)


@router.put("/player", response_model=PlayerResponse)
async def sign_in(
    request: PlayerRequest,
    engine: GameEngine = Depends(get_engine),
) -> PlayerResponse:
    """Sign a player in and load their stored progress."""
    await engine.sign_in(request.user_id)
    progress = engine.tracker.progress
    return PlayerResponse(
        user_id=progress.user_id if progress else None,
        high_score=progress.high_score if progress else 0,
        completed_challenge_ids=list(progress.completed_challenge_ids) if progress else [],
    )


@router.delete("/player", response_model=PlayerResponse)
async def sign_out(engine: GameEngine = Depends(get_engine)) -> PlayerResponse:
    """Sign the current player out. The game itself continues."""
    await engine.tracker.flush()
    engine.sign_out()
    return PlayerResponse(user_id=None, high_score=0, completed_challenge_ids=[])
