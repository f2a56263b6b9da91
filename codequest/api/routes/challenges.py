"""Challenge catalog API routes. Solutions are never exposed."""

from typing import Any

from fastapi import APIRouter, Depends

from codequest.core.exceptions import not_found
from codequest.game_engine.arena.engine import GameEngine, get_engine

router = APIRouter()


@router.get("/")
async def list_challenges(engine: GameEngine = Depends(get_engine)) -> list[dict[str, Any]]:
    """List the catalog in slot-binding order."""
    return [
        {**challenge.to_dict(), "index": index}
        for index, challenge in enumerate(engine.catalog)
    ]


@router.get("/{challenge_id}")
async def get_challenge(
    challenge_id: str,
    engine: GameEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Get one challenge by id."""
    challenge = engine.catalog.get_by_id(challenge_id)
    if not challenge:
        raise not_found(f"Challenge {challenge_id} not found")
    data = challenge.to_dict()
    data["solved"] = challenge.id in engine.state.solved
    return data
