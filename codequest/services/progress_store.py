"""
Player progress persistence.

The game only needs three operations from storage: load a player's record,
raise their high score and add a completed challenge. Storage itself lives
behind the ProgressStore protocol; the bundled implementation keeps records
in memory for a single process.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass
class UserProgress:
    """Persisted progress for one player."""

    user_id: str
    high_score: int = 0
    completed_challenge_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "high_score": self.high_score,
            "completed_challenge_ids": list(self.completed_challenge_ids),
        }


class ProgressStore(Protocol):
    """Storage backend for player progress."""

    async def get_progress(self, user_id: str) -> UserProgress:
        ...

    async def set_high_score(self, user_id: str, score: int) -> None:
        ...

    async def add_completed_challenge(self, user_id: str, challenge_id: str) -> None:
        ...


class InMemoryProgressStore:
    """Process-local store. Both writes are idempotent."""

    def __init__(self):
        self._records: dict[str, UserProgress] = {}

    def _record(self, user_id: str) -> UserProgress:
        if user_id not in self._records:
            self._records[user_id] = UserProgress(user_id=user_id)
        return self._records[user_id]

    async def get_progress(self, user_id: str) -> UserProgress:
        record = self._record(user_id)
        # Callers get a copy so they cannot mutate stored state
        return UserProgress(
            user_id=record.user_id,
            high_score=record.high_score,
            completed_challenge_ids=list(record.completed_challenge_ids),
        )

    async def set_high_score(self, user_id: str, score: int) -> None:
        record = self._record(user_id)
        if score > record.high_score:
            record.high_score = score
            logger.info(f"New high score for {user_id}: {score}")

    async def add_completed_challenge(self, user_id: str, challenge_id: str) -> None:
        record = self._record(user_id)
        if challenge_id not in record.completed_challenge_ids:
            record.completed_challenge_ids.append(challenge_id)
