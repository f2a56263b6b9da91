"""Scoring and progress tracking.

Score changes are applied to the in-memory game state immediately. Anything
that must reach storage goes through an outbox that is drained asynchronously,
so a slow or failing store never blocks or rolls back play.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from codequest.core.metrics import record_challenge_solved
from codequest.game_engine.arena.state import GameState
from codequest.game_engine.exercises.challenges import Challenge
from codequest.services.progress_store import ProgressStore, UserProgress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingWrite:
    """One queued store request."""
    kind: str  # "high_score" or "challenge"
    user_id: str
    score: int = 0
    challenge_id: str = ""


class ProgressTracker:
    """Bridges game events and the progress store for the signed-in player.

    A high score is only written when it beats the stored record. If the
    record could not be read at sign-in, candidate scores are held back and
    the read is retried on the next flush.
    """

    def __init__(self, store: ProgressStore):
        self.store = store
        self.progress: Optional[UserProgress] = None
        self.loaded = False
        self._held_high_score = 0
        self._outbox: list[PendingWrite] = []

    @property
    def user_id(self) -> Optional[str]:
        return self.progress.user_id if self.progress else None

    @property
    def high_score(self) -> int:
        return self.progress.high_score if self.progress else 0

    @property
    def pending(self) -> int:
        return len(self._outbox)

    async def sign_in(self, user_id: str) -> UserProgress:
        """Attach a player identity and load their stored progress."""
        self._outbox.clear()
        self._held_high_score = 0
        self.progress = UserProgress(user_id=user_id)
        self.loaded = False
        await self._load()
        logger.info(f"Player {user_id} signed in (high score {self.progress.high_score})")
        return self.progress

    def sign_out(self) -> None:
        if self.progress:
            logger.info(f"Player {self.progress.user_id} signed out")
        self.progress = None
        self.loaded = False
        self._held_high_score = 0
        self._outbox.clear()

    def award_challenge(self, state: GameState, challenge: Challenge) -> GameState:
        """Credit a solved challenge and queue its completion."""
        solved = state.solved | {challenge.id}
        record_challenge_solved(challenge.id)

        progress = self.progress
        if progress and challenge.id not in progress.completed_challenge_ids:
            self._outbox.append(PendingWrite(
                kind="challenge",
                user_id=progress.user_id,
                challenge_id=challenge.id,
            ))

        return replace(
            state,
            score=state.score + challenge.points,
            solved=solved,
            level=1 + len(solved),
        )

    def maybe_update_high_score(self, score: int) -> bool:
        """Queue a high score write if the score beats the known record.

        Returns False when nothing was queued, including when the stored
        record is still unknown and the score is held for the next flush.
        """
        progress = self.progress
        if not progress:
            return False
        if not self.loaded:
            self._held_high_score = max(self._held_high_score, score)
            return False
        if score <= progress.high_score:
            return False
        self._outbox.append(PendingWrite(kind="high_score", user_id=progress.user_id, score=score))
        return True

    async def flush(self) -> int:
        """Drain the outbox. Returns the number of writes that succeeded."""
        if self.progress and not self.loaded:
            await self._load()

        written = 0
        while self._outbox:
            write = self._outbox.pop(0)
            try:
                if write.kind == "high_score":
                    await self.store.set_high_score(write.user_id, write.score)
                else:
                    await self.store.add_completed_challenge(write.user_id, write.challenge_id)
            except Exception:
                logger.exception(f"Failed to persist {write.kind} for {write.user_id}")
                continue

            written += 1
            self._apply(write)
        return written

    async def _load(self) -> None:
        user_id = self.progress.user_id
        try:
            stored = await self.store.get_progress(user_id)
        except Exception:
            logger.exception(f"Failed to load progress for {user_id}")
            return

        if self.progress is None or self.progress.user_id != user_id:
            return
        self.progress = stored
        self.loaded = True

        held, self._held_high_score = self._held_high_score, 0
        if held:
            self.maybe_update_high_score(held)

    def _apply(self, write: PendingWrite) -> None:
        progress = self.progress
        if not progress or progress.user_id != write.user_id:
            return
        if write.kind == "high_score":
            progress.high_score = max(progress.high_score, write.score)
        elif write.challenge_id not in progress.completed_challenge_ids:
            progress.completed_challenge_ids.append(write.challenge_id)
