"""
Game loop service.

Drives the session's two timers on the asyncio event loop and pushes a fresh
snapshot to WebSocket subscribers after every state change:

- arena timer: one snake step every ``tick_interval_ms``
- countdown timer: one countdown step every ``countdown_interval_ms``

A pending countdown step is dropped if the countdown was cancelled or
restarted while it was sleeping.
"""

import asyncio
import logging
from typing import Any, Optional

from codequest.api.websocket.manager import ConnectionManager, manager
from codequest.config import settings
from codequest.game_engine.arena.engine import GameEngine, game_engine
from codequest.game_engine.arena.state import Mode

logger = logging.getLogger(__name__)


class GameLoop:
    """Background timers and snapshot publishing for one engine."""

    def __init__(
        self,
        engine: GameEngine,
        connections: ConnectionManager,
        tick_interval: Optional[float] = None,
        countdown_interval: Optional[float] = None,
    ):
        self.engine = engine
        self.connections = connections
        self.tick_interval = tick_interval or settings.tick_interval_ms / 1000
        self.countdown_interval = countdown_interval or settings.countdown_interval_ms / 1000

        self._tasks: list[asyncio.Task] = []
        self._running = False
        self._changed = asyncio.Event()
        self._countdown_armed = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the timers and the publisher."""
        if self._running:
            return
        self._running = True
        self._changed = asyncio.Event()
        self._countdown_armed = asyncio.Event()
        self.engine.subscribe(self._on_change)
        if self.engine.state.mode == Mode.COUNTDOWN:
            self._countdown_armed.set()

        self._tasks = [
            asyncio.create_task(self._arena_loop(), name="arena-timer"),
            asyncio.create_task(self._countdown_loop(), name="countdown-timer"),
            asyncio.create_task(self._publish_loop(), name="snapshot-publisher"),
        ]
        logger.info(
            f"Game loop started (tick {self.tick_interval}s, countdown {self.countdown_interval}s)"
        )

    async def stop(self) -> None:
        """Cancel all timers."""
        if not self._running:
            return
        self._running = False
        self.engine.unsubscribe(self._on_change)
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Game loop stopped")

    def _on_change(self, engine: GameEngine) -> None:
        self._changed.set()
        if engine.state.mode == Mode.COUNTDOWN:
            self._countdown_armed.set()

    async def publish(self) -> int:
        """Flush pending progress writes and broadcast the current snapshot."""
        await self.engine.tracker.flush()
        return await self.connections.broadcast(self.snapshot_message())

    def snapshot_message(self) -> dict[str, Any]:
        return {"type": "game_state", "data": self.engine.snapshot().to_dict()}

    async def _arena_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.tick_interval)
            try:
                self.engine.tick()
            except Exception:
                # Keep the timer alive; the next tick retries from the same state
                logger.exception("Arena tick failed")

    async def _countdown_loop(self) -> None:
        while self._running:
            await self._countdown_armed.wait()
            self._countdown_armed.clear()

            epoch = self.engine.countdown_epoch
            while self.engine.state.mode == Mode.COUNTDOWN:
                await asyncio.sleep(self.countdown_interval)
                if self.engine.countdown_epoch != epoch:
                    break
                self.engine.countdown_tick()

    async def _publish_loop(self) -> None:
        while self._running:
            await self._changed.wait()
            self._changed.clear()
            try:
                await self.publish()
            except Exception:
                logger.exception("Snapshot publish failed")


game_loop = GameLoop(game_engine, manager)
