import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from fastapi import WebSocket

from codequest.core.metrics import WEBSOCKET_CONNECTIONS

logger = logging.getLogger(__name__)


@dataclass
class ConnectionInfo:
    """Information about a WebSocket subscriber."""

    websocket: WebSocket
    connection_id: UUID
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConnectionManager:
    """Tracks snapshot subscribers for the game session."""

    def __init__(self):
        self._connections: dict[UUID, ConnectionInfo] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> UUID:
        """Accept a new WebSocket connection and return its id."""
        await websocket.accept()
        connection_id = uuid4()
        async with self._lock:
            self._connections[connection_id] = ConnectionInfo(
                websocket=websocket,
                connection_id=connection_id,
            )
        WEBSOCKET_CONNECTIONS.inc()
        logger.debug(f"WebSocket {connection_id} connected")
        return connection_id

    async def disconnect(self, connection_id: UUID) -> None:
        """Handle disconnection."""
        async with self._lock:
            conn = self._connections.pop(connection_id, None)
        if conn:
            WEBSOCKET_CONNECTIONS.dec()
            logger.debug(f"WebSocket {connection_id} disconnected")

    async def send_personal(self, connection_id: UUID, message: dict[str, Any]) -> bool:
        """Send a message to one subscriber."""
        conn = self._connections.get(connection_id)
        if conn:
            try:
                await conn.websocket.send_json(message)
                return True
            except Exception:
                await self.disconnect(connection_id)
        return False

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Send a message to every subscriber. Returns how many received it."""
        sent_count = 0
        for connection_id in list(self._connections):
            if await self.send_personal(connection_id, message):
                sent_count += 1
        return sent_count

    def is_connected(self, connection_id: UUID) -> bool:
        return connection_id in self._connections

    def get_connection_count(self) -> int:
        """Get total number of connections."""
        return len(self._connections)


manager = ConnectionManager()
