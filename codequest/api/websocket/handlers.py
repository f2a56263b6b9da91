import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from codequest.api.websocket.manager import manager
from codequest.core.exceptions import InvalidActionError
from codequest.game_engine.arena.engine import GameEngine, game_engine

logger = logging.getLogger(__name__)


class WebSocketHandler:
    """Handles player messages arriving over the snapshot socket."""

    def __init__(self, engine: GameEngine):
        self.engine = engine

    def state_message(self) -> dict[str, Any]:
        return {"type": "game_state", "data": self.engine.snapshot().to_dict()}

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Handle an incoming WebSocket message.

        State-changing messages return nothing; the game loop pushes the new
        snapshot to every subscriber.
        """
        msg_type = message.get("type")

        if msg_type == "ping":
            return {"type": "pong"}

        elif msg_type == "get_state":
            return self.state_message()

        elif msg_type == "direction":
            direction = message.get("direction")
            if not direction:
                return {"type": "error", "message": "Missing direction"}
            try:
                self.engine.set_direction(direction)
            except InvalidActionError as e:
                return {"type": "error", "message": e.message}
            return None

        elif msg_type == "toggle":
            self.engine.toggle_play()
            return None

        return {"type": "error", "message": f"Unknown message type: {msg_type}"}


ws_handler = WebSocketHandler(game_engine)


async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint streaming game snapshots and accepting input."""
    connection_id = await manager.connect(websocket)

    try:
        await websocket.send_json(ws_handler.state_message())

        while True:
            try:
                data = await websocket.receive_text()
                message = json.loads(data)
                if not isinstance(message, dict):
                    raise ValueError("message must be an object")

                response = await ws_handler.handle_message(message)
                if response:
                    await websocket.send_json(response)

            except (json.JSONDecodeError, ValueError):
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})

    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(connection_id)
