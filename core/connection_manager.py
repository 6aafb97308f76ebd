import asyncio
import logging
from typing import Any, List, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Fan-out of poll events to every connected WebSocket client."""

    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self._pending: Set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"WebSocket connected ({len(self.active_connections)} active)")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info(f"WebSocket disconnected ({len(self.active_connections)} active)")

    async def broadcast(self, message: dict[str, Any]) -> None:
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"Dropping WebSocket after failed send: {e}")
                self.disconnect(connection)

    async def redirect(self, websocket: WebSocket, location: str) -> None:
        self.disconnect(websocket)
        try:
            await websocket.send_json({"type": "redirect", "data": {"location": location}})
            await websocket.close(code=4401)
        except Exception as e:
            logger.warning(f"Could not redirect WebSocket: {e}")

    def schedule_redirect(self, websocket: WebSocket, location: str) -> None:
        task = asyncio.get_running_loop().create_task(self.redirect(websocket, location))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


manager = ConnectionManager()
