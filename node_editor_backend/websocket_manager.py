"""
Change notifications for connected editor views and scripted clients.

Every message is a JSON object with a ``type`` key:

    graph_updated  {"graph_id"}             the open graph changed
    graph_saved    {"graph_id", "version"}  a version was stored

Clients react to ``graph_updated`` by fetching GET /api/editor.
"""
import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)

GRAPH_UPDATED = "graph_updated"
GRAPH_SAVED = "graph_saved"


class WebSocketManager:
    """Registry of open sockets with fan-out of change messages."""

    def __init__(self):
        self._clients: list[WebSocket] = []
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients.append(websocket)
            count = len(self._clients)
        logger.info(f"Client connected ({count} open)")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self._clients:
                self._clients.remove(websocket)
            count = len(self._clients)
        logger.info(f"Client disconnected ({count} open)")

    async def broadcast(self, message: dict) -> int:
        """
        Send ``message`` to every client concurrently.

        Clients whose send fails are unregistered. Returns the number of
        clients that received the message.
        """
        async with self._lock:
            recipients = list(self._clients)
        if not recipients:
            return 0

        text = json.dumps(message)
        results = await asyncio.gather(
            *(ws.send_text(text) for ws in recipients), return_exceptions=True
        )

        dead = [ws for ws, result in zip(recipients, results) if isinstance(result, Exception)]
        if dead:
            async with self._lock:
                self._clients = [ws for ws in self._clients if ws not in dead]
            logger.warning(f"Dropped {len(dead)} client(s) after failed {message.get('type')} send")
        return len(recipients) - len(dead)

    async def notify(self, event_type: str, **payload: Any) -> int:
        return await self.broadcast({"type": event_type, **payload})

    async def notify_graph_updated(self, graph_id: Optional[str] = None) -> int:
        return await self.notify(GRAPH_UPDATED, graph_id=graph_id)

    async def notify_graph_saved(self, graph_id: str, version: int) -> int:
        return await self.notify(GRAPH_SAVED, graph_id=graph_id, version=version)
