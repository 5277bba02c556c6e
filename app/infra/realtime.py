"""
WebSocket hub for live booking updates.

Admin dashboards connect to /ws and receive booking_created and
booking_updated events as they happen.
"""

import asyncio
import logging
from typing import Any, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from app.config import get_settings

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks open WebSocket connections and broadcasts JSON events."""

    def __init__(
        self,
        welcome_message: str = "Connected to real-time updates",
        send_timeout: float = 2.0,
    ):
        self.welcome_message = welcome_message
        self.send_timeout = send_timeout
        self._connections: set[WebSocket] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a connection and send the welcome event."""
        await websocket.accept()
        self._connections.add(websocket)
        logger.info(f"WebSocket connected ({self.connection_count} open)")
        await websocket.send_json({"type": "connected", "message": self.welcome_message})

    def disconnect(self, websocket: WebSocket) -> None:
        """Forget a connection. No-op if unknown."""
        self._connections.discard(websocket)
        logger.info(f"WebSocket disconnected ({self.connection_count} open)")

    async def handle_message(self, websocket: WebSocket, data: Any) -> None:
        """Reply to a client message. Only ping is understood."""
        if isinstance(data, dict) and data.get("type") == "ping":
            await websocket.send_json({"type": "pong"})
        else:
            logger.debug(f"Ignoring WebSocket message: {data!r}")

    async def _send(self, websocket: WebSocket, event: dict) -> bool:
        if websocket.application_state != WebSocketState.CONNECTED:
            return False
        try:
            await asyncio.wait_for(websocket.send_json(event), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"WebSocket send timed out after {self.send_timeout}s, dropping connection")
            return False
        except Exception as e:
            logger.warning(f"WebSocket send failed, dropping connection: {e}")
            return False

    async def broadcast(self, event_type: str, data: Optional[dict] = None) -> int:
        """
        Send an event to every open connection.

        Dead or stalled connections are dropped. Returns within
        send_timeout and never raises.

        Returns:
            Number of clients that received the event
        """
        event = {"type": event_type, "data": data}
        connections = list(self._connections)
        results = await asyncio.gather(*(self._send(ws, event) for ws in connections))

        for websocket, delivered in zip(connections, results):
            if not delivered:
                self._connections.discard(websocket)

        sent = sum(results)
        logger.debug(f"Broadcasted {event_type} to {sent} client(s)")
        return sent


# Singleton
_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> ConnectionManager:
    """Get singleton ConnectionManager."""
    global _manager
    if _manager is None:
        settings = get_settings()
        _manager = ConnectionManager(
            welcome_message=f"Connected to {settings.brand_name} real-time updates",
            send_timeout=settings.websocket_send_timeout_seconds,
        )
    return _manager
