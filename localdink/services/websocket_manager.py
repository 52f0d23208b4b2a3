"""
WebSocket connection manager for real-time notification delivery.

Keeps the live connections of each player and pushes notification payloads
to all of them.
"""

import asyncio
import json
import logging
from typing import Dict, Set, Optional
from datetime import datetime, timedelta
from fastapi import WebSocket
from localdink.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# Connections idle for longer than this are closed and dropped by cleanup_stale_connections
WEBSOCKET_TIMEOUT_SECONDS = 30


class WebSocketManager:
    """Manages WebSocket connections for real-time notifications."""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        self.connection_timestamps: Dict[WebSocket, datetime] = {}
        self._lock = asyncio.Lock()

    async def connect(self, player_id: str, websocket: WebSocket):
        """Register a WebSocket connection for a player."""
        async with self._lock:
            self.active_connections.setdefault(player_id, set()).add(websocket)
            self.connection_timestamps[websocket] = utcnow()
            logger.info(
                f"WebSocket connected for player {player_id} "
                f"(total connections: {len(self.active_connections[player_id])})"
            )

    async def disconnect(self, player_id: str, websocket: WebSocket):
        """Remove a WebSocket connection for a player."""
        async with self._lock:
            self._discard(player_id, websocket)
            logger.info(f"WebSocket disconnected for player {player_id}")

    def _discard(self, player_id: str, websocket: WebSocket):
        # Caller holds the lock
        if player_id in self.active_connections:
            self.active_connections[player_id].discard(websocket)
            if not self.active_connections[player_id]:
                del self.active_connections[player_id]
        self.connection_timestamps.pop(websocket, None)

    async def send_to_user(self, player_id: str, message: dict) -> bool:
        """
        Send a message to all active WebSocket connections for a player.

        Returns:
            True if the message reached at least one connection
        """
        async with self._lock:
            connections = set(self.active_connections.get(player_id, ()))
        if not connections:
            return False

        sent = False
        dead = []
        message_json = json.dumps(message)
        for websocket in connections:
            try:
                await websocket.send_text(message_json)
                sent = True
            except Exception as e:
                logger.warning(f"Error sending WebSocket message to player {player_id}: {e}")
                dead.append(websocket)
            else:
                async with self._lock:
                    self.connection_timestamps[websocket] = utcnow()

        if dead:
            async with self._lock:
                for websocket in dead:
                    self._discard(player_id, websocket)
        return sent

    async def get_connection_count(self, player_id: str) -> int:
        async with self._lock:
            return len(self.active_connections.get(player_id, ()))

    async def update_activity(self, websocket: WebSocket):
        """Record activity (client ping) on a connection."""
        async with self._lock:
            if websocket in self.connection_timestamps:
                self.connection_timestamps[websocket] = utcnow()

    async def cleanup_stale_connections(self):
        """Close and drop connections idle for longer than WEBSOCKET_TIMEOUT_SECONDS."""
        threshold = utcnow() - timedelta(seconds=WEBSOCKET_TIMEOUT_SECONDS)
        stale = []
        async with self._lock:
            for player_id, conn_set in list(self.active_connections.items()):
                for websocket in list(conn_set):
                    last_activity = self.connection_timestamps.get(websocket)
                    if last_activity is not None and last_activity < threshold:
                        self._discard(player_id, websocket)
                        stale.append((player_id, websocket))

        for player_id, websocket in stale:
            try:
                await websocket.close(code=1001)
            except Exception as e:
                logger.debug(f"Error closing stale WebSocket for player {player_id}: {e}")
            logger.info(f"Cleaned up stale WebSocket connection for player {player_id}")


_websocket_manager: Optional[WebSocketManager] = None


def get_websocket_manager() -> WebSocketManager:
    """Get the process-wide WebSocket manager instance."""
    global _websocket_manager
    if _websocket_manager is None:
        _websocket_manager = WebSocketManager()
    return _websocket_manager
