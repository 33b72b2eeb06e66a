"""
Live update channel over WebSockets.

Keeps the open sockets of each user so services can push balance changes
and support replies as they happen. A failed push is logged and dropped; it
never fails the operation that triggered it.
"""

import asyncio
import json
import logging
from datetime import timedelta
from typing import Dict, Iterable, Optional, Set
from fastapi import WebSocket

from arena.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# Connections idle longer than this are dropped by cleanup_stale_connections
WEBSOCKET_TIMEOUT_SECONDS = 30

# How often the cleanup worker looks for idle connections (seconds)
CLEANUP_INTERVAL_SECONDS = 15


class WebSocketManager:
    """Registry of live update subscribers, keyed by user id."""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        self.connection_timestamps: Dict[WebSocket, object] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    async def connect(self, user_id: str, websocket: WebSocket):
        """Register an accepted socket for a user."""
        async with self._lock:
            self.active_connections.setdefault(user_id, set()).add(websocket)
            self.connection_timestamps[websocket] = utcnow()
            count = len(self.active_connections[user_id])
        logger.info(f"Live updates connected for user {user_id} ({count} connection(s))")

    async def disconnect(self, user_id: str, websocket: WebSocket):
        """Forget a socket; the user's entry goes away with their last socket."""
        async with self._lock:
            self._discard(user_id, websocket)
            self.connection_timestamps.pop(websocket, None)
        logger.info(f"Live updates disconnected for user {user_id}")

    def _discard(self, user_id: str, websocket: WebSocket) -> None:
        # Caller holds the lock
        sockets = self.active_connections.get(user_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.active_connections[user_id]

    async def send_to_user(self, user_id: str, message: dict) -> bool:
        """
        Push a JSON message to every socket a user has open.

        Args:
            user_id: Recipient
            message: JSON-serializable payload

        Returns:
            True if at least one socket received it
        """
        async with self._lock:
            connections = list(self.active_connections.get(user_id, ()))
        if not connections:
            return False

        payload = json.dumps(message, default=str)
        sent = False
        dead = []
        for websocket in connections:
            try:
                await websocket.send_text(payload)
                sent = True
            except Exception as e:
                logger.warning(f"Error pushing update to user {user_id}: {e}")
                dead.append(websocket)

        async with self._lock:
            now = utcnow()
            for websocket in connections:
                if websocket in dead:
                    self._discard(user_id, websocket)
                    self.connection_timestamps.pop(websocket, None)
                elif websocket in self.connection_timestamps:
                    self.connection_timestamps[websocket] = now
        return sent

    async def send_to_users(self, user_ids: Iterable[str], message: dict) -> int:
        """Push the same message to several users; returns how many were reached."""
        reached = 0
        for user_id in set(user_ids):
            if await self.send_to_user(user_id, message):
                reached += 1
        return reached

    async def get_connection_count(self, user_id: str) -> int:
        async with self._lock:
            return len(self.active_connections.get(user_id, ()))

    async def update_activity(self, websocket: WebSocket):
        """Record client activity (pings) on a socket."""
        async with self._lock:
            if websocket in self.connection_timestamps:
                self.connection_timestamps[websocket] = utcnow()

    async def cleanup_stale_connections(self) -> int:
        """
        Drop sockets with no activity within WEBSOCKET_TIMEOUT_SECONDS.

        Returns:
            Number of sockets removed
        """
        threshold = utcnow() - timedelta(seconds=WEBSOCKET_TIMEOUT_SECONDS)
        removed = 0
        async with self._lock:
            stale = [ws for ws, seen in self.connection_timestamps.items() if seen < threshold]
            for websocket in stale:
                for user_id in [u for u, socks in self.active_connections.items() if websocket in socks]:
                    self._discard(user_id, websocket)
                    logger.info(f"Dropped idle live update connection for user {user_id}")
                del self.connection_timestamps[websocket]
                removed += 1
        for websocket in stale:
            try:
                await websocket.close()
            except Exception as e:
                logger.warning(f"Error closing idle connection: {e}")
        return removed

    def start_cleanup_worker(self) -> None:
        """Start the background task that drops idle connections."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._stop_event.clear()
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Live update cleanup worker started")

    def stop_cleanup_worker(self) -> None:
        self._stop_event.set()
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            logger.info("Live update cleanup worker stopped")

    async def _cleanup_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.cleanup_stale_connections()
            except Exception as e:
                logger.error(f"Error in live update cleanup worker: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=CLEANUP_INTERVAL_SECONDS)
                break
            except asyncio.TimeoutError:
                pass


# Global WebSocket manager instance
_websocket_manager: Optional[WebSocketManager] = None


def get_websocket_manager() -> WebSocketManager:
    """Get the global WebSocket manager instance."""
    global _websocket_manager
    if _websocket_manager is None:
        _websocket_manager = WebSocketManager()
    return _websocket_manager
