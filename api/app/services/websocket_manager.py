from fastapi import WebSocket
from typing import Dict, List
import json
import logging
from datetime import datetime, timezone


logger = logging.getLogger(__name__)


class WebSocketManager:
    """Manages WebSocket connections of chat clients, grouped by channel"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(WebSocketManager, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if not getattr(self, '_initialized', False):
            # Dictionary: channel_id -> list of WebSocket connections
            self.connections: Dict[str, List[WebSocket]] = {}
            self._initialized = True
            logger.debug(f"[WebSocketManager] Singleton instance created with ID: {id(self)}")

    @classmethod
    def get_instance(cls):
        """Get the singleton instance"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    async def connect(self, websocket: WebSocket, channel_id: str):
        """Accept a WebSocket connection and add it to the channel's connection list"""
        await websocket.accept()

        if channel_id not in self.connections:
            self.connections[channel_id] = []

        self.connections[channel_id].append(websocket)
        logger.info(f"[WebSocket] Client connected to channel {channel_id}. "
                    f"Total connections: {len(self.connections[channel_id])}")

    def disconnect(self, websocket: WebSocket, channel_id: str):
        """Remove a WebSocket connection from the channel's connection list"""
        if channel_id not in self.connections:
            logger.debug(f"[WebSocket] No connection list found for channel {channel_id}")
            return
        try:
            self.connections[channel_id].remove(websocket)
            logger.info(f"[WebSocket] Client disconnected from channel {channel_id}. "
                        f"Remaining connections: {len(self.connections[channel_id])}")

            # Clean up empty connection lists
            if not self.connections[channel_id]:
                del self.connections[channel_id]

        except ValueError:
            logger.debug(f"[WebSocket] WebSocket not found in connection list for channel {channel_id}")

    async def send_event(self, channel_id: str, event: dict) -> int:
        """Send an event to all clients of a channel; returns successful deliveries"""
        if channel_id not in self.connections:
            logger.debug(f"[WebSocketManager] No connections found for channel: {channel_id}")
            return 0

        message = json.dumps({
            **event,
            "timestamp": datetime.now(timezone.utc).isoformat()
        })

        connections_to_remove = []
        successful_sends = 0

        for websocket in list(self.connections[channel_id]):
            try:
                await websocket.send_text(message)
                successful_sends += 1
            except Exception as e:
                logger.warning(f"[WebSocket] Failed to send message to a client of {channel_id}: {e}")
                connections_to_remove.append(websocket)

        # Remove dead connections
        for websocket in connections_to_remove:
            self.disconnect(websocket, channel_id)

        return successful_sends
