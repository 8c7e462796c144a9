import json
import logging
from typing import Any, Dict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Publish/subscribe of session updates over WebSockets"""

    def __init__(self):
        self.subscribers: Dict[str, Set[WebSocket]] = {}

    async def connect(self, session_id: str, websocket: WebSocket):
        await websocket.accept()
        self.subscribers.setdefault(session_id, set()).add(websocket)
        logger.info(f"🔌 Subscriber joined session {session_id}")

    def disconnect(self, session_id: str, websocket: WebSocket):
        sockets = self.subscribers.get(session_id)
        if not sockets:
            return

        sockets.discard(websocket)
        if not sockets:
            del self.subscribers[session_id]
        logger.info(f"🔌 Subscriber left session {session_id}")

    def subscriber_count(self, session_id: str) -> int:
        return len(self.subscribers.get(session_id, ()))

    async def publish(self, session_id: str, message_type: str, payload: Dict[str, Any]) -> int:
        """Send a message to every subscriber of a session; returns how many received it"""
        message = json.dumps({"type": message_type, "session_id": session_id, **payload}, default=str)

        delivered = 0
        for websocket in list(self.subscribers.get(session_id, ())):
            try:
                await websocket.send_text(message)
                delivered += 1
            except Exception as e:
                # Dead connection, drop it
                logger.warning(f"Dropping subscriber of {session_id}: {e}")
                self.disconnect(session_id, websocket)

        return delivered
