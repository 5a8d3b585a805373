"""Notification stream endpoints.

Each signed-in user holds one or more WebSocket connections. Toasts from
the managers and from the order change dispatcher are pushed as JSON:

    {"type": "notification", "data": {"severity", "title", "detail", "timestamp"}}
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Set
from uuid import UUID

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query

from auth import AuthError, get_verifier
from orders.models import Severity

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"]
)

# Close code sent when the stream token is rejected
AUTH_FAILED_CLOSE_CODE = 4001


class NotificationHub:
    """Tracks open notification streams per user."""

    def __init__(self):
        # Map of user id -> open connections
        self.active_connections: Dict[UUID, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: UUID):
        """Register an accepted connection."""
        self.active_connections.setdefault(user_id, set()).add(websocket)
        await websocket.send_json({
            "type": "connection_status",
            "data": {"status": "connected", "user_id": str(user_id)}
        })
        logger.info(f"Notification stream opened for {user_id}")

    def disconnect(self, websocket: WebSocket, user_id: UUID):
        connections = self.active_connections.get(user_id)
        if not connections:
            return
        connections.discard(websocket)
        if not connections:
            del self.active_connections[user_id]
        logger.info(f"Notification stream closed for {user_id}")

    def connection_count(self) -> int:
        return sum(len(connections) for connections in self.active_connections.values())

    async def notify_user(self, user_id: UUID, severity: Severity, title: str, detail: str) -> int:
        """Push one toast to every stream the user has open.

        Returns:
            Number of connections the toast reached
        """
        message = {
            "type": "notification",
            "data": {
                "severity": Severity(severity).value,
                "title": title,
                "detail": detail,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        }

        delivered = 0
        for websocket in list(self.active_connections.get(user_id, ())):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping notification stream for {user_id}: {e}")
                self.disconnect(websocket, user_id)
        return delivered


@router.websocket("/stream")
async def notification_stream(websocket: WebSocket, token: str = Query(...)):
    """Stream toasts for the user the token was issued to.

    Clients may send ``{"type": "ping"}`` and receive ``{"type": "pong"}``.
    """
    await websocket.accept()
    try:
        user_id = get_verifier().verify(token)
    except AuthError as e:
        logger.info(f"Rejected notification stream: {e}")
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason=str(e))
        return

    hub: NotificationHub = websocket.app.state.services.hub
    await hub.connect(websocket, user_id)
    try:
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        logger.warning(f"Bad message on notification stream for {user_id}: {e}")
    finally:
        hub.disconnect(websocket, user_id)
