"""
Realtime WebSocket endpoint.

Each connection joins the public incident feed on connect and may then
send control messages to follow or unfollow single incidents.
"""

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from schemas.realtime import (
    ALL_INCIDENTS_CHANNEL,
    SubscriptionAction,
    SubscriptionMessage,
    incident_channel,
)
from services.realtime_service import RealtimeBroadcaster

logger = structlog.get_logger(__name__)

router = APIRouter()


def apply_subscription(broadcaster: RealtimeBroadcaster, websocket: WebSocket, message: SubscriptionMessage) -> bool:
    """
    Apply a client control message to the channel registry.

    Returns False when the message is missing a required incident id.
    """
    if message.action == SubscriptionAction.JOIN_INCIDENTS:
        broadcaster.join(websocket, ALL_INCIDENTS_CHANNEL)
        return True
    if message.action == SubscriptionAction.LEAVE_INCIDENTS:
        broadcaster.leave(websocket, ALL_INCIDENTS_CHANNEL)
        return True

    if not message.incident_id:
        return False

    channel = incident_channel(message.incident_id)
    if message.action == SubscriptionAction.SUBSCRIBE_INCIDENT:
        broadcaster.join(websocket, channel)
    else:
        broadcaster.leave(websocket, channel)
    return True


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket) -> None:
    broadcaster: RealtimeBroadcaster = websocket.app.state.broadcaster

    await websocket.accept()
    broadcaster.register(websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = SubscriptionMessage.model_validate_json(raw)
            except ValidationError:
                await websocket.send_json({"type": "error", "message": "Invalid subscription message"})
                continue

            if not apply_subscription(broadcaster, websocket, message):
                await websocket.send_json({"type": "error", "message": "incident_id is required"})
                continue

            logger.debug("realtime_subscription_changed", action=message.action.value, incident_id=message.incident_id)
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unregister(websocket)
