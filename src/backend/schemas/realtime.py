"""
Realtime event schemas.

Every event pushed to subscribers has a type tag, a payload (``data`` for
incident events, ``message`` for broadcasts) and an ISO-8601 timestamp.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class RealtimeEventType(str, Enum):
    INCIDENT_NEW = "incident:new"
    INCIDENT_UPDATE = "incident:update"
    EMERGENCY_BROADCAST = "emergency:broadcast"


# Channel every subscriber of the incident feed joins
ALL_INCIDENTS_CHANNEL = "incidents"


def incident_channel(incident_id: str) -> str:
    """Per-incident channel name."""
    return f"incident:{incident_id}"


class RealtimeEvent(BaseModel):
    """An event published by the lifecycle engine."""

    type: RealtimeEventType
    data: Optional[dict[str, Any]] = None
    message: Optional[str] = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def incident_id(self) -> Optional[str]:
        if self.data:
            return self.data.get("id")
        return None

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict carrying only the payload field that is set."""
        wire: dict[str, Any] = {"type": self.type.value, "timestamp": self.timestamp}
        if self.data is not None:
            wire["data"] = self.data
        if self.message is not None:
            wire["message"] = self.message
        return wire


class SubscriptionAction(str, Enum):
    JOIN_INCIDENTS = "join:incidents"
    LEAVE_INCIDENTS = "leave:incidents"
    SUBSCRIBE_INCIDENT = "subscribe:incident"
    UNSUBSCRIBE_INCIDENT = "unsubscribe:incident"


class SubscriptionMessage(BaseModel):
    """Control message sent by a websocket client."""

    action: SubscriptionAction
    incident_id: Optional[str] = None
