"""
Realtime fan-out of incident lifecycle events.

The broadcaster is a process-scoped object created at application startup
and handed to the lifecycle engine; it is not looked up globally.

Channels:
- ``incidents``: the public feed (incident:new, incident:update)
- ``incident:{id}``: updates for one incident only

Emergency broadcasts go to every live connection regardless of channel.
Delivery is best-effort: no acknowledgements, no retries, nothing is kept
for clients that connect later.
"""

import asyncio
from collections import defaultdict
from typing import Any, Protocol

import structlog

from schemas.realtime import (
    ALL_INCIDENTS_CHANNEL,
    RealtimeEvent,
    RealtimeEventType,
    incident_channel,
)

logger = structlog.get_logger(__name__)


class Subscriber(Protocol):
    """A live connection able to receive JSON messages (e.g. a WebSocket)."""

    async def send_json(self, data: Any) -> None: ...


class NotificationSink(Protocol):
    """What the lifecycle engine needs from the realtime layer."""

    async def publish(self, event: RealtimeEvent) -> None: ...


class RealtimeBroadcaster:
    """
    In-memory channel registry and fan-out broadcaster.

    Channel membership exists only while a connection is open.
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.send_timeout = send_timeout
        self._connections: set[Subscriber] = set()
        self._channels: dict[str, set[Subscriber]] = defaultdict(set)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def channel_size(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def register(self, subscriber: Subscriber, join_feed: bool = True) -> None:
        """Track a newly accepted connection, joining the public feed by default."""
        self._connections.add(subscriber)
        if join_feed:
            self.join(subscriber, ALL_INCIDENTS_CHANNEL)
        logger.info("realtime_client_connected", connections=len(self._connections))

    def unregister(self, subscriber: Subscriber) -> None:
        """Forget a connection and all its channel memberships."""
        self._connections.discard(subscriber)
        for channel in list(self._channels):
            members = self._channels[channel]
            members.discard(subscriber)
            if not members:
                del self._channels[channel]
        logger.info("realtime_client_disconnected", connections=len(self._connections))

    def join(self, subscriber: Subscriber, channel: str) -> None:
        self._channels[channel].add(subscriber)
        logger.debug("realtime_channel_joined", channel=channel)

    def leave(self, subscriber: Subscriber, channel: str) -> None:
        members = self._channels.get(channel)
        if members is None:
            return
        members.discard(subscriber)
        if not members:
            del self._channels[channel]

    def _recipients(self, event: RealtimeEvent) -> set[Subscriber]:
        if event.type == RealtimeEventType.EMERGENCY_BROADCAST:
            return set(self._connections)

        recipients = set(self._channels.get(ALL_INCIDENTS_CHANNEL, ()))
        if event.type == RealtimeEventType.INCIDENT_UPDATE and event.incident_id:
            recipients |= self._channels.get(incident_channel(event.incident_id), set())
        return recipients

    async def publish(self, event: RealtimeEvent) -> None:
        """
        Send an event to every interested subscriber.

        A subscriber whose send fails or does not finish within
        ``send_timeout`` seconds is dropped; neither reaches the publisher.
        """
        recipients = self._recipients(event)
        if not recipients:
            logger.debug("realtime_event_no_recipients", event_type=event.type.value)
            return

        payload = event.to_wire()
        targets = list(recipients)
        results = await asyncio.gather(
            *(asyncio.wait_for(subscriber.send_json(payload), self.send_timeout) for subscriber in targets),
            return_exceptions=True,
        )

        failed = 0
        for subscriber, result in zip(targets, results):
            if isinstance(result, Exception):
                failed += 1
                logger.warning(
                    "realtime_send_failed",
                    error=str(result) or type(result).__name__,
                    timed_out=isinstance(result, asyncio.TimeoutError),
                )
                self.unregister(subscriber)

        logger.info(
            "realtime_event_published",
            event_type=event.type.value,
            incident_id=event.incident_id,
            delivered=len(targets) - failed,
            failed=failed,
        )


class NullNotificationSink:
    """Sink that drops every event (used by scripts and offline jobs)."""

    async def publish(self, event: RealtimeEvent) -> None:
        logger.debug("realtime_event_dropped", event_type=event.type.value)
