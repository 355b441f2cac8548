"""
Tests for the realtime broadcaster.
"""

from typing import Any

import asyncio

import pytest

from schemas.realtime import ALL_INCIDENTS_CHANNEL, RealtimeEvent, RealtimeEventType, incident_channel
from services.realtime_service import NullNotificationSink, RealtimeBroadcaster


class FakeSocket:
    """Stands in for a WebSocket; records what it was sent."""

    def __init__(self, broken: bool = False) -> None:
        self.sent: list[Any] = []
        self.broken = broken

    async def send_json(self, data: Any) -> None:
        if self.broken:
            raise ConnectionError("socket closed")
        self.sent.append(data)


class StalledSocket:
    """A client whose writes never complete (e.g. a full send buffer)."""

    async def send_json(self, data: Any) -> None:
        await asyncio.sleep(3600)


def _incident_event(event_type: RealtimeEventType, incident_id: str = "incident-1") -> RealtimeEvent:
    return RealtimeEvent(type=event_type, data={"id": incident_id, "status": "VERIFIED", "media_url": None})


@pytest.fixture
def broadcaster() -> RealtimeBroadcaster:
    return RealtimeBroadcaster()


@pytest.mark.unit
class TestRegistry:
    """Test connection and channel bookkeeping."""

    def test_register_joins_feed(self, broadcaster) -> None:
        socket = FakeSocket()
        broadcaster.register(socket)

        assert broadcaster.connection_count == 1
        assert broadcaster.channel_size(ALL_INCIDENTS_CHANNEL) == 1

    def test_register_without_feed(self, broadcaster) -> None:
        broadcaster.register(FakeSocket(), join_feed=False)

        assert broadcaster.connection_count == 1
        assert broadcaster.channel_size(ALL_INCIDENTS_CHANNEL) == 0

    def test_unregister_drops_all_memberships(self, broadcaster) -> None:
        socket = FakeSocket()
        broadcaster.register(socket)
        broadcaster.join(socket, incident_channel("incident-1"))

        broadcaster.unregister(socket)

        assert broadcaster.connection_count == 0
        assert broadcaster.channel_size(ALL_INCIDENTS_CHANNEL) == 0
        assert broadcaster.channel_size(incident_channel("incident-1")) == 0

    def test_leave_unknown_channel_is_noop(self, broadcaster) -> None:
        broadcaster.leave(FakeSocket(), "incident:nope")
        assert broadcaster.channel_size("incident:nope") == 0


@pytest.mark.unit
class TestPublish:
    """Test event fan-out."""

    async def test_new_incident_goes_to_feed_only(self, broadcaster) -> None:
        feed, follower = FakeSocket(), FakeSocket()
        broadcaster.register(feed)
        broadcaster.register(follower, join_feed=False)
        broadcaster.join(follower, incident_channel("incident-1"))

        await broadcaster.publish(_incident_event(RealtimeEventType.INCIDENT_NEW))

        assert len(feed.sent) == 1
        assert follower.sent == []

    async def test_update_reaches_feed_and_incident_channel(self, broadcaster) -> None:
        feed, follower, other = FakeSocket(), FakeSocket(), FakeSocket()
        broadcaster.register(feed)
        broadcaster.register(follower, join_feed=False)
        broadcaster.join(follower, incident_channel("incident-1"))
        broadcaster.register(other, join_feed=False)
        broadcaster.join(other, incident_channel("incident-2"))

        await broadcaster.publish(_incident_event(RealtimeEventType.INCIDENT_UPDATE))

        assert len(feed.sent) == 1
        assert len(follower.sent) == 1
        assert other.sent == []

    async def test_update_delivered_once_to_member_of_both(self, broadcaster) -> None:
        socket = FakeSocket()
        broadcaster.register(socket)
        broadcaster.join(socket, incident_channel("incident-1"))

        await broadcaster.publish(_incident_event(RealtimeEventType.INCIDENT_UPDATE))

        assert len(socket.sent) == 1

    async def test_emergency_reaches_every_connection(self, broadcaster) -> None:
        feed, quiet = FakeSocket(), FakeSocket()
        broadcaster.register(feed)
        broadcaster.register(quiet, join_feed=False)

        await broadcaster.publish(
            RealtimeEvent(type=RealtimeEventType.EMERGENCY_BROADCAST, message="Shelter in place")
        )

        assert feed.sent[0]["message"] == "Shelter in place"
        assert quiet.sent[0]["type"] == "emergency:broadcast"
        assert "data" not in quiet.sent[0]

    async def test_wire_format(self, broadcaster) -> None:
        socket = FakeSocket()
        broadcaster.register(socket)

        await broadcaster.publish(_incident_event(RealtimeEventType.INCIDENT_NEW))

        payload = socket.sent[0]
        assert payload["type"] == "incident:new"
        assert payload["data"]["id"] == "incident-1"
        # None values inside the incident are kept
        assert payload["data"]["media_url"] is None
        assert "timestamp" in payload
        assert "message" not in payload

    async def test_broken_subscriber_is_dropped(self, broadcaster) -> None:
        healthy, broken = FakeSocket(), FakeSocket(broken=True)
        broadcaster.register(healthy)
        broadcaster.register(broken)

        await broadcaster.publish(_incident_event(RealtimeEventType.INCIDENT_NEW))

        assert len(healthy.sent) == 1
        assert broadcaster.connection_count == 1
        assert broadcaster.channel_size(ALL_INCIDENTS_CHANNEL) == 1

    async def test_stalled_subscriber_is_dropped_after_timeout(self) -> None:
        broadcaster = RealtimeBroadcaster(send_timeout=0.05)
        healthy, stalled = FakeSocket(), StalledSocket()
        broadcaster.register(healthy)
        broadcaster.register(stalled)

        await asyncio.wait_for(broadcaster.publish(_incident_event(RealtimeEventType.INCIDENT_NEW)), timeout=2.0)

        assert len(healthy.sent) == 1
        assert broadcaster.connection_count == 1
        assert broadcaster.channel_size(ALL_INCIDENTS_CHANNEL) == 1

    async def test_stalled_subscriber_does_not_block_engine(self, repository, clock) -> None:
        from schemas.incident import IncidentCreate
        from services.incident_service import IncidentService

        broadcaster = RealtimeBroadcaster(send_timeout=0.05)
        broadcaster.register(StalledSocket())
        service = IncidentService(repository=repository, sink=broadcaster, clock=clock)
        report = IncidentCreate(
            incident_type="FIRE",
            description="Smoke coming out of a warehouse roof",
            latitude=40.0,
            longitude=-75.0,
        )

        result = await asyncio.wait_for(service.create_incident(report), timeout=2.0)

        assert result.incident.id in repository.incidents
        assert broadcaster.connection_count == 0

    async def test_publish_without_subscribers(self, broadcaster) -> None:
        await broadcaster.publish(_incident_event(RealtimeEventType.INCIDENT_NEW))
        assert broadcaster.connection_count == 0

    async def test_null_sink_accepts_events(self) -> None:
        await NullNotificationSink().publish(_incident_event(RealtimeEventType.INCIDENT_NEW))
