"""
Incident Lifecycle Engine

Owns creation (with duplicate flagging), listing, status and severity
changes, admin notes, upvotes with automatic verification, deletion and
stats. Collaborators are injected:

- repository: the persistence contract (SQL in production, in-memory in tests)
- sink: where lifecycle events are published (realtime broadcaster)
- media_store: optional "store bytes, get back a URL" capability

Status graph: creation yields REPORTED, or FLAGGED for a likely duplicate.
REPORTED becomes VERIFIED once authenticated upvotes reach the threshold.
Administrators may set any status from any status; no source/target pair is
rejected and no state is terminal.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

import structlog

from core.config import Settings, settings
from core.exceptions import DuplicateVoteError, IncidentNotFoundError, UpstreamFailureError
from models.incident import IncidentStatus, Severity
from repositories.provider import IncidentRepositoryProtocol
from schemas.converters import (
    incident_model_to_detail_schema,
    incident_model_to_schema,
)
from schemas.incident import (
    DUPLICATE_MARKER,
    CreateIncidentResult,
    IncidentCreate,
    IncidentDetail,
    IncidentPage,
    IncidentQuery,
    IncidentResponse,
    IncidentStats,
    PageMeta,
    UpvoteResult,
)
from schemas.realtime import RealtimeEvent, RealtimeEventType
from services.duplicate_detector import DuplicateDetector
from services.media_service import MediaStore
from services.realtime_service import NotificationSink, NullNotificationSink

logger = structlog.get_logger(__name__)


@dataclass
class LifecycleConfig:
    """Tunable lifecycle thresholds."""

    verification_threshold: int = 5
    duplicate_distance_meters: float = 200.0
    duplicate_time_minutes: int = 10

    @classmethod
    def from_settings(cls, app_settings: Settings = settings) -> "LifecycleConfig":
        return cls(
            verification_threshold=app_settings.VERIFICATION_THRESHOLD,
            duplicate_distance_meters=app_settings.DUPLICATE_DISTANCE_METERS,
            duplicate_time_minutes=app_settings.DUPLICATE_TIME_MINUTES,
        )


class IncidentService:
    """Incident lifecycle operations."""

    MEDIA_FOLDER = "incidents"

    def __init__(
        self,
        repository: IncidentRepositoryProtocol,
        sink: Optional[NotificationSink] = None,
        media_store: Optional[MediaStore] = None,
        config: Optional[LifecycleConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.sink = sink or NullNotificationSink()
        self.media_store = media_store
        self.config = config or LifecycleConfig.from_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.duplicate_detector = DuplicateDetector(
            repository,
            distance_meters=self.config.duplicate_distance_meters,
            time_window_minutes=self.config.duplicate_time_minutes,
            clock=self._clock,
        )

    # =========================================================================
    # Creation and queries
    # =========================================================================

    async def create_incident(self, data: IncidentCreate, media: Optional[bytes] = None) -> CreateIncidentResult:
        """
        Create an incident report.

        Order matters: media upload, then duplicate check, then insert, then
        the incident:new event. A failed upload aborts before anything is
        written. Duplicates are stored (FLAGGED), never rejected.
        """
        media_url = None
        if media:
            if self.media_store is None:
                raise UpstreamFailureError("Media storage is not configured")
            stored = await self.media_store.store(media, self.MEDIA_FOLDER)
            media_url = stored.url

        incident_type = data.incident_type.upper()
        duplicate = await self.duplicate_detector.check(incident_type, data.latitude, data.longitude)

        if duplicate.is_duplicate:
            description = f"{DUPLICATE_MARKER} {data.description}"
            status = IncidentStatus.FLAGGED
        else:
            description = data.description
            status = IncidentStatus.REPORTED

        now = self._clock()
        incident = await self.repository.create(
            id=str(uuid4()),
            incident_type=incident_type,
            description=description,
            latitude=data.latitude,
            longitude=data.longitude,
            severity=data.severity.value,
            status=status.value,
            upvote_count=0,
            media_url=media_url,
            created_at=now,
            updated_at=now,
        )

        response = incident_model_to_schema(incident)
        logger.info(
            "incident_created",
            incident_id=response.id,
            incident_type=incident_type,
            status=status.value,
            duplicate_of=duplicate.duplicate_of,
            has_media=media_url is not None,
        )

        await self._publish(RealtimeEventType.INCIDENT_NEW, response)
        return CreateIncidentResult(incident=response, duplicate=duplicate)

    async def list_incidents(self, query: IncidentQuery) -> IncidentPage:
        """List incidents with filters, sorting and pagination."""
        rows, total = await self.repository.list_incidents(query)

        items = [
            incident_model_to_schema(incident, vote_total=vote_total, note_total=note_total)
            for incident, vote_total, note_total in rows
        ]
        return IncidentPage(
            items=items,
            meta=PageMeta(
                total=total,
                page=query.page,
                limit=query.limit,
                total_pages=math.ceil(total / query.limit),
            ),
        )

    async def get_incident(self, incident_id: str) -> IncidentDetail:
        """Get one incident with its votes and notes."""
        incident = await self.repository.get_with_relations(incident_id)
        if incident is None:
            raise IncidentNotFoundError(incident_id)
        return incident_model_to_detail_schema(incident)

    async def get_stats(self) -> IncidentStats:
        """Counts for the dashboard: total, pending, active, resolved."""
        return IncidentStats(
            total=await self.repository.count(),
            pending=await self.repository.count(IncidentStatus.REPORTED),
            active=await self.repository.count(IncidentStatus.IN_PROGRESS),
            resolved=await self.repository.count(IncidentStatus.RESOLVED),
        )

    # =========================================================================
    # Administrative changes
    # =========================================================================

    async def update_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        admin_id: str,
        note: Optional[str] = None,
    ) -> IncidentResponse:
        """
        Set an incident's status (admin only; checked by the caller).

        Any status may be set from any status.
        """
        incident = await self.repository.update(incident_id, status=status.value, updated_at=self._clock())
        if incident is None:
            raise IncidentNotFoundError(incident_id)

        if note:
            await self.repository.add_note(incident_id, admin_id, f"Status changed to {status.value}: {note}")

        response = incident_model_to_schema(incident)
        logger.info(
            "incident_status_updated",
            incident_id=incident_id,
            status=status.value,
            admin_id=admin_id,
            with_note=bool(note),
        )

        await self._publish(RealtimeEventType.INCIDENT_UPDATE, response)
        return response

    async def add_note(self, incident_id: str, admin_id: str, note: str) -> IncidentDetail:
        """Attach an admin note. Publishes nothing and leaves status alone."""
        if await self.repository.get_by_id(incident_id) is None:
            raise IncidentNotFoundError(incident_id)

        await self.repository.add_note(incident_id, admin_id, note)
        logger.info("incident_note_added", incident_id=incident_id, admin_id=admin_id)

        return await self.get_incident(incident_id)

    async def update_severity(self, incident_id: str, severity: Severity) -> IncidentResponse:
        incident = await self.repository.update(incident_id, severity=severity.value, updated_at=self._clock())
        if incident is None:
            raise IncidentNotFoundError(incident_id)

        response = incident_model_to_schema(incident)
        logger.info("incident_severity_updated", incident_id=incident_id, severity=severity.value)

        await self._publish(RealtimeEventType.INCIDENT_UPDATE, response)
        return response

    async def delete_incident(self, incident_id: str) -> None:
        """Delete an incident together with its votes and notes."""
        deleted = await self.repository.delete(incident_id)
        if not deleted:
            raise IncidentNotFoundError(incident_id)
        logger.info("incident_deleted", incident_id=incident_id)

    async def broadcast(self, message: str) -> None:
        """Push an emergency message to every connected client."""
        logger.info("emergency_broadcast", length=len(message))
        await self._send(RealtimeEvent(type=RealtimeEventType.EMERGENCY_BROADCAST, message=message))

    # =========================================================================
    # Upvotes
    # =========================================================================

    async def upvote(self, incident_id: str, user_id: Optional[str]) -> UpvoteResult:
        """
        Upvote an incident.

        Anonymous callers (``user_id`` None) just bump the counter: no vote
        record, no deduplication, no verification check. This is open to
        count inflation and is kept as-is pending a product decision.

        Authenticated callers get at most one vote per incident. A repeat,
        including one that lost a concurrent race, returns the current state
        with ``already_voted=True``. Only the REPORTED -> VERIFIED
        transition publishes an event; a plain increment does not.
        """
        if user_id is None:
            incident = await self.repository.increment_upvotes(incident_id)
            if incident is None:
                raise IncidentNotFoundError(incident_id)
            return UpvoteResult(incident=incident_model_to_schema(incident), already_voted=False)

        if await self.repository.has_vote(incident_id, user_id):
            return await self._already_voted(incident_id)

        try:
            incident = await self.repository.add_vote(incident_id, user_id)
        except DuplicateVoteError:
            return await self._already_voted(incident_id)

        if (
            incident.status == IncidentStatus.REPORTED.value
            and incident.upvote_count >= self.config.verification_threshold
        ):
            verified = await self.repository.update(
                incident_id,
                status=IncidentStatus.VERIFIED.value,
                updated_at=self._clock(),
            )
            if verified is None:
                raise IncidentNotFoundError(incident_id)

            response = incident_model_to_schema(verified)
            logger.info(
                "incident_verified",
                incident_id=incident_id,
                upvote_count=verified.upvote_count,
                threshold=self.config.verification_threshold,
            )
            await self._publish(RealtimeEventType.INCIDENT_UPDATE, response)
            return UpvoteResult(incident=response, already_voted=False)

        return UpvoteResult(incident=incident_model_to_schema(incident), already_voted=False)

    async def _already_voted(self, incident_id: str) -> UpvoteResult:
        incident = await self.repository.get_by_id(incident_id)
        if incident is None:
            raise IncidentNotFoundError(incident_id)
        return UpvoteResult(incident=incident_model_to_schema(incident), already_voted=True)

    # =========================================================================
    # Events
    # =========================================================================

    async def _publish(self, event_type: RealtimeEventType, incident: IncidentResponse) -> None:
        await self._send(RealtimeEvent(type=event_type, data=incident.model_dump(mode="json")))

    async def _send(self, event: RealtimeEvent) -> None:
        # State is already persisted; a delivery problem must not fail the operation
        try:
            await self.sink.publish(event)
        except Exception as e:
            logger.warning("realtime_publish_failed", event_type=event.type.value, error=str(e))
