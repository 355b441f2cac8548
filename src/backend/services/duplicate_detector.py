"""
Duplicate detection for new incident reports.

Two phases:
1. Coarse: ask the store for recent same-type incidents inside a
   lat/lng bounding box (cheap, index-friendly).
2. Precise: haversine distance on those few candidates only.

A match never blocks creation; it only flags the new report.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from core.geo import bounding_box, is_within_distance
from repositories.provider import IncidentRepositoryProtocol
from schemas.incident import DuplicateCheckResult

logger = structlog.get_logger(__name__)

# Upper bound on candidates pulled from the coarse filter
MAX_CANDIDATES = 20


class DuplicateDetector:
    """Find a recent, nearby, same-type incident for a new report."""

    def __init__(
        self,
        repository: IncidentRepositoryProtocol,
        distance_meters: float = 200.0,
        time_window_minutes: int = 10,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.distance_meters = distance_meters
        self.time_window_minutes = time_window_minutes
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def reason(self) -> str:
        return (
            f"Similar incident reported within {self.distance_meters:g}m "
            f"and {self.time_window_minutes} minutes"
        )

    async def check(self, incident_type: str, latitude: float, longitude: float) -> DuplicateCheckResult:
        """
        Check whether a report duplicates an existing incident.

        Candidates are examined newest first; the first one within the
        distance threshold is the match.
        """
        since = self._clock() - timedelta(minutes=self.time_window_minutes)
        min_lat, max_lat, min_lon, max_lon = bounding_box(latitude, longitude, self.distance_meters)

        candidates = await self.repository.find_recent_nearby(
            incident_type=incident_type,
            since=since,
            min_lat=min_lat,
            max_lat=max_lat,
            min_lon=min_lon,
            max_lon=max_lon,
            limit=MAX_CANDIDATES,
        )

        for candidate in candidates:
            if is_within_distance(latitude, longitude, candidate.latitude, candidate.longitude, self.distance_meters):
                logger.info(
                    "duplicate_incident_detected",
                    incident_type=incident_type,
                    duplicate_of=str(candidate.id),
                    candidates=len(candidates),
                )
                return DuplicateCheckResult(
                    is_duplicate=True,
                    duplicate_of=str(candidate.id),
                    reason=self.reason,
                )

        return DuplicateCheckResult(is_duplicate=False)
