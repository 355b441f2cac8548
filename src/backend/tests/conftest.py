"""
Pytest fixtures for SentinelLink backend tests.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("POSTGRES_PASSWORD", "test-password")
os.environ.setdefault("POSTGRES_HOST", "localhost")
os.environ.setdefault("POSTGRES_DB", "sentinellink_test")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")

from core.exceptions import DuplicateVoteError, IncidentNotFoundError  # noqa: E402
from models.incident import SEVERITY_RANK  # noqa: E402
from schemas.incident import IncidentQuery, SortField, SortOrder  # noqa: E402


# =============================================================================
# In-memory collaborators for engine tests
# =============================================================================


class FakeClock:
    """Controllable clock; starts at a fixed instant."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeIncidentRepository:
    """In-memory implementation of the incident persistence contract."""

    def __init__(self) -> None:
        self.incidents: dict[str, SimpleNamespace] = {}
        self.votes: list[SimpleNamespace] = []
        self.notes: list[SimpleNamespace] = []
        # When set, the next add_vote behaves as if a concurrent request
        # for the same user committed first.
        self.lose_next_vote_race = False

    async def get_by_id(self, incident_id: str) -> Optional[SimpleNamespace]:
        return self.incidents.get(incident_id)

    async def get_with_relations(self, incident_id: str) -> Optional[SimpleNamespace]:
        incident = self.incidents.get(incident_id)
        if incident is None:
            return None
        incident.votes = [v for v in self.votes if v.incident_id == incident_id]
        incident.admin_notes = [n for n in self.notes if n.incident_id == incident_id]
        return incident

    async def list_incidents(self, query: IncidentQuery) -> tuple[list[tuple[Any, int, int]], int]:
        items = list(self.incidents.values())

        if query.status is not None:
            items = [i for i in items if i.status == query.status.value]
        if query.incident_type:
            items = [i for i in items if i.incident_type == query.incident_type]
        if query.severity is not None:
            items = [i for i in items if i.severity == query.severity.value]
        if query.min_lat is not None:
            items = [i for i in items if i.latitude >= query.min_lat]
        if query.max_lat is not None:
            items = [i for i in items if i.latitude <= query.max_lat]
        if query.min_lng is not None:
            items = [i for i in items if i.longitude >= query.min_lng]
        if query.max_lng is not None:
            items = [i for i in items if i.longitude <= query.max_lng]

        def sort_key(incident: SimpleNamespace) -> Any:
            if query.sort_by == SortField.SEVERITY:
                return SEVERITY_RANK.get(incident.severity, -1)
            return getattr(incident, query.sort_by.value)

        items.sort(key=lambda i: i.id)
        items.sort(key=sort_key, reverse=query.sort_order == SortOrder.DESC)

        total = len(items)
        page = items[query.offset : query.offset + query.limit]
        rows = [
            (
                i,
                sum(1 for v in self.votes if v.incident_id == i.id),
                sum(1 for n in self.notes if n.incident_id == i.id),
            )
            for i in page
        ]
        return rows, total

    async def find_recent_nearby(
        self,
        incident_type: str,
        since: datetime,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
        limit: int = 20,
    ) -> list[SimpleNamespace]:
        matches = [
            i
            for i in self.incidents.values()
            if i.incident_type.upper() == incident_type.upper()
            and i.created_at >= since
            and min_lat <= i.latitude <= max_lat
            and min_lon <= i.longitude <= max_lon
            and i.status not in ("RESOLVED", "FLAGGED")
        ]
        matches.sort(key=lambda i: i.created_at, reverse=True)
        return matches[:limit]

    async def create(self, **fields: Any) -> SimpleNamespace:
        incident = SimpleNamespace(votes=[], admin_notes=[], **fields)
        self.incidents[incident.id] = incident
        return incident

    async def update(self, incident_id: str, **values: Any) -> Optional[SimpleNamespace]:
        incident = self.incidents.get(incident_id)
        if incident is None:
            return None
        for key, value in values.items():
            setattr(incident, key, value)
        return incident

    async def increment_upvotes(self, incident_id: str) -> Optional[SimpleNamespace]:
        incident = self.incidents.get(incident_id)
        if incident is None:
            return None
        incident.upvote_count += 1
        return incident

    async def has_vote(self, incident_id: str, user_id: str) -> bool:
        return any(v.incident_id == incident_id and v.user_id == user_id for v in self.votes)

    async def add_vote(self, incident_id: str, user_id: str) -> SimpleNamespace:
        incident = self.incidents.get(incident_id)
        if incident is None:
            raise IncidentNotFoundError(incident_id)

        if self.lose_next_vote_race:
            self.lose_next_vote_race = False
            self._record_vote(incident, user_id)

        if await self.has_vote(incident_id, user_id):
            raise DuplicateVoteError(incident_id, user_id)

        self._record_vote(incident, user_id)
        return incident

    def _record_vote(self, incident: SimpleNamespace, user_id: str) -> None:
        self.votes.append(
            SimpleNamespace(
                id=str(uuid4()),
                incident_id=incident.id,
                user_id=user_id,
                created_at=datetime.now(timezone.utc),
            )
        )
        incident.upvote_count += 1

    async def add_note(self, incident_id: str, user_id: str, note: str) -> SimpleNamespace:
        admin_note = SimpleNamespace(
            id=str(uuid4()),
            incident_id=incident_id,
            user_id=user_id,
            note=note,
            author=None,
            created_at=datetime.now(timezone.utc) + timedelta(microseconds=len(self.notes)),
        )
        self.notes.append(admin_note)
        return admin_note

    async def delete(self, incident_id: str) -> bool:
        if self.incidents.pop(incident_id, None) is None:
            return False
        self.votes = [v for v in self.votes if v.incident_id != incident_id]
        self.notes = [n for n in self.notes if n.incident_id != incident_id]
        return True

    async def count(self, status: Any = None) -> int:
        if status is None:
            return len(self.incidents)
        return sum(1 for i in self.incidents.values() if i.status == status.value)


class RecordingSink:
    """Notification sink that keeps every published event."""

    def __init__(self, fail: bool = False) -> None:
        self.events: list[Any] = []
        self.fail = fail

    async def publish(self, event: Any) -> None:
        if self.fail:
            raise RuntimeError("sink unavailable")
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type.value for event in self.events]


class FakeMediaStore:
    """Media store that records uploads, or fails when asked to."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.uploads: list[tuple[bytes, str]] = []

    async def store(self, data: bytes, folder: str) -> Any:
        from services.media_service import StoredMedia

        if self.error is not None:
            raise self.error
        self.uploads.append((data, folder))
        return StoredMedia(url=f"https://media.example.com/{folder}/{len(self.uploads)}.jpg", id=str(len(self.uploads)))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
async def app() -> Any:
    """Create FastAPI application for testing."""
    from main import app as fastapi_app

    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create mock database session."""
    session = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> FakeIncidentRepository:
    return FakeIncidentRepository()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def media_store() -> FakeMediaStore:
    return FakeMediaStore()


@pytest.fixture
def incident_service(repository, sink, media_store, clock) -> Any:
    """Lifecycle engine wired to in-memory collaborators."""
    from services.incident_service import IncidentService, LifecycleConfig

    return IncidentService(
        repository=repository,
        sink=sink,
        media_store=media_store,
        config=LifecycleConfig(verification_threshold=5, duplicate_distance_meters=200.0, duplicate_time_minutes=10),
        clock=clock,
    )


@pytest.fixture
def sample_report_data() -> dict[str, Any]:
    """Sample incident report payload."""
    return {
        "incident_type": "FIRE",
        "description": "Smoke coming out of a warehouse roof",
        "latitude": 40.0,
        "longitude": -75.0,
        "severity": "HIGH",
    }
