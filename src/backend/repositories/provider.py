"""
Repository provider for dependency injection.

The lifecycle engine depends on the protocol below, never on a global
client, so tests can hand it an in-memory store instead of a database.

Usage:
    from repositories.provider import get_incident_repository

    async def some_endpoint(
        repo: IncidentRepositoryProtocol = Depends(get_incident_repository),
    ):
        incident = await repo.get_by_id(incident_id)
"""

from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import get_db
from models.incident import IncidentStatus
from schemas.incident import IncidentQuery


# =============================================================================
# Repository Protocols (Interfaces)
# =============================================================================


@runtime_checkable
class IncidentRepositoryProtocol(Protocol):
    """Persistence contract consumed by the incident lifecycle engine."""

    async def get_by_id(self, incident_id: str): ...
    async def get_with_relations(self, incident_id: str): ...
    async def list_incidents(self, query: IncidentQuery) -> tuple[list[tuple[Any, int, int]], int]: ...
    async def find_recent_nearby(
        self,
        incident_type: str,
        since: datetime,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
        limit: int = 20,
    ) -> list: ...
    async def create(self, **fields: Any): ...
    async def update(self, incident_id: str, **values: Any): ...
    async def increment_upvotes(self, incident_id: str): ...
    async def has_vote(self, incident_id: str, user_id: str) -> bool: ...
    async def add_vote(self, incident_id: str, user_id: str): ...
    async def add_note(self, incident_id: str, user_id: str, note: str): ...
    async def delete(self, incident_id: str) -> bool: ...
    async def count(self, status: Optional[IncidentStatus] = None) -> int: ...


# =============================================================================
# FastAPI Dependencies
# =============================================================================


async def get_incident_repository(db: AsyncSession = Depends(get_db)) -> IncidentRepositoryProtocol:
    """Get the SQL-backed incident repository for the request session."""
    from repositories.incident_repository import IncidentRepository

    return IncidentRepository(db)
