"""
Incident repository for database operations.

Implements the persistence contract the lifecycle engine relies on.
Each write commits its own unit of work; the vote path wraps the vote
insert and the counter increment in a single savepoint.
"""

from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import and_, case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.exceptions import DuplicateVoteError, IncidentNotFoundError
from models.admin_note import AdminNote
from models.incident import SEVERITY_RANK, Incident, IncidentStatus
from models.vote import Vote
from schemas.incident import IncidentQuery, SortField, SortOrder

logger = structlog.get_logger(__name__)

# Statuses never considered as the original of a duplicate
DUPLICATE_EXCLUDED_STATUSES = (IncidentStatus.RESOLVED.value, IncidentStatus.FLAGGED.value)


class IncidentRepository:
    """Repository for incident, vote and admin note database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _get_rowcount(self, result: Any) -> int:
        """Safely get rowcount from result."""
        return getattr(result, "rowcount", 0) or 0

    async def get_by_id(self, incident_id: str) -> Optional[Incident]:
        """Get an incident by ID (without relations)."""
        result = await self.db.execute(
            select(Incident).where(Incident.id == incident_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_with_relations(self, incident_id: str) -> Optional[Incident]:
        """Get an incident with its votes and admin notes loaded."""
        result = await self.db.execute(
            select(Incident)
            .options(
                selectinload(Incident.votes),
                selectinload(Incident.admin_notes),
            )
            .where(Incident.id == incident_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_incidents(self, query: IncidentQuery) -> tuple[list[tuple[Incident, int, int]], int]:
        """
        List incidents with filters, sorting and pagination.

        Returns ``([(incident, vote_total, note_total), ...], total)``.
        """
        where = []

        if query.status is not None:
            where.append(Incident.status == query.status.value)
        if query.incident_type:
            where.append(Incident.incident_type == query.incident_type.upper())
        if query.severity is not None:
            where.append(Incident.severity == query.severity.value)

        if query.min_lat is not None:
            where.append(Incident.latitude >= query.min_lat)
        if query.max_lat is not None:
            where.append(Incident.latitude <= query.max_lat)
        if query.min_lng is not None:
            where.append(Incident.longitude >= query.min_lng)
        if query.max_lng is not None:
            where.append(Incident.longitude <= query.max_lng)

        vote_total = (
            select(func.count(Vote.id)).where(Vote.incident_id == Incident.id).correlate(Incident).scalar_subquery()
        )
        note_total = (
            select(func.count(AdminNote.id))
            .where(AdminNote.incident_id == Incident.id)
            .correlate(Incident)
            .scalar_subquery()
        )

        stmt = select(Incident, vote_total.label("vote_total"), note_total.label("note_total"))
        count_stmt = select(func.count(Incident.id))
        if where:
            stmt = stmt.where(and_(*where))
            count_stmt = count_stmt.where(and_(*where))

        total_result = await self.db.execute(count_stmt)
        total = total_result.scalar() or 0

        sort_column = self._sort_expression(query.sort_by)
        ordering = sort_column.asc() if query.sort_order == SortOrder.ASC else sort_column.desc()
        # Tie-break on id so pages never overlap
        stmt = stmt.order_by(ordering, Incident.id.asc())
        stmt = stmt.offset(query.offset).limit(query.limit)

        result = await self.db.execute(stmt)
        rows = [(row[0], row[1] or 0, row[2] or 0) for row in result.all()]

        return rows, total

    def _sort_expression(self, sort_by: SortField) -> Any:
        if sort_by == SortField.SEVERITY:
            # Rank severities instead of sorting their names alphabetically
            return case(SEVERITY_RANK, value=Incident.severity, else_=-1)
        if sort_by == SortField.UPDATED_AT:
            return Incident.updated_at
        if sort_by == SortField.UPVOTE_COUNT:
            return Incident.upvote_count
        return Incident.created_at

    async def find_recent_nearby(
        self,
        incident_type: str,
        since: datetime,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
        limit: int = 20,
    ) -> list[Incident]:
        """
        Coarse duplicate candidates: same type (case-insensitive), created at
        or after ``since``, inside the box, not RESOLVED or FLAGGED.

        Newest first.
        """
        result = await self.db.execute(
            select(Incident)
            .where(
                and_(
                    func.upper(Incident.incident_type) == incident_type.upper(),
                    Incident.created_at >= since,
                    Incident.latitude >= min_lat,
                    Incident.latitude <= max_lat,
                    Incident.longitude >= min_lon,
                    Incident.longitude <= max_lon,
                    Incident.status.notin_(DUPLICATE_EXCLUDED_STATUSES),
                )
            )
            .order_by(Incident.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def create(self, **fields: Any) -> Incident:
        """Insert a new incident and return it."""
        incident = Incident(**fields)

        self.db.add(incident)
        await self.db.commit()
        await self.db.refresh(incident)

        return incident

    async def update(self, incident_id: str, **values: Any) -> Optional[Incident]:
        """Apply a partial update. Returns None if the incident does not exist."""
        result = await self.db.execute(
            update(Incident)
            .where(Incident.id == incident_id)
            .values(**values)
            .returning(Incident)
            .execution_options(populate_existing=True)
        )
        incident = result.scalar_one_or_none()
        await self.db.commit()
        return incident

    async def increment_upvotes(self, incident_id: str) -> Optional[Incident]:
        """Atomically add one to the upvote counter."""
        return await self.update(incident_id, upvote_count=Incident.upvote_count + 1)

    async def has_vote(self, incident_id: str, user_id: str) -> bool:
        """Check whether the user has already upvoted the incident."""
        result = await self.db.execute(
            select(func.count(Vote.id)).where(
                and_(
                    Vote.incident_id == incident_id,
                    Vote.user_id == user_id,
                )
            )
        )
        count = result.scalar() or 0
        return count > 0

    async def add_vote(self, incident_id: str, user_id: str) -> Incident:
        """
        Record a user's vote and increment the counter in one transaction.

        Raises:
            DuplicateVoteError: The (user, incident) pair already has a vote,
                e.g. a concurrent request won the race.
            IncidentNotFoundError: The incident does not exist.
        """
        try:
            async with self.db.begin_nested():
                self.db.add(Vote(incident_id=incident_id, user_id=user_id))
                await self.db.flush()
                result = await self.db.execute(
                    update(Incident)
                    .where(Incident.id == incident_id)
                    .values(upvote_count=Incident.upvote_count + 1)
                    .returning(Incident)
                    .execution_options(populate_existing=True)
                )
                incident = result.scalar_one_or_none()
                if incident is None:
                    raise IncidentNotFoundError(incident_id)
        except IntegrityError as e:
            await self.db.rollback()
            # A foreign key failure means the incident vanished underneath us
            if await self.get_by_id(incident_id) is None:
                raise IncidentNotFoundError(incident_id) from e
            logger.info("duplicate_vote_rejected", incident_id=incident_id, user_id=user_id)
            raise DuplicateVoteError(incident_id, user_id) from e

        await self.db.commit()
        return incident

    async def add_note(self, incident_id: str, user_id: str, note: str) -> AdminNote:
        """Attach an admin note to an incident."""
        admin_note = AdminNote(incident_id=incident_id, user_id=user_id, note=note)

        self.db.add(admin_note)
        await self.db.commit()
        await self.db.refresh(admin_note)

        return admin_note

    async def delete(self, incident_id: str) -> bool:
        """Delete an incident; votes and notes go with it (ON DELETE CASCADE)."""
        result = await self.db.execute(delete(Incident).where(Incident.id == incident_id))
        await self.db.commit()
        return self._get_rowcount(result) > 0

    async def count(self, status: Optional[IncidentStatus] = None) -> int:
        """Count incidents, optionally restricted to one status."""
        stmt = select(func.count(Incident.id))
        if status is not None:
            stmt = stmt.where(Incident.status == status.value)
        result = await self.db.execute(stmt)
        return result.scalar() or 0
