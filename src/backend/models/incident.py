"""
Incident model for PostgreSQL storage.

An incident is a single geotagged report. It exclusively owns its votes
and admin notes; deleting an incident cascades to both.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from sqlalchemy import DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base

if TYPE_CHECKING:
    from models.admin_note import AdminNote
    from models.vote import Vote


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IncidentType(str, Enum):
    """Kinds of incident a citizen can report."""

    FIRE = "FIRE"
    FLOOD = "FLOOD"
    EARTHQUAKE = "EARTHQUAKE"
    ACCIDENT = "ACCIDENT"
    MEDICAL = "MEDICAL"
    CRIME = "CRIME"
    INFRASTRUCTURE = "INFRASTRUCTURE"
    ENVIRONMENTAL = "ENVIRONMENTAL"
    OTHER = "OTHER"


class Severity(str, Enum):
    """Reported severity, ordered LOW < MEDIUM < HIGH."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# Sort rank for severity ordering (string order would put HIGH first)
SEVERITY_RANK = {Severity.LOW.value: 0, Severity.MEDIUM.value: 1, Severity.HIGH.value: 2}


class IncidentStatus(str, Enum):
    """
    Incident lifecycle status.

    REPORTED is the initial state (FLAGGED when created as a likely duplicate).
    REPORTED -> VERIFIED happens automatically at the upvote threshold.
    Administrators may move an incident to any status from any status.
    """

    REPORTED = "REPORTED"
    VERIFIED = "VERIFIED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    FLAGGED = "FLAGGED"


class Incident(Base):
    """A community-reported incident."""

    __tablename__ = "incidents"

    __table_args__ = (
        # Duplicate detection: same type, recent, inside a lat/lng box
        Index("ix_incidents_type_created", "incident_type", "created_at"),
        Index("ix_incidents_lat_lng", "latitude", "longitude"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    incident_type: Mapped[str] = mapped_column(String(50), index=True)
    description: Mapped[str] = mapped_column(Text)

    latitude: Mapped[float] = mapped_column(Float)
    longitude: Mapped[float] = mapped_column(Float)

    severity: Mapped[str] = mapped_column(
        String(10),
        default=Severity.MEDIUM.value,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=IncidentStatus.REPORTED.value,
        index=True,
    )

    # Never decremented
    upvote_count: Mapped[int] = mapped_column(Integer, default=0)

    media_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    # Relationships
    votes: Mapped[list["Vote"]] = relationship(
        back_populates="incident",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    admin_notes: Mapped[list["AdminNote"]] = relationship(
        back_populates="incident",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AdminNote.created_at.desc()",
    )
