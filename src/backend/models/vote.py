"""
Vote model for PostgreSQL storage.

One row per (user, incident) upvote. The unique constraint is the final
arbiter against duplicate upvotes, including concurrent ones.
Anonymous upvotes never create a row.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base
from models.incident import utcnow

if TYPE_CHECKING:
    from models.incident import Incident


class Vote(Base):
    """An authenticated user's upvote on an incident."""

    __tablename__ = "incident_votes"

    __table_args__ = (
        UniqueConstraint("user_id", "incident_id", name="uq_incident_votes_user_incident"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    incident_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("incidents.id", ondelete="CASCADE"),
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    incident: Mapped["Incident"] = relationship(back_populates="votes")
