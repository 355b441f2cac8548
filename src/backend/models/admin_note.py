"""
Admin note model.

Notes are written by administrators, either standalone or as part of a
status change, and are never edited afterwards.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base
from models.incident import utcnow

if TYPE_CHECKING:
    from models.incident import Incident
    from models.user import User


class AdminNote(Base):
    """Administrative annotation attached to an incident."""

    __tablename__ = "admin_notes"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    incident_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("incidents.id", ondelete="CASCADE"),
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )

    note: Mapped[str] = mapped_column(String(1100))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        index=True,
    )

    incident: Mapped["Incident"] = relationship(back_populates="admin_notes")
    author: Mapped["User"] = relationship(lazy="joined")
