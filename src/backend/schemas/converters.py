"""
Schema converter functions.

Centralized helper functions for converting SQLAlchemy models to Pydantic schemas.
These are the single source of truth for model-to-schema conversions, ensuring DRY code.
"""

from typing import TYPE_CHECKING, Optional

from models.incident import IncidentStatus, IncidentType, Severity
from schemas.incident import (
    AdminNoteResponse,
    IncidentDetail,
    IncidentResponse,
    VoteSummary,
)

if TYPE_CHECKING:
    from models.admin_note import AdminNote as AdminNoteModel
    from models.incident import Incident as IncidentModel


def incident_model_to_schema(
    incident: "IncidentModel",
    vote_total: Optional[int] = None,
    note_total: Optional[int] = None,
) -> IncidentResponse:
    """
    Convert an Incident SQLAlchemy model to an IncidentResponse schema.

    Also used to build realtime event payloads, so list and push views of
    an incident always agree.
    """
    return IncidentResponse(
        id=str(incident.id),
        incident_type=IncidentType(incident.incident_type),
        description=incident.description,
        latitude=incident.latitude,
        longitude=incident.longitude,
        severity=Severity(incident.severity),
        status=IncidentStatus(incident.status),
        upvote_count=incident.upvote_count or 0,
        media_url=incident.media_url,
        created_at=incident.created_at,
        updated_at=incident.updated_at,
        vote_total=vote_total,
        note_total=note_total,
    )


def admin_note_model_to_schema(note: "AdminNoteModel") -> AdminNoteResponse:
    author = getattr(note, "author", None)
    return AdminNoteResponse(
        id=str(note.id),
        incident_id=str(note.incident_id),
        user_id=str(note.user_id),
        note=note.note,
        author_name=author.name if author is not None else None,
        author_email=author.email if author is not None else None,
        created_at=note.created_at,
    )


def incident_model_to_detail_schema(incident: "IncidentModel") -> IncidentDetail:
    """
    Convert an Incident with loaded votes and notes to an IncidentDetail.

    Notes are returned newest first.
    """
    base = incident_model_to_schema(incident)
    notes = sorted(incident.admin_notes, key=lambda n: n.created_at, reverse=True)

    return IncidentDetail(
        **base.model_dump(exclude={"vote_total", "note_total"}),
        vote_total=len(incident.votes),
        note_total=len(notes),
        votes=[
            VoteSummary(id=str(v.id), user_id=str(v.user_id), created_at=v.created_at)
            for v in incident.votes
        ],
        admin_notes=[admin_note_model_to_schema(n) for n in notes],
    )
