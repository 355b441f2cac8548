"""
Incident-related Pydantic schemas.

Request schemas carry the boundary validation (bounds, lengths, enum
membership); the lifecycle engine assumes its inputs already passed them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from core.config import settings
from models.incident import IncidentStatus, IncidentType, Severity

DUPLICATE_MARKER = "[POTENTIAL DUPLICATE]"


class SortField(str, Enum):
    """Columns the incident list can be ordered by."""

    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    SEVERITY = "severity"
    UPVOTE_COUNT = "upvote_count"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# camelCase spellings accepted from older clients
_SORT_ALIASES = {
    "createdAt": SortField.CREATED_AT.value,
    "updatedAt": SortField.UPDATED_AT.value,
    "upvoteCount": SortField.UPVOTE_COUNT.value,
}


class IncidentCreate(BaseModel):
    """Schema for submitting a new incident report."""

    incident_type: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=10, max_length=2000)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    severity: Severity = Severity.MEDIUM

    @field_validator("incident_type")
    @classmethod
    def normalize_incident_type(cls, v: str) -> str:
        """Upper-case the type and check it is a known one."""
        normalized = v.strip().upper()
        allowed = [t.value for t in IncidentType]
        if normalized not in allowed:
            raise ValueError(f"Incident type must be one of: {', '.join(allowed)}")
        return normalized


class IncidentQuery(BaseModel):
    """Filters, sorting and pagination for listing incidents."""

    page: int = Field(1, ge=1)
    limit: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE)
    status: Optional[IncidentStatus] = None
    incident_type: Optional[str] = None
    severity: Optional[Severity] = None
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC

    # Bounding box; each side is independent and optional
    min_lat: Optional[float] = Field(None, ge=-90, le=90)
    max_lat: Optional[float] = Field(None, ge=-90, le=90)
    min_lng: Optional[float] = Field(None, ge=-180, le=180)
    max_lng: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator("sort_by", mode="before")
    @classmethod
    def accept_camel_case_sort(cls, v: Any) -> Any:
        if isinstance(v, str):
            return _SORT_ALIASES.get(v, v)
        return v

    @field_validator("incident_type")
    @classmethod
    def normalize_incident_type(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class StatusUpdate(BaseModel):
    """Admin status change, optionally annotated."""

    status: IncidentStatus
    note: Optional[str] = Field(None, max_length=1000)


class SeverityUpdate(BaseModel):
    severity: Severity


class NoteCreate(BaseModel):
    note: str = Field(..., min_length=1, max_length=1000)


class BroadcastRequest(BaseModel):
    """Emergency message pushed to every connected client."""

    message: str = Field(..., min_length=1, max_length=1000)


class VoteSummary(BaseModel):
    id: str
    user_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class AdminNoteResponse(BaseModel):
    id: str
    incident_id: str
    user_id: str
    note: str
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    created_at: datetime


class IncidentResponse(BaseModel):
    """Schema for incident responses and realtime payloads."""

    id: str
    incident_type: IncidentType
    description: str
    latitude: float
    longitude: float
    severity: Severity
    status: IncidentStatus
    upvote_count: int = 0
    media_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    vote_total: Optional[int] = Field(None, description="Number of authenticated votes (list views)")
    note_total: Optional[int] = Field(None, description="Number of admin notes (list views)")


class IncidentDetail(IncidentResponse):
    """Single incident with its votes and notes."""

    votes: list[VoteSummary] = Field(default_factory=list)
    admin_notes: list[AdminNoteResponse] = Field(default_factory=list)


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class IncidentPage(BaseModel):
    """One page of incidents plus paging metadata."""

    items: list[IncidentResponse]
    meta: PageMeta


class DuplicateCheckResult(BaseModel):
    """Outcome of a duplicate check at creation time."""

    is_duplicate: bool
    duplicate_of: Optional[str] = None
    reason: Optional[str] = None


class CreateIncidentResult(BaseModel):
    incident: IncidentResponse
    duplicate: DuplicateCheckResult


class UpvoteResult(BaseModel):
    incident: IncidentResponse
    already_voted: bool


class IncidentStats(BaseModel):
    total: int
    pending: int
    active: int
    resolved: int


class ApiResponse(BaseModel):
    """Response envelope used by the incident endpoints."""

    success: bool = True
    data: Optional[Any] = None
    message: Optional[str] = None
    meta: Optional[PageMeta] = None
