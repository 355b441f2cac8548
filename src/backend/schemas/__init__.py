"""Schemas module initialization."""

from schemas.incident import (
    ApiResponse,
    BroadcastRequest,
    CreateIncidentResult,
    DuplicateCheckResult,
    IncidentCreate,
    IncidentDetail,
    IncidentPage,
    IncidentQuery,
    IncidentResponse,
    IncidentStats,
    NoteCreate,
    SeverityUpdate,
    StatusUpdate,
    UpvoteResult,
)
from schemas.realtime import RealtimeEvent, RealtimeEventType
from schemas.user import UserInDB

__all__ = [
    "ApiResponse",
    "BroadcastRequest",
    "CreateIncidentResult",
    "DuplicateCheckResult",
    "IncidentCreate",
    "IncidentDetail",
    "IncidentPage",
    "IncidentQuery",
    "IncidentResponse",
    "IncidentStats",
    "NoteCreate",
    "SeverityUpdate",
    "StatusUpdate",
    "UpvoteResult",
    "RealtimeEvent",
    "RealtimeEventType",
    "UserInDB",
]
