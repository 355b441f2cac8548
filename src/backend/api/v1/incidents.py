"""
Incident endpoints.

Thin HTTP layer over the incident lifecycle engine: validates input,
resolves the caller, and wraps results in the response envelope.
Domain errors are mapped to status codes by the app's exception handlers.
"""

import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from api.deps import (
    get_current_admin_user,
    get_current_user_optional,
    get_incident_service,
)
from core.config import settings
from models.incident import IncidentStatus
from schemas.incident import (
    ApiResponse,
    BroadcastRequest,
    IncidentCreate,
    IncidentQuery,
    NoteCreate,
    SeverityUpdate,
    StatusUpdate,
)
from schemas.user import UserInDB
from services.incident_service import IncidentService
from services.media_service import ALLOWED_MEDIA_TYPES

router = APIRouter()


async def _read_media(media: Optional[UploadFile]) -> Optional[bytes]:
    """Enforce media type and size limits before anything reaches the engine."""
    if media is None:
        return None

    if media.content_type not in ALLOWED_MEDIA_TYPES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Invalid file type. Only images and videos are allowed.",
        )

    data = await media.read(settings.MEDIA_MAX_BYTES + 1)
    if len(data) > settings.MEDIA_MAX_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {settings.MEDIA_MAX_BYTES // (1024 * 1024)}MB limit",
        )
    return data or None


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_incident(
    data: Annotated[str, Form(description="JSON-encoded incident report")],
    service: Annotated[IncidentService, Depends(get_incident_service)],
    media: Annotated[Optional[UploadFile], File()] = None,
) -> ApiResponse:
    """
    Report a new incident.

    Multipart form: ``data`` holds the JSON report, ``media`` an optional
    image or video. Likely duplicates are accepted and flagged.
    """
    try:
        report = IncidentCreate.model_validate_json(data)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False, include_context=False))

    media_bytes = await _read_media(media)
    result = await service.create_incident(report, media_bytes)

    flagged = result.incident.status == IncidentStatus.FLAGGED
    return ApiResponse(
        data=result.model_dump(mode="json"),
        message=(
            "Incident reported and flagged as potential duplicate" if flagged else "Incident reported successfully"
        ),
    )


@router.get("", response_model=ApiResponse)
async def list_incidents(
    query: Annotated[IncidentQuery, Query()],
    service: Annotated[IncidentService, Depends(get_incident_service)],
) -> ApiResponse:
    """List incidents with filters, sorting and pagination."""
    page = await service.list_incidents(query)
    return ApiResponse(data=[item.model_dump(mode="json") for item in page.items], meta=page.meta)


@router.get("/stats", response_model=ApiResponse)
async def get_stats(
    service: Annotated[IncidentService, Depends(get_incident_service)],
) -> ApiResponse:
    """Incident counts by lifecycle stage."""
    stats = await service.get_stats()
    return ApiResponse(data=stats.model_dump())


@router.post("/broadcast", response_model=ApiResponse)
async def broadcast(
    body: BroadcastRequest,
    admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    service: Annotated[IncidentService, Depends(get_incident_service)],
) -> ApiResponse:
    """Push an emergency message to every connected client (admin only)."""
    await service.broadcast(body.message)
    return ApiResponse(message="Broadcast initiated successfully")


@router.get("/{incident_id}", response_model=ApiResponse)
async def get_incident(
    incident_id: uuid.UUID,
    service: Annotated[IncidentService, Depends(get_incident_service)],
) -> ApiResponse:
    """Get one incident with its votes and admin notes."""
    incident = await service.get_incident(str(incident_id))
    return ApiResponse(data=incident.model_dump(mode="json"))


@router.patch("/{incident_id}/status", response_model=ApiResponse)
async def update_status(
    incident_id: uuid.UUID,
    body: StatusUpdate,
    admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    service: Annotated[IncidentService, Depends(get_incident_service)],
) -> ApiResponse:
    """Change an incident's status (admin only)."""
    incident = await service.update_status(str(incident_id), body.status, admin.id, body.note)
    return ApiResponse(
        data=incident.model_dump(mode="json"),
        message=f"Incident status updated to {body.status.value}",
    )


@router.post("/{incident_id}/notes", response_model=ApiResponse)
async def add_note(
    incident_id: uuid.UUID,
    body: NoteCreate,
    admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    service: Annotated[IncidentService, Depends(get_incident_service)],
) -> ApiResponse:
    """Attach an admin note (admin only)."""
    incident = await service.add_note(str(incident_id), admin.id, body.note)
    return ApiResponse(data=incident.model_dump(mode="json"), message="Note added successfully")


@router.patch("/{incident_id}/severity", response_model=ApiResponse)
async def update_severity(
    incident_id: uuid.UUID,
    body: SeverityUpdate,
    admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    service: Annotated[IncidentService, Depends(get_incident_service)],
) -> ApiResponse:
    """Change an incident's severity (admin only)."""
    incident = await service.update_severity(str(incident_id), body.severity)
    return ApiResponse(
        data=incident.model_dump(mode="json"),
        message=f"Severity updated to {body.severity.value}",
    )


@router.post("/{incident_id}/upvote", response_model=ApiResponse)
async def upvote_incident(
    incident_id: uuid.UUID,
    current_user: Annotated[Optional[UserInDB], Depends(get_current_user_optional)],
    service: Annotated[IncidentService, Depends(get_incident_service)],
) -> ApiResponse:
    """
    Upvote an incident.

    Works for anonymous callers too. Repeated upvotes by the same signed-in
    user are reported as already voted, never as an error.
    """
    result = await service.upvote(str(incident_id), current_user.id if current_user else None)

    if result.already_voted:
        message = "You have already upvoted this incident"
    elif result.incident.status == IncidentStatus.VERIFIED:
        message = "Upvote recorded. Incident is now verified!"
    else:
        message = "Upvote recorded successfully"

    return ApiResponse(data=result.model_dump(mode="json"), message=message)


@router.delete("/{incident_id}", response_model=ApiResponse)
async def delete_incident(
    incident_id: uuid.UUID,
    admin: Annotated[UserInDB, Depends(get_current_admin_user)],
    service: Annotated[IncidentService, Depends(get_incident_service)],
) -> ApiResponse:
    """Delete an incident with its votes and notes (admin only)."""
    await service.delete_incident(str(incident_id))
    return ApiResponse(message="Incident deleted successfully")
