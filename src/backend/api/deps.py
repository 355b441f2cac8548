"""
Shared dependencies for API endpoints.

Includes:
- JWT authentication of the calling user (required, optional, admin)
- Construction of the incident lifecycle engine for a request
"""

import uuid
from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.security import decode_token
from db.session import get_db
from models.user import User, UserRole
from repositories.provider import IncidentRepositoryProtocol, get_incident_repository
from schemas.user import UserInDB
from services.incident_service import IncidentService, LifecycleConfig
from services.realtime_service import RealtimeBroadcaster

logger = structlog.get_logger(__name__)

# Security schemes
security = HTTPBearer()
security_optional = HTTPBearer(auto_error=False)


# =============================================================================
# Helper Functions
# =============================================================================


def _user_model_to_schema(user: User) -> UserInDB:
    """
    Convert a User SQLAlchemy model to a UserInDB Pydantic schema.

    This is the single source of truth for User -> UserInDB conversion.
    """
    return UserInDB(
        id=str(user.id),
        email=user.email,
        name=user.name,
        role=UserRole(user.role),
        created_at=user.created_at,
    )


async def _resolve_user(token: str, db: AsyncSession) -> User | None:
    payload = decode_token(token)
    if payload is None:
        return None

    user_id = payload.get("sub")
    if user_id is None:
        return None

    # User ids are UUIDs; anything else cannot match a row
    try:
        user_id = str(uuid.UUID(str(user_id)))
    except ValueError:
        logger.warning("token_subject_invalid")
        return None

    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


# =============================================================================
# User Authentication (JWT-based)
# =============================================================================


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: AsyncSession = Depends(get_db),
) -> UserInDB:
    """
    Extract and validate the current user from the JWT token.

    Raises:
        HTTPException: If token is invalid or user not found.
    """
    user = await _resolve_user(credentials.credentials, db)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return _user_model_to_schema(user)


async def get_current_user_optional(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_optional)],
    db: AsyncSession = Depends(get_db),
) -> UserInDB | None:
    """
    Optionally extract the current user from the JWT token.

    Returns None if no token is provided or token is invalid; used by
    endpoints that also serve anonymous callers (e.g. upvotes).
    """
    if credentials is None:
        return None

    user = await _resolve_user(credentials.credentials, db)
    return _user_model_to_schema(user) if user else None


async def get_current_admin_user(
    current_user: Annotated[UserInDB, Depends(get_current_user)],
) -> UserInDB:
    """
    Ensure the current user is an admin.

    Raises:
        HTTPException: If user is not an admin.
    """
    if not current_user.is_admin:
        logger.warning(
            "non_admin_access_attempt",
            user_id=current_user.id,
            email=current_user.email,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


# =============================================================================
# Incident Engine
# =============================================================================


def get_broadcaster(request: Request) -> RealtimeBroadcaster:
    """Process-wide broadcaster created at startup."""
    return request.app.state.broadcaster


async def get_incident_service(
    request: Request,
    repository: IncidentRepositoryProtocol = Depends(get_incident_repository),
    broadcaster: RealtimeBroadcaster = Depends(get_broadcaster),
) -> IncidentService:
    """Build the lifecycle engine for this request with its collaborators injected."""
    return IncidentService(
        repository=repository,
        sink=broadcaster,
        media_store=getattr(request.app.state, "media_store", None),
        config=LifecycleConfig.from_settings(),
    )
