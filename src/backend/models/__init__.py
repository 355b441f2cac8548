"""Database models module."""

from models.user import User, UserRole
from models.incident import Incident, IncidentStatus, IncidentType, Severity
from models.vote import Vote
from models.admin_note import AdminNote

__all__ = [
    "User",
    "UserRole",
    "Incident",
    "IncidentStatus",
    "IncidentType",
    "Severity",
    "Vote",
    "AdminNote",
]
