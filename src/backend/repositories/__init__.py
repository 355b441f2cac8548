"""Repository modules for database access."""

from repositories.incident_repository import IncidentRepository
from repositories.provider import IncidentRepositoryProtocol

__all__ = [
    "IncidentRepository",
    "IncidentRepositoryProtocol",
]
