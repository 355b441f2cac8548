"""
Domain exceptions raised by the incident lifecycle engine.

The API layer maps these to HTTP responses; nothing here knows about HTTP.
"""


class IncidentEngineError(Exception):
    """Base class for incident engine errors."""

    def __init__(self, message: str, entity_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id


class IncidentNotFoundError(IncidentEngineError):
    """Referenced incident does not exist (or was deleted concurrently)."""

    def __init__(self, incident_id: str):
        super().__init__(f"Incident {incident_id} not found", entity_id=incident_id)


class DuplicateVoteError(IncidentEngineError):
    """A vote for this (user, incident) pair already exists."""

    def __init__(self, incident_id: str, user_id: str):
        super().__init__(
            f"User {user_id} has already voted on incident {incident_id}",
            entity_id=incident_id,
        )
        self.user_id = user_id


class UpstreamFailureError(IncidentEngineError):
    """An external dependency (media store, database) failed."""


class MediaUploadError(UpstreamFailureError):
    """The media store rejected or failed an upload."""
