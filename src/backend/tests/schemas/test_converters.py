"""Tests for the schema converters."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from models.incident import IncidentStatus, IncidentType, Severity
from schemas.converters import (
    admin_note_model_to_schema,
    incident_model_to_detail_schema,
    incident_model_to_schema,
)


class TestIncidentModelToSchema:
    """Tests for incident_model_to_schema converter."""

    @pytest.fixture
    def mock_note(self):
        """Create a mock admin note."""

        def _create_note(text: str, minutes_ago: int, author=None):
            note = MagicMock()
            note.id = f"note-{text.lower()}"
            note.incident_id = "incident-1"
            note.user_id = "admin-1"
            note.note = text
            note.author = author
            note.created_at = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
            return note

        return _create_note

    @pytest.fixture
    def mock_incident(self):
        """Create a mock incident with all required fields."""
        incident = MagicMock()
        incident.id = "incident-1"
        incident.incident_type = "FIRE"
        incident.description = "Smoke from the warehouse"
        incident.latitude = 40.0
        incident.longitude = -75.0
        incident.severity = "HIGH"
        incident.status = "REPORTED"
        incident.upvote_count = 2
        incident.media_url = None
        incident.created_at = datetime.now(timezone.utc)
        incident.updated_at = datetime.now(timezone.utc)
        incident.votes = []
        incident.admin_notes = []
        return incident

    def test_converts_enums_and_fields(self, mock_incident):
        result = incident_model_to_schema(mock_incident)

        assert result.id == "incident-1"
        assert result.incident_type == IncidentType.FIRE
        assert result.severity == Severity.HIGH
        assert result.status == IncidentStatus.REPORTED
        assert result.upvote_count == 2
        assert result.vote_total is None
        assert result.note_total is None

    def test_includes_totals_when_given(self, mock_incident):
        result = incident_model_to_schema(mock_incident, vote_total=4, note_total=1)

        assert result.vote_total == 4
        assert result.note_total == 1

    def test_missing_upvote_count_defaults_to_zero(self, mock_incident):
        mock_incident.upvote_count = None
        assert incident_model_to_schema(mock_incident).upvote_count == 0

    def test_detail_orders_notes_newest_first(self, mock_incident, mock_note):
        mock_incident.admin_notes = [mock_note("Older", 30), mock_note("Newer", 5)]
        vote = MagicMock(id="vote-1", user_id="user-1", created_at=datetime.now(timezone.utc))
        mock_incident.votes = [vote]

        result = incident_model_to_detail_schema(mock_incident)

        assert [n.note for n in result.admin_notes] == ["Newer", "Older"]
        assert result.note_total == 2
        assert result.vote_total == 1
        assert result.votes[0].user_id == "user-1"

    def test_note_author_fields(self, mock_note):
        author = MagicMock()
        author.name = "Dispatch Lead"
        author.email = "lead@example.com"

        result = admin_note_model_to_schema(mock_note("Crew on site", 1, author=author))

        assert result.author_name == "Dispatch Lead"
        assert result.author_email == "lead@example.com"

    def test_note_without_author(self, mock_note):
        result = admin_note_model_to_schema(mock_note("Crew on site", 1))

        assert result.author_name is None
        assert result.author_email is None
