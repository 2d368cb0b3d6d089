"""
Tests for raw event validation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.exceptions import UnknownEventKindError, ValidationError
from trust_engine.schemas import parse_event
from trust_engine.types import (
    Activity,
    BehaviorSample,
    CredentialClaim,
    EventKind,
    IncidentReport,
)


class TestParseEvent:
    """Tests for parse_event()."""

    def test_activity(self):
        parsed = parse_event(
            {
                "kind": "activity",
                "subject_id": 42,
                "activity_type": "payment",
                "timestamp_utc": "2024-01-01T02:00:00",
                "ip_address": " 8.8.8.8 ",
                "payload": {"country": "DE"},
            }
        )

        assert parsed.kind == EventKind.ACTIVITY
        assert isinstance(parsed.event, Activity)
        assert parsed.event.subject_id == "42"
        assert parsed.event.timestamp_utc == datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc)
        assert parsed.event.ip_address == "8.8.8.8"
        assert parsed.subject_id == "42"

    def test_activity_timestamp_normalized_to_utc(self):
        parsed = parse_event(
            {
                "kind": "activity",
                "subject_id": "u",
                "activity_type": "login",
                "timestamp_utc": "2024-01-01T07:30:00+05:30",
            }
        )

        assert parsed.event.timestamp_utc == datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc)
        assert parsed.event.timestamp_utc.utcoffset() == timedelta(0)

    def test_behavior(self):
        parsed = parse_event(
            {
                "kind": "behavior",
                "subject_id": "u",
                "frequency": 120,
                "duration_seconds": 30,
                "error_count": 2,
                "pattern_flags": ["macro"],
            }
        )

        assert isinstance(parsed.event, BehaviorSample)
        assert parsed.event.pattern_flags == ("macro",)
        assert parsed.event.observed_at is None

    def test_incident(self):
        parsed = parse_event(
            {
                "kind": "incident",
                "event_type": "data_leak",
                "severity": "high",
                "description": "export bucket public",
                "affected_systems": ["s3"],
            }
        )

        assert isinstance(parsed.event, IncidentReport)
        assert parsed.event.affected_systems == ("s3",)
        assert parsed.subject_id is None

    def test_credential(self):
        parsed = parse_event(
            {"kind": "credential", "subject_id": "p1", "title": "IM", "rating": 2450}
        )

        assert parsed.event == CredentialClaim(title="IM", rating=2450)
        assert parsed.subject_id == "p1"

    @pytest.mark.parametrize("kind", [None, "telemetry", 7])
    def test_unknown_kind(self, kind):
        with pytest.raises(UnknownEventKindError):
            parse_event({"kind": kind})

    def test_not_a_mapping(self):
        with pytest.raises(ValidationError):
            parse_event(["activity"])

    def test_negative_frequency(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_event(
                {
                    "kind": "behavior",
                    "subject_id": "u",
                    "frequency": -1,
                    "duration_seconds": 0,
                    "error_count": 0,
                }
            )

        assert exc_info.value.field == "frequency"

    def test_missing_field(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_event({"kind": "activity", "subject_id": "u", "activity_type": "login"})

        assert exc_info.value.field == "timestamp_utc"

    def test_extra_field_rejected(self):
        with pytest.raises(ValidationError):
            parse_event(
                {"kind": "credential", "subject_id": "p1", "title": "IM", "rating": 2450, "elo": 1}
            )

    def test_offset_out_of_range(self):
        with pytest.raises(ValidationError):
            parse_event(
                {
                    "kind": "activity",
                    "subject_id": "u",
                    "activity_type": "login",
                    "timestamp_utc": "2024-01-01T00:00:00Z",
                    "utc_offset_minutes": 900,
                }
            )
