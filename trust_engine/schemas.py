"""
Pydantic Schemas for raw engine input.

Raw events arrive as dicts with a "kind" discriminator and are
validated here before any scoring takes place. Unknown enum
values inside a known kind (activity type, event type, severity,
title) are accepted as strings; the scorers route them to their
most conservative branch.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import UnknownEventKindError, ValidationError

from .types import (
    Activity,
    BehaviorSample,
    CredentialClaim,
    Event,
    EventKind,
    IncidentReport,
)


# =============================================================
# RAW EVENT SCHEMAS
# =============================================================

class RawEventSchema(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    kind: EventKind


class ActivitySchema(RawEventSchema):
    """Activity to be scored for fraud risk."""
    subject_id: str = Field(min_length=1)
    activity_type: str = Field(min_length=1)
    timestamp_utc: datetime
    payload: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    utc_offset_minutes: int = Field(default=0, ge=-14 * 60, le=14 * 60)

    @field_validator("subject_id", mode="before")
    @classmethod
    def _coerce_subject_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("timestamp_utc")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_event(self) -> Activity:
        return Activity(
            subject_id=self.subject_id,
            activity_type=self.activity_type,
            timestamp_utc=self.timestamp_utc,
            payload=dict(self.payload),
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            utc_offset_minutes=self.utc_offset_minutes,
        )


class BehaviorSchema(RawEventSchema):
    """Aggregated behavior observations."""
    subject_id: str = Field(min_length=1)
    frequency: float = Field(ge=0)
    duration_seconds: float = Field(ge=0)
    error_count: int = Field(ge=0)
    pattern_flags: List[str] = Field(default_factory=list)
    observed_data_points: int = Field(default=0, ge=0)
    observed_at: Optional[datetime] = None

    @field_validator("subject_id", mode="before")
    @classmethod
    def _coerce_subject_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("observed_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_event(self) -> BehaviorSample:
        return BehaviorSample(
            subject_id=self.subject_id,
            frequency=self.frequency,
            duration_seconds=self.duration_seconds,
            error_count=self.error_count,
            pattern_flags=tuple(self.pattern_flags),
            observed_data_points=self.observed_data_points,
            observed_at=self.observed_at,
        )


class IncidentSchema(RawEventSchema):
    """Reported incident."""
    event_type: str = Field(min_length=1)
    severity: str = Field(min_length=1)
    description: str
    affected_systems: List[str] = Field(default_factory=list)

    def to_event(self) -> IncidentReport:
        return IncidentReport(
            event_type=self.event_type,
            severity=self.severity,
            description=self.description,
            affected_systems=tuple(self.affected_systems),
        )


class CredentialSchema(RawEventSchema):
    """Claimed title with supporting evidence."""
    subject_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    rating: int = Field(ge=0)
    documents: List[str] = Field(default_factory=list)
    years_experience: float = Field(default=0, ge=0)

    @field_validator("subject_id", mode="before")
    @classmethod
    def _coerce_subject_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    def to_event(self) -> CredentialClaim:
        return CredentialClaim(
            title=self.title,
            rating=self.rating,
            documents=tuple(self.documents),
            years_experience=self.years_experience,
        )


SCHEMAS_BY_KIND: Dict[EventKind, Type[RawEventSchema]] = {
    EventKind.ACTIVITY: ActivitySchema,
    EventKind.BEHAVIOR: BehaviorSchema,
    EventKind.INCIDENT: IncidentSchema,
    EventKind.CREDENTIAL: CredentialSchema,
}


# =============================================================
# PARSING
# =============================================================

@dataclass(frozen=True)
class ParsedEvent:
    """A validated raw event converted to its typed form."""
    kind: EventKind
    event: Event
    subject_id: Optional[str] = None


def parse_event(raw: Mapping[str, Any]) -> ParsedEvent:
    """
    Validate a raw event dict and convert it to a typed event.

    Raises:
        UnknownEventKindError: kind is missing or unrecognized
        ValidationError: any field fails validation
    """
    if not isinstance(raw, Mapping):
        raise ValidationError(
            f"Raw event must be a mapping, got {type(raw).__name__}",
            field="event",
        )

    raw_kind = raw.get("kind")
    try:
        kind = EventKind(raw_kind)
    except ValueError:
        raise UnknownEventKindError(raw_kind)

    schema = SCHEMAS_BY_KIND[kind]
    try:
        model = schema.model_validate(dict(raw))
    except PydanticValidationError as e:
        raise _wrap_validation_error(kind, e)

    return ParsedEvent(
        kind=kind,
        event=model.to_event(),
        subject_id=getattr(model, "subject_id", None),
    )


def _wrap_validation_error(kind: EventKind, error: PydanticValidationError) -> ValidationError:
    details = error.errors()
    first = details[0] if details else {}
    field_name = ".".join(str(part) for part in first.get("loc", ())) or None
    return ValidationError(
        f"Invalid {kind.value} event: {first.get('msg', str(error))}",
        field=field_name,
        value=first.get("input") if not isinstance(first.get("input"), dict) else None,
        context={"error_count": len(details), "kind": kind.value},
        cause=error,
    )
