"""
Audit Record Serialization.

============================================================
PURPOSE
============================================================
Converts engine audit records to JSON-compatible payloads and
back. This is the only place the engine's typed records meet
JSON.

============================================================
FORMAT
============================================================
Every payload carries "record_type":
- decision      -> DecisionRecord
- verification  -> VerificationResult
- crisis        -> CrisisEvent

Indicator sets are serialized sorted. Datetimes are ISO 8601.
Crisis actions keep their target, executed_at and outcome.

============================================================
"""

from datetime import datetime
from typing import Any, Dict, Optional

from core.exceptions import StorageError, ValidationError
from trust_engine.types import (
    Action,
    ActionStatus,
    AuditRecord,
    Check,
    CrisisEvent,
    CrisisStatus,
    DecisionRecord,
    DecisionSurface,
    PolicyAction,
    VerificationResult,
    VerificationStatus,
)


RECORD_TYPE_DECISION = "decision"
RECORD_TYPE_VERIFICATION = "verification"
RECORD_TYPE_CRISIS = "crisis"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _action_to_payload(action: Action) -> Dict[str, Any]:
    return {
        "kind": action.kind,
        "target": action.target,
        "executed_at": _iso(action.executed_at),
        "outcome": action.outcome.value if action.outcome is not None else None,
    }


def _payload_to_action(payload: Dict[str, Any]) -> Action:
    outcome = payload.get("outcome")
    return Action(
        kind=payload["kind"],
        target=payload["target"],
        executed_at=_parse_dt(payload.get("executed_at")),
        outcome=ActionStatus(outcome) if outcome is not None else None,
    )


def record_to_payload(record: AuditRecord) -> Dict[str, Any]:
    """Serialize an audit record to a JSON-compatible dict."""
    if isinstance(record, DecisionRecord):
        return {
            "record_type": RECORD_TYPE_DECISION,
            "record_id": record.record_id,
            "subject_id": record.subject_id,
            "surface": record.surface.value,
            "score": record.score,
            "indicators": sorted(record.indicators),
            "action": record.action.value,
            "created_at": _iso(record.created_at),
            "resolved_at": _iso(record.resolved_at),
            "confidence": record.confidence,
            "recommendations": list(record.recommendations),
        }

    if isinstance(record, VerificationResult):
        return {
            "record_type": RECORD_TYPE_VERIFICATION,
            "subject_id": record.subject_id,
            "claimed_title": record.claimed_title,
            "checks": [
                {"name": c.name, "score": c.score, "passed": c.passed, "detail": c.detail}
                for c in record.checks
            ],
            "aggregate_score": record.aggregate_score,
            "status": record.status.value,
            "next_steps": list(record.next_steps),
        }

    if isinstance(record, CrisisEvent):
        return {
            "record_type": RECORD_TYPE_CRISIS,
            "event_id": record.event_id,
            "event_type": record.event_type,
            "severity": record.severity,
            "description": record.description,
            "affected_systems": list(record.affected_systems),
            "actions": [_action_to_payload(a) for a in record.actions],
            "escalation_level": record.escalation_level,
            "status": record.status.value,
            "created_at": _iso(record.created_at),
            "resolved_at": _iso(record.resolved_at),
        }

    raise StorageError(
        f"Cannot serialize {type(record).__name__}",
        operation="serialize",
    )


def payload_to_record(payload: Dict[str, Any]) -> AuditRecord:
    """Rebuild an audit record from its payload."""
    record_type = payload.get("record_type")
    try:
        if record_type == RECORD_TYPE_DECISION:
            return DecisionRecord(
                record_id=payload["record_id"],
                subject_id=payload["subject_id"],
                surface=DecisionSurface(payload["surface"]),
                score=float(payload["score"]),
                indicators=frozenset(payload.get("indicators", ())),
                action=PolicyAction(payload["action"]),
                created_at=_parse_dt(payload["created_at"]),
                resolved_at=_parse_dt(payload.get("resolved_at")),
                confidence=payload.get("confidence"),
                recommendations=tuple(payload.get("recommendations", ())),
            )

        if record_type == RECORD_TYPE_VERIFICATION:
            return VerificationResult(
                subject_id=payload["subject_id"],
                claimed_title=payload["claimed_title"],
                checks=tuple(
                    Check(
                        name=c["name"],
                        score=float(c["score"]),
                        passed=bool(c["passed"]),
                        detail=c["detail"],
                    )
                    for c in payload.get("checks", ())
                ),
                aggregate_score=float(payload["aggregate_score"]),
                status=VerificationStatus(payload["status"]),
                next_steps=tuple(payload.get("next_steps", ())),
            )

        if record_type == RECORD_TYPE_CRISIS:
            return CrisisEvent(
                event_id=payload["event_id"],
                event_type=payload["event_type"],
                severity=payload["severity"],
                description=payload["description"],
                affected_systems=tuple(payload.get("affected_systems", ())),
                actions=tuple(_payload_to_action(a) for a in payload.get("actions", ())),
                escalation_level=int(payload["escalation_level"]),
                status=CrisisStatus(payload["status"]),
                created_at=_parse_dt(payload["created_at"]),
                resolved_at=_parse_dt(payload.get("resolved_at")),
            )
    except (KeyError, ValueError, TypeError, ValidationError) as e:
        raise StorageError(
            f"Corrupt {record_type} payload: {e}",
            operation="deserialize",
            cause=e,
        )

    raise StorageError(
        f"Unknown record_type in payload: {record_type!r}",
        operation="deserialize",
    )


def record_id_of(record: AuditRecord) -> Optional[str]:
    if isinstance(record, DecisionRecord):
        return record.record_id
    if isinstance(record, CrisisEvent):
        return record.event_id
    return None


def record_status_of(record: AuditRecord) -> Optional[str]:
    if isinstance(record, DecisionRecord):
        return record.action.value
    return record.status.value
