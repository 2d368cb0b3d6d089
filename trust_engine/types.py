"""
Trust Engine - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the Trust & Risk Decision Engine.

This module defines all enums and dataclasses shared by the
collector, aggregators, policy resolver, planners and the
audit layer.

============================================================
DESIGN PRINCIPLES
============================================================
- All records are immutable (frozen dataclasses)
- Enums for discrete state values
- One typed record per decision kind (no schema-less blobs)
- JSON only at the store adapter boundary, never here

============================================================
DECISION SURFACES
============================================================
1. FRAUD - activity risk scoring
2. BEHAVIOR - behavioral anomaly detection
3. VERIFICATION - titled player credential verification
4. CRISIS - incident response planning with escalation

============================================================
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

from core.exceptions import ValidationError


# ============================================================
# ENUMS
# ============================================================


class DecisionSurface(str, Enum):
    """The four decision surfaces served by the engine."""

    FRAUD = "fraud"
    BEHAVIOR = "behavior"
    VERIFICATION = "verification"
    CRISIS = "crisis"


class EventKind(str, Enum):
    """Kinds of raw events accepted by the signal collector."""

    ACTIVITY = "activity"
    BEHAVIOR = "behavior"
    INCIDENT = "incident"
    CREDENTIAL = "credential"


class ActivityType(str, Enum):
    """
    Recognized activity types.

    Activities carry a plain string so that unknown types reach
    the scorer and take the cautious default weight.
    """

    LOGIN = "login"
    GAME = "game"
    PAYMENT = "payment"
    CONTENT = "content"
    INTERACTION = "interaction"


class PolicyAction(str, Enum):
    """
    Discrete outcome of policy resolution.

    Ordered by strictness: MONITOR < FLAG_FOR_REVIEW <
    REQUIRE_VERIFICATION < BLOCK_ACCOUNT.
    """

    MONITOR = "monitor"
    FLAG_FOR_REVIEW = "flag_for_review"
    REQUIRE_VERIFICATION = "require_verification"
    BLOCK_ACCOUNT = "block_account"

    @property
    def strictness(self) -> int:
        """Numeric ordering for strictness comparison."""
        return {
            "monitor": 0,
            "flag_for_review": 1,
            "require_verification": 2,
            "block_account": 3,
        }[self.value]


class VerificationStatus(str, Enum):
    """Status of a credential verification."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not VerificationStatus.PENDING


class CrisisStatus(str, Enum):
    """Lifecycle state of a crisis event."""

    ACTIVE = "active"
    RESOLVED = "resolved"


class IncidentType(str, Enum):
    """Recognized incident event types."""

    SECURITY_BREACH = "security_breach"
    SYSTEM_FAILURE = "system_failure"
    DATA_LEAK = "data_leak"
    DDOS_ATTACK = "ddos_attack"
    CONTENT_VIOLATION = "content_violation"


class IncidentSeverity(str, Enum):
    """Recognized incident severities."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ChessTitle(str, Enum):
    """Federation titles recognized for verification."""

    GM = "GM"
    WGM = "WGM"
    IM = "IM"
    WIM = "WIM"
    FM = "FM"
    WFM = "WFM"
    CM = "CM"
    WCM = "WCM"
    NM = "NM"


class ActionStatus(str, Enum):
    """Per-action outcome reported by the fan-out."""

    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


# ============================================================
# INPUT DATA CONTRACTS
# ============================================================


@dataclass(frozen=True)
class Activity:
    """A single user activity to be scored for fraud risk."""

    subject_id: str
    activity_type: str
    timestamp_utc: datetime
    payload: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    # Offset applied to timestamp_utc to obtain the subject's local hour
    utc_offset_minutes: int = 0

    @property
    def kind(self) -> EventKind:
        return EventKind.ACTIVITY


@dataclass(frozen=True)
class BehaviorSample:
    """Aggregated behavior observations for one subject."""

    subject_id: str
    frequency: float
    duration_seconds: float
    error_count: int
    pattern_flags: Tuple[str, ...] = ()

    # Number of raw observations behind the sample (drives confidence)
    observed_data_points: int = 0

    # When the sample was observed; no time-of-day signal without it
    observed_at: Optional[datetime] = None

    @property
    def kind(self) -> EventKind:
        return EventKind.BEHAVIOR


@dataclass(frozen=True)
class IncidentReport:
    """A reported operational or security incident."""

    event_type: str
    severity: str
    description: str
    affected_systems: Tuple[str, ...] = ()

    @property
    def kind(self) -> EventKind:
        return EventKind.INCIDENT


@dataclass(frozen=True)
class CredentialClaim:
    """A claimed chess title with supporting evidence."""

    title: str
    rating: int
    documents: Tuple[str, ...] = ()
    years_experience: float = 0

    @property
    def kind(self) -> EventKind:
        return EventKind.CREDENTIAL


Event = Union[Activity, BehaviorSample, IncidentReport, CredentialClaim]


# ============================================================
# SIGNALS AND SCORES
# ============================================================


@dataclass(frozen=True)
class Signal:
    """
    Atomic normalized observation feeding a score.

    value is in [0, 1]; the contribution to a composite score
    is value * weight.
    """

    kind: str
    value: float
    weight: float
    source: str

    def __post_init__(self) -> None:
        if not 0.0 <= self.value <= 1.0:
            raise ValidationError(
                f"Signal {self.kind} value out of range: {self.value}",
                field="value",
                value=self.value,
            )
        if self.weight < 0.0:
            raise ValidationError(
                f"Signal {self.kind} weight must be non-negative: {self.weight}",
                field="weight",
                value=self.weight,
            )

    @property
    def contribution(self) -> float:
        return self.value * self.weight


@dataclass(frozen=True)
class CollectedSignals:
    """Output of the signal collector for one event."""

    surface: DecisionSurface
    subject_id: str
    signals: Tuple[Signal, ...]
    indicators: FrozenSet[str] = frozenset()

    # Behavior surface only
    observed_data_points: Optional[int] = None

    def signal(self, kind: str) -> Optional[Signal]:
        """Return the first signal of the given kind, if any."""
        for candidate in self.signals:
            if candidate.kind == kind:
                return candidate
        return None


@dataclass(frozen=True)
class Score:
    """Composite [0, 1] score for one decision."""

    surface: DecisionSurface
    value: float
    indicators: FrozenSet[str]
    signals: Tuple[Signal, ...] = ()
    confidence: Optional[float] = None
    recommendations: Tuple[str, ...] = ()


# ============================================================
# DECISIONS
# ============================================================


@dataclass(frozen=True)
class Decision:
    """Produced decision for the fraud and behavior surfaces."""

    score: float
    indicators: FrozenSet[str]
    action: PolicyAction


@dataclass(frozen=True)
class DecisionRecord:
    """
    Auditable record of a fraud or behavior decision.

    ============================================================
    INVARIANTS
    ============================================================
    - score in [0, 1]
    - action is a pure function of (score, indicators)
      under the active policy table
    - immutable once created; resolution only adds resolved_at

    ============================================================
    """

    record_id: str
    subject_id: str
    surface: DecisionSurface
    score: float
    indicators: FrozenSet[str]
    action: PolicyAction
    created_at: datetime
    resolved_at: Optional[datetime] = None
    confidence: Optional[float] = None
    recommendations: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 1.0:
            raise ValidationError(
                f"Decision score out of range: {self.score}",
                field="score",
                value=self.score,
            )

    @property
    def decision(self) -> Decision:
        return Decision(score=self.score, indicators=self.indicators, action=self.action)

    @property
    def audit_key(self) -> Tuple[str, str]:
        return (self.subject_id, self.surface.value)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def resolve(self, at: datetime) -> "DecisionRecord":
        """Return a copy with resolved_at set; already resolved records are returned as-is."""
        if self.resolved_at is not None:
            return self
        return replace(self, resolved_at=at)


@dataclass(frozen=True)
class Check:
    """One independent verification step."""

    name: str
    score: float
    passed: bool
    detail: str


@dataclass(frozen=True)
class VerificationResult:
    """
    Outcome of a titled player credential verification.

    Carries no timestamp or generated id: verifying the same
    claim twice yields equal results.
    """

    subject_id: str
    claimed_title: str
    checks: Tuple[Check, ...]
    aggregate_score: float
    status: VerificationStatus
    next_steps: Tuple[str, ...] = ()

    @property
    def surface(self) -> DecisionSurface:
        return DecisionSurface.VERIFICATION

    @property
    def audit_key(self) -> Tuple[str, str]:
        return (self.subject_id, self.surface.value)

    @property
    def failed_checks(self) -> Tuple[Check, ...]:
        return tuple(c for c in self.checks if not c.passed)


# ============================================================
# ACTIONS
# ============================================================


@dataclass(frozen=True)
class Action:
    """
    Executable directive.

    executed_at and outcome are populated from the executor's
    receipt, never by the scoring path.
    """

    kind: str
    target: str
    executed_at: Optional[datetime] = None
    outcome: Optional[ActionStatus] = None


@dataclass(frozen=True)
class ActionReceipt:
    """What an ActionExecutor returns for one executed action."""

    status: str
    timestamp_utc: datetime


@dataclass(frozen=True)
class ActionOutcome:
    """Per-action entry of a fan-out batch result."""

    action: Action
    status: ActionStatus
    timestamp: datetime
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ActionStatus.SUCCESS


# ============================================================
# CRISIS
# ============================================================


@dataclass(frozen=True)
class CommunicationPlan:
    internal: Tuple[str, ...]
    external: Tuple[str, ...]
    sla: str


@dataclass(frozen=True)
class RecoveryStrategy:
    short_term: Tuple[str, ...]
    long_term: Tuple[str, ...]
    timeline: str


@dataclass(frozen=True)
class CrisisResponsePlan:
    """Deterministic response plan for one incident report."""

    event_type: str
    severity: str
    actions: Tuple[str, ...]
    escalation_level: int
    communication_plan: CommunicationPlan
    recovery_strategy: RecoveryStrategy
    immediate_actions: Tuple[str, ...] = ()
    prevention_measures: Tuple[str, ...] = ()
    next_steps: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CrisisEvent:
    """
    Lifecycle record of a crisis.

    escalation_level never decreases while the event is active.
    actions is append-only; executed entries carry their outcome.
    """

    event_id: str
    event_type: str
    severity: str
    description: str
    affected_systems: Tuple[str, ...]
    actions: Tuple[Action, ...]
    escalation_level: int
    status: CrisisStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None

    @property
    def surface(self) -> DecisionSurface:
        return DecisionSurface.CRISIS

    @property
    def subject_id(self) -> str:
        # One live crisis per event type
        return self.event_type

    @property
    def audit_key(self) -> Tuple[str, str]:
        return (self.subject_id, self.surface.value)

    @property
    def is_active(self) -> bool:
        return self.status == CrisisStatus.ACTIVE

    @property
    def action_kinds(self) -> Tuple[str, ...]:
        return tuple(a.kind for a in self.actions)

    @property
    def failed_actions(self) -> Tuple[Action, ...]:
        return tuple(
            a for a in self.actions
            if a.outcome is not None and a.outcome != ActionStatus.SUCCESS
        )


AuditRecord = Union[DecisionRecord, VerificationResult, CrisisEvent]


# ============================================================
# HISTORY
# ============================================================


@dataclass(frozen=True)
class TrendSummary:
    """Read-only summary of prior decision scores for a subject."""

    subject_id: str
    surface: DecisionSurface
    count: int
    mean_score: Optional[float] = None
    latest_score: Optional[float] = None
    direction: str = "insufficient_data"  # rising, falling, stable


# ============================================================
# ENGINE OUTCOMES
# ============================================================


@dataclass(frozen=True)
class DecisionOutcome:
    """Decision plus collaborator warnings for fraud/behavior calls."""

    record: DecisionRecord
    persisted: bool
    action_results: Tuple[ActionOutcome, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def decision(self) -> Decision:
        return self.record.decision


@dataclass(frozen=True)
class VerificationOutcome:
    result: VerificationResult
    persisted: bool
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CrisisOutcome:
    plan: CrisisResponsePlan
    event: CrisisEvent
    persisted: bool
    action_results: Tuple[ActionOutcome, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def failed_actions(self) -> Tuple[ActionOutcome, ...]:
        return tuple(r for r in self.action_results if not r.succeeded)


@dataclass(frozen=True)
class ResolutionOutcome:
    """Result of resolving a decision record or a crisis event."""

    record: AuditRecord
    persisted: bool
    action_results: Tuple[ActionOutcome, ...] = ()
    warnings: Tuple[str, ...] = ()
