"""
Trust Engine - Main Orchestrator.

============================================================
PURPOSE
============================================================
The TrustDecisionEngine is the main entry point for trust and
risk decisions.

It orchestrates, per surface:
1. Input validation
2. Signal collection
3. Scoring / verification / crisis planning
4. Policy resolution
5. Audit recording
6. Action fan-out (fraud when enabled, crisis always)

============================================================
DESIGN PRINCIPLES
============================================================
- Orchestration only: all decision logic lives in components
- The decision is computed before any collaborator is called
- Collaborator failures become warnings, never lost decisions
- Never creates or initializes persistence itself

============================================================
USAGE
============================================================
    from storage import InMemoryStore
    from trust_engine import TrustDecisionEngine, Activity

    engine = TrustDecisionEngine(store=InMemoryStore())

    outcome = await engine.assess_activity(Activity(
        subject_id="user-42",
        activity_type="payment",
        timestamp_utc=datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc),
    ))

    print(outcome.decision.action)   # PolicyAction.BLOCK_ACCOUNT

============================================================
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, List, Mapping, Optional, Tuple, Union

from core.clock import ClockProtocol, get_clock
from core.exceptions import ConfigurationError, StorageError, ValidationError

from .aggregator import ScoreAggregator
from .audit import AuditRecorder, Store
from .collector import IpReputationProvider, SignalCollector
from .config import TrustEngineConfig
from .crisis import CrisisPlanner
from .executors import ActionExecutor, ActionFanOut
from .policy import PolicyResolver
from .schemas import parse_event
from .types import (
    ActionOutcome,
    Activity,
    AuditRecord,
    BehaviorSample,
    CredentialClaim,
    CrisisEvent,
    CrisisOutcome,
    DecisionOutcome,
    DecisionRecord,
    DecisionSurface,
    EventKind,
    IncidentReport,
    ResolutionOutcome,
    Score,
    TrendSummary,
    VerificationOutcome,
    VerificationResult,
)
from .verification import VerificationAggregator


logger = logging.getLogger(__name__)


EngineOutcome = Union[DecisionOutcome, VerificationOutcome, CrisisOutcome]


class TrustDecisionEngine:
    """
    Facade over the four decision surfaces.

    ============================================================
    COLLABORATORS
    ============================================================
    - store: durable audit storage (required)
    - executor: side-effecting actions (optional; without it no
      actions are executed)
    - clock: timestamps for records and events

    ============================================================
    """

    def __init__(
        self,
        store: Store,
        executor: Optional[ActionExecutor] = None,
        config: Optional[TrustEngineConfig] = None,
        clock: Optional[ClockProtocol] = None,
        ip_reputation: Optional[IpReputationProvider] = None,
    ):
        """
        Initialize the engine.

        Args:
            store: Audit store
            executor: Action executor
            config: Engine configuration (defaults if not provided)
            clock: Clock for created_at / resolved_at
            ip_reputation: IP reputation provider (static by default)

        Raises:
            ConfigurationError: config fails validation
        """
        self._config = config or TrustEngineConfig()
        self._clock = clock or get_clock()

        # Validate configuration
        errors = self._config.validate()
        if errors:
            raise ConfigurationError(
                message=f"Invalid configuration: {'; '.join(errors)}",
            )

        self._collector = SignalCollector(
            fraud_config=self._config.fraud,
            behavior_config=self._config.behavior,
            ip_reputation=ip_reputation,
        )
        self._aggregator = ScoreAggregator(
            fraud_config=self._config.fraud,
            behavior_config=self._config.behavior,
        )
        self._resolver = PolicyResolver(self._config.policy.table)
        self._verifier = VerificationAggregator(self._config.verification)
        self._planner = CrisisPlanner(self._config.crisis)
        self._recorder = AuditRecorder(store, self._config.storage)
        self._fan_out = (
            ActionFanOut(executor, self._config.execution, self._clock)
            if executor is not None
            else None
        )

        logger.info(
            f"TrustDecisionEngine initialized: version={self._config.engine_version} "
            f"policy={self._resolver.table.name} executor={'yes' if executor else 'no'}"
        )

    # --------------------------------------------------------
    # FRAUD
    # --------------------------------------------------------

    async def assess_activity(self, activity: Activity) -> DecisionOutcome:
        """
        Score an activity for fraud risk and resolve an action.

        Raises:
            ValidationError: activity is malformed
        """
        if not isinstance(activity, Activity):
            raise ValidationError(
                f"Expected Activity, got {type(activity).__name__}", field="activity"
            )
        _require_subject(activity.subject_id)

        collected = self._collector.collect_activity(activity)
        score = self._aggregator.score_fraud(collected)
        record = self._build_record(activity.subject_id, score)

        warnings: List[str] = []
        persisted = await self._persist(record, warnings)

        results: Tuple[ActionOutcome, ...] = ()
        if self._fan_out is not None and self._config.execution.execute_fraud_actions:
            actions = self._resolver.actions_for(record.decision, target=record.subject_id)
            results = await self._fan_out.run(
                actions,
                context={
                    "surface": record.surface.value,
                    "subject_id": record.subject_id,
                    "record_id": record.record_id,
                    "idempotency_key": record.record_id,
                },
            )
            warnings.extend(_action_warnings(results))

        return DecisionOutcome(
            record=record,
            persisted=persisted,
            action_results=results,
            warnings=tuple(warnings),
        )

    # --------------------------------------------------------
    # BEHAVIOR
    # --------------------------------------------------------

    async def analyze_behavior(self, sample: BehaviorSample) -> DecisionOutcome:
        """
        Score a behavior sample for anomalies.

        Raises:
            ValidationError: sample is malformed
        """
        if not isinstance(sample, BehaviorSample):
            raise ValidationError(
                f"Expected BehaviorSample, got {type(sample).__name__}", field="sample"
            )
        _require_subject(sample.subject_id)
        for name in ("frequency", "duration_seconds", "error_count", "observed_data_points"):
            if getattr(sample, name) < 0:
                raise ValidationError(
                    f"{name} must be non-negative", field=name, value=getattr(sample, name)
                )

        collected = self._collector.collect_behavior(sample)
        score = self._aggregator.score_behavior(collected)
        record = self._build_record(sample.subject_id, score)

        warnings: List[str] = []
        persisted = await self._persist(record, warnings)

        return DecisionOutcome(record=record, persisted=persisted, warnings=tuple(warnings))

    # --------------------------------------------------------
    # VERIFICATION
    # --------------------------------------------------------

    async def verify_credential(
        self,
        subject_id: str,
        claim: CredentialClaim,
        previous: Optional[VerificationResult] = None,
    ) -> VerificationOutcome:
        """
        Verify a claimed credential.

        Raises:
            ValidationError: claim is malformed
            StatusTransitionError: previous result is terminal and
                would change status
        """
        if not isinstance(claim, CredentialClaim):
            raise ValidationError(
                f"Expected CredentialClaim, got {type(claim).__name__}", field="claim"
            )
        _require_subject(subject_id)
        if claim.rating < 0 or claim.years_experience < 0:
            raise ValidationError("rating and years_experience must be non-negative", field="claim")

        result = self._verifier.verify(subject_id, claim, previous)

        warnings: List[str] = []
        persisted = await self._persist(result, warnings)

        return VerificationOutcome(result=result, persisted=persisted, warnings=tuple(warnings))

    # --------------------------------------------------------
    # CRISIS
    # --------------------------------------------------------

    async def respond_to_incident(
        self,
        report: IncidentReport,
        active_event: Optional[CrisisEvent] = None,
    ) -> CrisisOutcome:
        """
        Plan a response, open or escalate the crisis, run its actions.

        An active event of the same type is escalated; a resolved
        one is left alone and a new event is opened.

        Raises:
            ValidationError: report is malformed, or active_event is
                for a different event type
        """
        if not isinstance(report, IncidentReport):
            raise ValidationError(
                f"Expected IncidentReport, got {type(report).__name__}", field="report"
            )
        if not report.event_type or not report.severity:
            raise ValidationError("event_type and severity are required", field="report")

        plan = self._planner.plan(report)

        if active_event is not None and active_event.is_active:
            event = self._planner.escalate(active_event, report, plan)
            executed_count = len(active_event.actions)
            idempotency_key = f"{event.event_id}:level-{event.escalation_level}"
        else:
            event = self._planner.open_event(report, plan, at=self._clock.now())
            executed_count = 0
            idempotency_key = event.event_id

        warnings: List[str] = []
        event, results = await self._run_crisis_actions(
            event, executed_count, idempotency_key, warnings
        )

        persisted = await self._persist(event, warnings)

        logger.info(
            f"Crisis response {event.event_id}: type={event.event_type} "
            f"level={event.escalation_level} sla={plan.communication_plan.sla} "
            f"actions={len(results)}"
        )

        return CrisisOutcome(
            plan=plan,
            event=event,
            persisted=persisted,
            action_results=results,
            warnings=tuple(warnings),
        )

    # --------------------------------------------------------
    # RESOLUTION
    # --------------------------------------------------------

    async def resolve_decision(
        self,
        record: DecisionRecord,
        at: Optional[datetime] = None,
    ) -> ResolutionOutcome:
        resolved = record.resolve(at or self._clock.now())
        warnings: List[str] = []
        persisted = await self._persist(resolved, warnings)
        return ResolutionOutcome(record=resolved, persisted=persisted, warnings=tuple(warnings))

    async def resolve_crisis(
        self,
        event: CrisisEvent,
        at: Optional[datetime] = None,
    ) -> ResolutionOutcome:
        """Resolve a crisis and notify stakeholders once."""
        resolved = self._planner.resolve(event, at or self._clock.now())
        warnings: List[str] = []
        resolved, results = await self._run_crisis_actions(
            resolved, len(event.actions), f"{event.event_id}:resolved", warnings
        )
        persisted = await self._persist(resolved, warnings)
        return ResolutionOutcome(
            record=resolved,
            persisted=persisted,
            action_results=results,
            warnings=tuple(warnings),
        )

    # --------------------------------------------------------
    # HISTORY
    # --------------------------------------------------------

    async def history(
        self,
        subject_id: str,
        surface: Union[DecisionSurface, str],
        limit: Optional[int] = None,
    ) -> List[AuditRecord]:
        """Prior records, newest first. Raises StorageError."""
        return await self._recorder.history(subject_id, surface, limit)

    async def trend(
        self,
        subject_id: str,
        surface: Union[DecisionSurface, str],
        limit: Optional[int] = None,
    ) -> TrendSummary:
        """Trend over prior scores. Raises StorageError."""
        return await self._recorder.trend(subject_id, surface, limit)

    # --------------------------------------------------------
    # RAW EVENTS
    # --------------------------------------------------------

    async def process(self, raw_event: Mapping[str, Any]) -> EngineOutcome:
        """
        Validate a raw event dict and dispatch it by kind.

        For credentials and incidents the latest stored record is
        consulted first, so status transitions are enforced and an
        active crisis of the same type is escalated.

        Raises:
            ValidationError: raw event fails validation
        """
        parsed = parse_event(raw_event)

        if parsed.kind == EventKind.ACTIVITY:
            return await self.assess_activity(parsed.event)

        if parsed.kind == EventKind.BEHAVIOR:
            return await self.analyze_behavior(parsed.event)

        if parsed.kind == EventKind.CREDENTIAL:
            previous, lookup_warnings = await self._latest(
                parsed.subject_id, DecisionSurface.VERIFICATION, VerificationResult
            )
            outcome = await self.verify_credential(parsed.subject_id, parsed.event, previous)
            return _with_warnings(outcome, lookup_warnings)

        active, lookup_warnings = await self._latest(
            parsed.event.event_type, DecisionSurface.CRISIS, CrisisEvent
        )
        outcome = await self.respond_to_incident(parsed.event, active)
        return _with_warnings(outcome, lookup_warnings)

    # --------------------------------------------------------
    # INTERNALS
    # --------------------------------------------------------

    def _build_record(self, subject_id: str, score: Score) -> DecisionRecord:
        decision = self._resolver.decide(score.value, score.indicators)
        record = DecisionRecord(
            record_id=str(uuid.uuid4()),
            subject_id=subject_id,
            surface=score.surface,
            score=score.value,
            indicators=score.indicators,
            action=decision.action,
            created_at=self._clock.now(),
            confidence=score.confidence,
            recommendations=score.recommendations,
        )
        logger.info(
            f"Decision {record.surface.value} {subject_id}: score={record.score:.3f} "
            f"action={record.action.value} indicators={sorted(record.indicators)}"
        )
        return record

    async def _persist(self, record: AuditRecord, warnings: List[str]) -> bool:
        try:
            await self._recorder.record(record)
            return True
        except StorageError as e:
            logger.warning(f"Decision returned without persistence: {e.to_log_format()}")
            warnings.append(f"storage: {e.message}")
            return False

    async def _run_crisis_actions(
        self,
        event: CrisisEvent,
        executed_count: int,
        idempotency_key: str,
        warnings: List[str],
    ) -> Tuple[CrisisEvent, Tuple[ActionOutcome, ...]]:
        """Run the actions appended after executed_count and record their outcomes."""
        pending = event.actions[executed_count:]
        if self._fan_out is None or not pending:
            return event, ()

        results = await self._fan_out.run(
            pending,
            context={
                "surface": DecisionSurface.CRISIS.value,
                "event_id": event.event_id,
                "event_type": event.event_type,
                "severity": event.severity,
                "escalation_level": event.escalation_level,
                "status": event.status.value,
                "affected_systems": list(event.affected_systems),
                "idempotency_key": idempotency_key,
            },
        )
        warnings.extend(_action_warnings(results))

        executed = event.actions[:executed_count] + tuple(r.action for r in results)
        return replace(event, actions=executed), results

    async def _latest(self, subject_id: str, surface: DecisionSurface, expected: type):
        try:
            records = await self._recorder.history(subject_id, surface, limit=1)
        except StorageError as e:
            logger.warning(f"History lookup failed, continuing without it: {e.to_log_format()}")
            return None, (f"storage: {e.message}",)
        if records and isinstance(records[0], expected):
            return records[0], ()
        return None, ()

    # --------------------------------------------------------
    # ACCESSORS
    # --------------------------------------------------------

    def get_config(self) -> TrustEngineConfig:
        return self._config

    @property
    def resolver(self) -> PolicyResolver:
        return self._resolver

    @property
    def planner(self) -> CrisisPlanner:
        return self._planner


# ============================================================
# HELPERS
# ============================================================


def _require_subject(subject_id: Optional[str]) -> None:
    if not subject_id or not str(subject_id).strip():
        raise ValidationError("subject_id is required", field="subject_id")


def _action_warnings(results: Tuple[ActionOutcome, ...]) -> List[str]:
    return [
        f"action {r.action.kind} {r.status.value}: {r.error}"
        for r in results
        if not r.succeeded
    ]


def _with_warnings(outcome, extra: Tuple[str, ...]):
    if not extra:
        return outcome
    return replace(outcome, warnings=tuple(extra) + outcome.warnings)
