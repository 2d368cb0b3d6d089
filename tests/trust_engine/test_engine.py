"""
Tests for the TrustDecisionEngine facade.

============================================================
PURPOSE
============================================================
- End-to-end decisions on each surface
- Collaborator failures surface as warnings, never as lost decisions
- Raw event dispatch with stored-history lookups

============================================================
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from core.exceptions import (
    ConfigurationError,
    StatusTransitionError,
    StorageError,
    ValidationError,
)
from storage.stores import InMemoryStore
from trust_engine.audit import Store
from trust_engine.config import ExecutionConfig, StorageConfig, TrustEngineConfig
from trust_engine.engine import TrustDecisionEngine
from trust_engine.executors import LoggingActionExecutor
from trust_engine.types import (
    ActionStatus,
    Activity,
    BehaviorSample,
    CredentialClaim,
    CrisisOutcome,
    CrisisStatus,
    DecisionOutcome,
    DecisionSurface,
    IncidentReport,
    PolicyAction,
    VerificationOutcome,
    VerificationStatus,
)


def payment_at_2am(subject_id: str = "user-1") -> Activity:
    return Activity(
        subject_id=subject_id,
        activity_type="payment",
        timestamp_utc=datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc),
    )


def breach(severity: str = "critical", systems=("auth",)) -> IncidentReport:
    return IncidentReport(
        event_type="security_breach",
        severity=severity,
        description="Unauthorized admin session",
        affected_systems=systems,
    )


def failing_store() -> AsyncMock:
    store = AsyncMock(spec=Store)
    store.put.side_effect = StorageError("database unavailable", operation="put")
    store.get_history.side_effect = StorageError("database unavailable", operation="get_history")
    return store


# ============================================================
# CONSTRUCTION
# ============================================================


class TestConstruction:
    """Tests for engine construction."""

    def test_invalid_config_is_rejected(self, store):
        config = TrustEngineConfig.from_dict({"crisis": {"fallback_severity": "severe"}})

        with pytest.raises(ConfigurationError) as exc_info:
            TrustDecisionEngine(store=store, config=config)

        assert "fallback_severity" in exc_info.value.message

    def test_default_config_is_accepted(self, store):
        engine = TrustDecisionEngine(store=store)

        assert engine.get_config() == TrustEngineConfig()


# ============================================================
# FRAUD AND BEHAVIOR
# ============================================================


class TestAssessActivity:
    """Tests for fraud decisions."""

    @pytest.mark.asyncio
    async def test_block_decision_is_recorded(self, engine, store, clock):
        outcome = await engine.assess_activity(payment_at_2am())

        assert outcome.decision.action == PolicyAction.BLOCK_ACCOUNT
        assert outcome.record.score == pytest.approx(1.0)
        assert outcome.record.created_at == clock.now()
        assert outcome.persisted is True
        assert outcome.warnings == ()
        assert await store.latest("user-1", DecisionSurface.FRAUD) == outcome.record

    @pytest.mark.asyncio
    async def test_fraud_actions_are_opt_in(self, engine, executor):
        outcome = await engine.assess_activity(payment_at_2am())

        assert outcome.action_results == ()
        assert executor.executed == []

    @pytest.mark.asyncio
    async def test_fraud_actions_when_enabled(self, store, executor, clock):
        engine = TrustDecisionEngine(
            store=store,
            executor=executor,
            config=TrustEngineConfig(execution=ExecutionConfig(execute_fraud_actions=True)),
            clock=clock,
        )

        outcome = await engine.assess_activity(payment_at_2am())

        assert [r.action.kind for r in outcome.action_results] == ["suspend_account"]
        name, context = executor.executed[0]
        assert name == "suspend_account"
        assert context["target"] == "user-1"
        assert context["idempotency_key"] == outcome.record.record_id

    @pytest.mark.asyncio
    async def test_storage_failure_keeps_decision(self, executor, clock):
        engine = TrustDecisionEngine(store=failing_store(), executor=executor, clock=clock)

        outcome = await engine.assess_activity(payment_at_2am())

        assert outcome.decision.action == PolicyAction.BLOCK_ACCOUNT
        assert outcome.persisted is False
        assert outcome.warnings == ("storage: database unavailable",)

    @pytest.mark.asyncio
    async def test_invalid_input_raises_before_scoring(self, store, executor, clock):
        engine = TrustDecisionEngine(store=store, executor=executor, clock=clock)

        with pytest.raises(ValidationError):
            await engine.assess_activity(payment_at_2am(subject_id=" "))
        with pytest.raises(ValidationError):
            await engine.assess_activity({"activity_type": "payment"})

        assert len(store) == 0


class TestAnalyzeBehavior:
    """Tests for behavior decisions."""

    @pytest.mark.asyncio
    async def test_anomalous_sample(self, engine):
        sample = BehaviorSample(
            subject_id="user-2",
            frequency=400,
            duration_seconds=9000,
            error_count=0,
            pattern_flags=("scripted_moves",),
            observed_data_points=50,
            observed_at=datetime(2024, 1, 1, 3, 0, tzinfo=timezone.utc),
        )

        outcome = await engine.analyze_behavior(sample)

        assert outcome.record.surface == DecisionSurface.BEHAVIOR
        assert outcome.decision.action == PolicyAction.BLOCK_ACCOUNT
        assert outcome.record.confidence == 0.5
        assert "Implement rate limiting" in outcome.record.recommendations

    @pytest.mark.asyncio
    async def test_negative_values_rejected(self, engine):
        sample = BehaviorSample(subject_id="u", frequency=-1, duration_seconds=0, error_count=0)

        with pytest.raises(ValidationError):
            await engine.analyze_behavior(sample)


# ============================================================
# VERIFICATION
# ============================================================


class TestVerifyCredential:
    """Tests for credential verification through the engine."""

    @pytest.mark.asyncio
    async def test_verified(self, engine, store):
        claim = CredentialClaim(title="GM", rating=2600, documents=("cert.pdf",), years_experience=12)

        outcome = await engine.verify_credential("player-1", claim)

        assert outcome.result.status == VerificationStatus.VERIFIED
        assert outcome.persisted is True
        assert await store.latest("player-1", DecisionSurface.VERIFICATION) == outcome.result

    @pytest.mark.asyncio
    async def test_terminal_status_is_kept(self, engine):
        strong = CredentialClaim(title="GM", rating=2600, documents=("cert.pdf",), years_experience=12)
        verified = (await engine.verify_credential("player-1", strong)).result

        with pytest.raises(StatusTransitionError):
            await engine.verify_credential("player-1", CredentialClaim(title="GM", rating=1800), verified)


# ============================================================
# CRISIS
# ============================================================


class TestRespondToIncident:
    """Tests for crisis response and escalation."""

    @pytest.mark.asyncio
    async def test_open_and_run_actions(self, engine, executor, store):
        outcome = await engine.respond_to_incident(breach())

        assert outcome.plan.escalation_level == 4
        assert outcome.event.status == CrisisStatus.ACTIVE
        assert [r.action.kind for r in outcome.action_results] == list(outcome.plan.actions)
        assert all(r.status == ActionStatus.SUCCESS for r in outcome.action_results)
        assert executor.executed[0][0] == "isolate_affected_systems"
        assert executor.executed[0][1]["idempotency_key"] == outcome.event.event_id
        assert await store.latest("security_breach", DecisionSurface.CRISIS) == outcome.event

    @pytest.mark.asyncio
    async def test_escalation_notifies_without_rerunning_playbook(self, engine, executor):
        first = await engine.respond_to_incident(breach(severity="low"))
        executed_before = len(executor.executed)

        second = await engine.respond_to_incident(
            breach(severity="critical", systems=("payments",)), active_event=first.event
        )

        assert second.event.event_id == first.event.event_id
        assert second.event.escalation_level == 4
        assert second.event.affected_systems == ("auth", "payments")
        assert [r.action.kind for r in second.action_results] == ["notify_escalation"]
        assert len(executor.executed) == executed_before + 1

        name, context = executor.executed[-1]
        assert name == "notify_escalation"
        assert context["escalation_level"] == 4
        assert context["idempotency_key"] == f"{first.event.event_id}:level-4"

    @pytest.mark.asyncio
    async def test_same_level_report_runs_nothing(self, engine, executor):
        first = await engine.respond_to_incident(breach(severity="high"))
        executed_before = len(executor.executed)

        second = await engine.respond_to_incident(breach(severity="medium"), active_event=first.event)

        assert second.action_results == ()
        assert second.event.actions == first.event.actions
        assert len(executor.executed) == executed_before

    @pytest.mark.asyncio
    async def test_resolved_event_opens_new_one(self, engine, clock):
        first = await engine.respond_to_incident(breach())
        resolved = (await engine.resolve_crisis(first.event)).record

        clock.advance(hours=1)
        second = await engine.respond_to_incident(breach(), active_event=resolved)

        assert second.event.event_id != first.event.event_id
        assert second.event.created_at == clock.now()

    @pytest.mark.asyncio
    async def test_action_failure_becomes_warning(self, store, clock):
        class RefusingExecutor(LoggingActionExecutor):
            async def execute(self, action_name, context):
                if action_name == "notify_security_team":
                    raise RuntimeError("pager offline")
                return await super().execute(action_name, context)

        engine = TrustDecisionEngine(store=store, executor=RefusingExecutor(clock), clock=clock)

        outcome = await engine.respond_to_incident(breach())

        assert outcome.persisted is True
        assert [r.action.kind for r in outcome.failed_actions] == ["notify_security_team"]
        assert outcome.warnings == ("action notify_security_team failed: pager offline",)

        stored = await store.latest("security_breach", DecisionSurface.CRISIS)
        assert [a.kind for a in stored.failed_actions] == ["notify_security_team"]
        assert all(a.executed_at == clock.now() for a in stored.actions)

    @pytest.mark.asyncio
    async def test_without_executor_no_actions_run(self, store, clock):
        engine = TrustDecisionEngine(store=store, clock=clock)

        outcome = await engine.respond_to_incident(breach())

        assert outcome.action_results == ()
        assert outcome.persisted is True
        assert all(a.outcome is None for a in outcome.event.actions)


# ============================================================
# RESOLUTION AND HISTORY
# ============================================================


class TestResolutionAndHistory:
    """Tests for resolution, history and trend."""

    @pytest.mark.asyncio
    async def test_resolve_decision(self, engine, store, clock):
        record = (await engine.assess_activity(payment_at_2am())).record
        clock.advance(minutes=30)

        outcome = await engine.resolve_decision(record)

        assert outcome.record.resolved_at == clock.now()
        assert outcome.record.score == record.score
        assert (await store.latest("user-1", DecisionSurface.FRAUD)).is_resolved

    @pytest.mark.asyncio
    async def test_resolve_crisis_notifies_once(self, engine, executor, store, clock):
        opened = (await engine.respond_to_incident(breach())).event
        clock.advance(hours=2)

        outcome = await engine.resolve_crisis(opened)
        again = await engine.resolve_crisis(outcome.record)

        assert outcome.record.status == CrisisStatus.RESOLVED
        assert [r.action.kind for r in outcome.action_results] == ["notify_resolution"]
        assert again.action_results == ()
        assert [name for name, _ in executor.executed].count("notify_resolution") == 1
        assert executor.executed[-1][1]["idempotency_key"] == f"{opened.event_id}:resolved"

        stored = await store.latest("security_breach", DecisionSurface.CRISIS)
        assert stored.actions[-1].kind == "notify_resolution"
        assert stored.actions[-1].executed_at == clock.now()

    @pytest.mark.asyncio
    async def test_history_and_trend(self, engine, clock):
        login = Activity(
            subject_id="user-1",
            activity_type="login",
            timestamp_utc=datetime(2024, 1, 1, 14, 0, tzinfo=timezone.utc),
        )
        await engine.assess_activity(login)
        clock.advance(minutes=1)
        await engine.assess_activity(login)
        await engine.assess_activity(payment_at_2am())

        history = await engine.history("user-1", "fraud")
        trend = await engine.trend("user-1", DecisionSurface.FRAUD)

        assert [r.score for r in history] == pytest.approx([1.0, 0.1, 0.1])
        assert trend.direction == "rising"
        assert trend.count == 3

    @pytest.mark.asyncio
    async def test_history_propagates_storage_errors(self, clock):
        engine = TrustDecisionEngine(store=failing_store(), clock=clock)

        with pytest.raises(StorageError):
            await engine.history("user-1", DecisionSurface.FRAUD)


# ============================================================
# RAW EVENTS
# ============================================================


class TestProcess:
    """Tests for raw event dispatch."""

    @pytest.mark.asyncio
    async def test_activity(self, engine):
        outcome = await engine.process(
            {
                "kind": "activity",
                "subject_id": "user-9",
                "activity_type": "payment",
                "timestamp_utc": "2024-01-01T02:00:00Z",
            }
        )

        assert isinstance(outcome, DecisionOutcome)
        assert outcome.decision.action == PolicyAction.BLOCK_ACCOUNT

    @pytest.mark.asyncio
    async def test_behavior(self, engine):
        outcome = await engine.process(
            {
                "kind": "behavior",
                "subject_id": "user-9",
                "frequency": 5,
                "duration_seconds": 60,
                "error_count": 0,
            }
        )

        assert outcome.record.surface == DecisionSurface.BEHAVIOR
        assert outcome.decision.action == PolicyAction.MONITOR

    @pytest.mark.asyncio
    async def test_credential_uses_stored_status(self, engine):
        strong = {
            "kind": "credential",
            "subject_id": "player-1",
            "title": "GM",
            "rating": 2600,
            "documents": ["cert.pdf"],
            "years_experience": 12,
        }
        first = await engine.process(strong)
        assert isinstance(first, VerificationOutcome)

        with pytest.raises(StatusTransitionError):
            await engine.process({"kind": "credential", "subject_id": "player-1", "title": "GM", "rating": 1500})

    @pytest.mark.asyncio
    async def test_incident_escalates_stored_crisis(self, engine):
        incident = {
            "kind": "incident",
            "event_type": "ddos_attack",
            "severity": "low",
            "description": "elevated traffic",
            "affected_systems": ["edge"],
        }
        first = await engine.process(incident)
        second = await engine.process({**incident, "severity": "high", "affected_systems": ["api"]})

        assert isinstance(second, CrisisOutcome)
        assert second.event.event_id == first.event.event_id
        assert second.event.escalation_level == 3
        assert second.event.affected_systems == ("edge", "api")
        assert second.event.actions[:-1] == first.event.actions
        assert second.event.actions[-1].kind == "notify_escalation"
        assert second.event.actions[-1].outcome == ActionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_lookup_failure_is_a_warning(self, executor, clock):
        engine = TrustDecisionEngine(store=failing_store(), executor=executor, clock=clock)

        outcome = await engine.process(
            {"kind": "incident", "event_type": "system_failure", "severity": "high", "description": "db down"}
        )

        assert outcome.event.escalation_level == 3
        assert outcome.persisted is False
        assert outcome.warnings == (
            "storage: database unavailable",
            "storage: database unavailable",
        )

    @pytest.mark.asyncio
    async def test_invalid_event(self, engine):
        with pytest.raises(ValidationError):
            await engine.process({"kind": "activity", "subject_id": "u"})

    @pytest.mark.asyncio
    async def test_slow_store_times_out_to_warning(self, clock):
        store = InMemoryStore()
        engine = TrustDecisionEngine(
            store=store,
            config=TrustEngineConfig(storage=StorageConfig(store_timeout_seconds=0.01)),
            clock=clock,
        )

        async def slow_put(record):
            await asyncio.sleep(1)

        store.put = slow_put

        outcome = await engine.assess_activity(payment_at_2am())

        assert outcome.persisted is False
        assert "timed out" in outcome.warnings[0]
