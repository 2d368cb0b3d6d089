"""
Trust Engine - Crisis Planner.

============================================================
PURPOSE
============================================================
Maps an IncidentReport to a deterministic CrisisResponsePlan
and manages the lifecycle of CrisisEvents.

============================================================
PLAN
============================================================
- actions: fixed playbook per event type
- escalation_level: low 1, medium 2, high 3, critical 4
- communication SLA: critical immediate, high 1h,
  medium 4h, low 24h
- templated immediate actions, communication plan,
  recovery strategy and prevention measures

Unknown event types use the security breach playbook.
Unmapped severities are treated as critical.

============================================================
LIFECYCLE
============================================================
open_event   -> ACTIVE
escalate     -> ACTIVE (level never decreases, systems merged,
                new playbook actions appended, escalation
                notification appended when the level rises)
resolve      -> RESOLVED (terminal, cannot be escalated,
                resolution notification appended)

============================================================
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from core.exceptions import ValidationError

from .config import CrisisConfig
from .types import (
    Action,
    CommunicationPlan,
    CrisisEvent,
    CrisisResponsePlan,
    CrisisStatus,
    IncidentReport,
    IncidentSeverity,
    IncidentType,
    RecoveryStrategy,
)


logger = logging.getLogger(__name__)


# ============================================================
# PLAYBOOKS
# ============================================================


PLAYBOOKS: Dict[str, Tuple[str, ...]] = {
    IncidentType.SECURITY_BREACH.value: (
        "isolate_affected_systems",
        "activate_incident_response_team",
        "notify_security_team",
        "implement_emergency_protocols",
    ),
    IncidentType.SYSTEM_FAILURE.value: (
        "activate_backup_systems",
        "notify_technical_team",
        "implement_degraded_mode",
        "monitor_system_health",
    ),
    IncidentType.DATA_LEAK.value: (
        "contain_data_breach",
        "notify_legal_team",
        "activate_privacy_protocols",
        "prepare_public_statement",
    ),
    IncidentType.DDOS_ATTACK.value: (
        "activate_ddos_protection",
        "scale_infrastructure",
        "monitor_traffic_patterns",
        "notify_network_team",
    ),
    IncidentType.CONTENT_VIOLATION.value: (
        "remove_violating_content",
        "suspend_offending_accounts",
        "review_content_policies",
        "notify_moderation_team",
    ),
}

IMMEDIATE_ACTIONS: Tuple[str, ...] = (
    "Assess impact scope and severity",
    "Activate emergency response protocols",
    "Notify relevant stakeholders",
    "Implement containment measures",
)

INTERNAL_COMMUNICATION: Tuple[str, ...] = (
    "Team notifications",
    "Status updates",
    "Escalation procedures",
)

EXTERNAL_COMMUNICATION: Tuple[str, ...] = (
    "Public statement",
    "User notifications",
    "Regulatory reporting",
)

SHORT_TERM_RECOVERY: Tuple[str, ...] = (
    "System restoration",
    "Data recovery",
    "Service resumption",
)

LONG_TERM_RECOVERY: Tuple[str, ...] = (
    "Root cause analysis",
    "Process improvement",
    "Prevention implementation",
)

PREVENTION_MEASURES: Tuple[str, ...] = (
    "Enhanced monitoring systems",
    "Improved security protocols",
    "Regular security audits",
    "Staff training programs",
)

CRITICAL_NEXT_STEPS: Tuple[str, ...] = (
    "Immediate executive notification",
    "Activate emergency response team",
    "Prepare public communication",
)

ESCALATED_NEXT_STEPS: Tuple[str, ...] = (
    "External security consultation",
    "Regulatory compliance review",
    "Legal team involvement",
)

CLOSING_NEXT_STEPS: Tuple[str, ...] = (
    "Post-crisis analysis and reporting",
    "Process improvement implementation",
)


# ============================================================
# PLANNER
# ============================================================


class CrisisPlanner:
    """
    Builds response plans and transitions crisis events.

    plan() is pure. The lifecycle methods return new events and
    never mutate their input.
    """

    def __init__(
        self,
        config: Optional[CrisisConfig] = None,
        playbooks: Optional[Dict[str, Tuple[str, ...]]] = None,
    ):
        self.config = config or CrisisConfig()
        self.playbooks = playbooks or PLAYBOOKS

    # --------------------------------------------------------
    # PURE MAPPINGS
    # --------------------------------------------------------

    def effective_severity(self, severity: str) -> str:
        if severity in self.config.escalation_levels:
            return severity
        return self.config.fallback_severity

    def effective_event_type(self, event_type: str) -> str:
        if event_type in self.playbooks:
            return event_type
        return self.config.fallback_event_type

    def escalation_level(self, severity: str) -> int:
        return self.config.level_for(severity)

    def actions_for(self, event_type: str) -> Tuple[str, ...]:
        return self.playbooks[self.effective_event_type(event_type)]

    def next_steps(self, severity: str, escalation_level: int) -> Tuple[str, ...]:
        steps: List[str] = []
        if self.effective_severity(severity) == IncidentSeverity.CRITICAL.value:
            steps.extend(CRITICAL_NEXT_STEPS)
        if escalation_level >= self.config.legal_review_level:
            steps.extend(ESCALATED_NEXT_STEPS)
        steps.extend(CLOSING_NEXT_STEPS)
        return tuple(steps)

    def plan(self, report: IncidentReport) -> CrisisResponsePlan:
        """Build the response plan for a report. Pure."""
        if report.event_type not in self.playbooks:
            logger.warning(
                f"Unknown incident type '{report.event_type}', "
                f"using {self.config.fallback_event_type} playbook"
            )
        if report.severity not in self.config.escalation_levels:
            logger.warning(
                f"Unmapped incident severity '{report.severity}', "
                f"treating as {self.config.fallback_severity}"
            )

        level = self.escalation_level(report.severity)

        return CrisisResponsePlan(
            event_type=report.event_type,
            severity=report.severity,
            actions=self.actions_for(report.event_type),
            escalation_level=level,
            communication_plan=CommunicationPlan(
                internal=INTERNAL_COMMUNICATION,
                external=EXTERNAL_COMMUNICATION,
                sla=self.config.sla_for(report.severity),
            ),
            recovery_strategy=RecoveryStrategy(
                short_term=SHORT_TERM_RECOVERY,
                long_term=LONG_TERM_RECOVERY,
                timeline=self.config.recovery_timeline,
            ),
            immediate_actions=IMMEDIATE_ACTIONS,
            prevention_measures=PREVENTION_MEASURES,
            next_steps=self.next_steps(report.severity, level),
        )

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    def open_event(
        self,
        report: IncidentReport,
        plan: CrisisResponsePlan,
        at: datetime,
        event_id: Optional[str] = None,
    ) -> CrisisEvent:
        event_id = event_id or str(uuid.uuid4())
        event = CrisisEvent(
            event_id=event_id,
            event_type=report.event_type,
            severity=report.severity,
            description=report.description,
            affected_systems=tuple(dict.fromkeys(report.affected_systems)),
            actions=tuple(Action(kind=kind, target=event_id) for kind in plan.actions),
            escalation_level=plan.escalation_level,
            status=CrisisStatus.ACTIVE,
            created_at=at,
        )
        logger.info(
            f"Crisis opened: {event.event_id} type={event.event_type} "
            f"level={event.escalation_level}"
        )
        return event

    def escalate(
        self,
        event: CrisisEvent,
        report: IncidentReport,
        plan: CrisisResponsePlan,
    ) -> CrisisEvent:
        """
        Fold a new report into an active event.

        A rise in level appends the escalation notification after
        any new playbook actions.

        Raises:
            ValidationError: event is resolved, or the report is for
                a different event type
        """
        if not event.is_active:
            raise ValidationError(
                f"Crisis {event.event_id} is resolved and cannot be escalated",
                field="status",
                value=event.status.value,
            )
        if report.event_type != event.event_type:
            raise ValidationError(
                f"Report type {report.event_type} does not match crisis type {event.event_type}",
                field="event_type",
                value=report.event_type,
            )

        # Lower-severity reports keep the current level and severity
        if plan.escalation_level > event.escalation_level:
            level = plan.escalation_level
            severity = report.severity
        else:
            level = event.escalation_level
            severity = event.severity

        systems = tuple(dict.fromkeys(event.affected_systems + tuple(report.affected_systems)))
        known = set(event.action_kinds)
        added = [
            Action(kind=kind, target=event.event_id)
            for kind in plan.actions
            if kind not in known
        ]
        if level > event.escalation_level:
            added.append(Action(kind=self.config.escalation_action, target=event.event_id))

        escalated = replace(
            event,
            severity=severity,
            escalation_level=level,
            affected_systems=systems,
            actions=event.actions + tuple(added),
        )

        if level > event.escalation_level:
            logger.warning(
                f"Crisis escalated: {event.event_id} level "
                f"{event.escalation_level} -> {level}"
            )
        return escalated

    def resolve(self, event: CrisisEvent, at: datetime) -> CrisisEvent:
        """
        Mark an event resolved and append the resolution notification.

        Resolving twice returns the event unchanged.
        """
        if not event.is_active:
            return event
        logger.info(f"Crisis resolved: {event.event_id}")
        return replace(
            event,
            status=CrisisStatus.RESOLVED,
            resolved_at=at,
            actions=event.actions + (
                Action(kind=self.config.resolution_action, target=event.event_id),
            ),
        )
