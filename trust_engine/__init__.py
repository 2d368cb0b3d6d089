"""
Trust & Risk Decision Engine - Package.

============================================================
PURPOSE
============================================================
Turns heterogeneous, noisy inputs into calibrated scores and
deterministic actions across four decision surfaces.

============================================================
WHAT IT IS
============================================================
- Weighted-signal scoring with indicator-driven overrides
- Table-driven threshold-to-action mapping
- Auditable decision records for every call
- Deterministic heuristics (no trained models)

============================================================
WHAT IT IS NOT
============================================================
- NOT a web service or UI
- NOT an authentication or payment system
- NOT a schema migration tool (tables are created explicitly)

============================================================
FOUR DECISION SURFACES
============================================================
1. FRAUD: activity risk scoring
2. BEHAVIOR: behavioral anomaly detection
3. VERIFICATION: titled player credential verification
4. CRISIS: incident response planning with escalation

============================================================
USAGE
============================================================
    from storage import InMemoryStore
    from trust_engine import TrustDecisionEngine, TrustEngineConfig

    engine = TrustDecisionEngine(
        store=InMemoryStore(),
        config=TrustEngineConfig.from_env(),
    )

    outcome = await engine.process({
        "kind": "incident",
        "event_type": "security_breach",
        "severity": "critical",
        "description": "Credential stuffing detected",
        "affected_systems": ["auth"],
    })

    print(outcome.plan.communication_plan.sla)   # immediate

============================================================
"""

# Types
from .types import (
    DecisionSurface,
    EventKind,
    ActivityType,
    PolicyAction,
    VerificationStatus,
    CrisisStatus,
    IncidentType,
    IncidentSeverity,
    ChessTitle,
    ActionStatus,
    Activity,
    BehaviorSample,
    IncidentReport,
    CredentialClaim,
    Signal,
    CollectedSignals,
    Score,
    Decision,
    DecisionRecord,
    Check,
    VerificationResult,
    Action,
    ActionReceipt,
    ActionOutcome,
    CommunicationPlan,
    RecoveryStrategy,
    CrisisResponsePlan,
    CrisisEvent,
    TrendSummary,
    DecisionOutcome,
    VerificationOutcome,
    CrisisOutcome,
    ResolutionOutcome,
)

# Configuration
from .config import (
    FraudScoringConfig,
    BehaviorScoringConfig,
    VerificationConfig,
    CrisisConfig,
    PolicyConfig,
    ExecutionConfig,
    StorageConfig,
    TrustEngineConfig,
    get_default_config,
    get_conservative_config,
)

# Input validation
from .schemas import ParsedEvent, parse_event

# Signal collection
from .collector import (
    IpReputationProvider,
    StaticIpReputation,
    SignalCollector,
)

# Scoring
from .aggregator import ScoreAggregator
from .verification import VerificationAggregator
from .crisis import CrisisPlanner

# Policy
from .policy import (
    PolicyRule,
    PolicyTable,
    PolicyResolver,
    default_policy_table,
)

# Audit
from .audit import Store, AuditRecorder

# Actions
from .executors import (
    ActionExecutor,
    ActionFanOut,
    LoggingActionExecutor,
    WebhookActionExecutor,
)

# Engine
from .engine import TrustDecisionEngine


__all__ = [
    # Types
    "DecisionSurface",
    "EventKind",
    "ActivityType",
    "PolicyAction",
    "VerificationStatus",
    "CrisisStatus",
    "IncidentType",
    "IncidentSeverity",
    "ChessTitle",
    "ActionStatus",
    "Activity",
    "BehaviorSample",
    "IncidentReport",
    "CredentialClaim",
    "Signal",
    "CollectedSignals",
    "Score",
    "Decision",
    "DecisionRecord",
    "Check",
    "VerificationResult",
    "Action",
    "ActionReceipt",
    "ActionOutcome",
    "CommunicationPlan",
    "RecoveryStrategy",
    "CrisisResponsePlan",
    "CrisisEvent",
    "TrendSummary",
    "DecisionOutcome",
    "VerificationOutcome",
    "CrisisOutcome",
    "ResolutionOutcome",

    # Configuration
    "FraudScoringConfig",
    "BehaviorScoringConfig",
    "VerificationConfig",
    "CrisisConfig",
    "PolicyConfig",
    "ExecutionConfig",
    "StorageConfig",
    "TrustEngineConfig",
    "get_default_config",
    "get_conservative_config",

    # Input validation
    "ParsedEvent",
    "parse_event",

    # Signal collection
    "IpReputationProvider",
    "StaticIpReputation",
    "SignalCollector",

    # Scoring
    "ScoreAggregator",
    "VerificationAggregator",
    "CrisisPlanner",

    # Policy
    "PolicyRule",
    "PolicyTable",
    "PolicyResolver",
    "default_policy_table",

    # Audit
    "Store",
    "AuditRecorder",

    # Actions
    "ActionExecutor",
    "ActionFanOut",
    "LoggingActionExecutor",
    "WebhookActionExecutor",

    # Engine
    "TrustDecisionEngine",
]


__version__ = "1.0.0"
