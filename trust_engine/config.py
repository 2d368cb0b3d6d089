"""
Trust Engine - Configuration.

============================================================
PURPOSE
============================================================
Defines all configuration dataclasses and threshold values
for the Trust & Risk Decision Engine.

Every weight, threshold and table the scorers use lives here,
so a deployment can audit or tune them without code changes.

============================================================
DESIGN PRINCIPLES
============================================================
- Conservative defaults (err on the side of caution)
- Unknown inputs take the strictest branch
- Immutable configurations
- Loadable from environment (.env) or YAML

============================================================
SOURCES
============================================================
1. Defaults (get_default_config)
2. YAML file (TrustEngineConfig.from_yaml)
3. Environment overrides (TrustEngineConfig.from_env),
   optionally starting from the file named in TRUST_CONFIG_FILE

============================================================
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from core.exceptions import ConfigurationError, InvalidConfigError

from .policy import PolicyRule, PolicyTable, default_policy_table
from .types import PolicyAction


# ============================================================
# FRAUD SCORING CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class FraudScoringConfig:
    """
    Configuration for activity fraud scoring.

    ============================================================
    WHAT WE MEASURE
    ============================================================
    - Activity type (payments carry the most risk)
    - Local time of day (off-hours activity)
    - IP reputation

    ============================================================
    WEIGHT RATIONALE
    ============================================================
    Base weights:
    - login 0.1, game 0.2, interaction 0.2, content 0.3
    - payment 0.8 (money moves)
    - unknown 0.5 (cautious default)

    Off-hours (local hour < 6 or > 22) adds up to 0.2.
    IP reputation adds up to 0.3.

    ============================================================
    """

    activity_base_weights: Dict[str, float] = field(default_factory=lambda: {
        "login": 0.1,
        "game": 0.2,
        "payment": 0.8,
        "content": 0.3,
        "interaction": 0.2,
    })
    unknown_activity_weight: float = 0.5

    # Off-hours window on the subject's local clock
    off_hours_before: int = 6                 # hour < 6
    off_hours_after: int = 22                 # hour > 22
    time_of_day_weight: float = 0.2

    # IP reputation
    ip_reputation_weight: float = 0.3
    ip_blocklist: Tuple[str, ...] = ()
    default_public_ip_risk: float = 0.0
    reserved_ip_risk: float = 0.5

    # Indicator thresholds
    unusual_actions_per_minute: int = 30      # actions_last_minute > 30
    failed_attempts_threshold: int = 5        # failed_attempts >= 5
    automation_user_agent_markers: Tuple[str, ...] = (
        "headless",
        "selenium",
        "phantomjs",
        "curl/",
        "python-requests",
        "bot",
    )

    # Recommendations
    review_recommendation_score: float = 0.7  # score > 0.7

    def base_weight(self, activity_type: str) -> float:
        return self.activity_base_weights.get(activity_type, self.unknown_activity_weight)

    def validate(self) -> List[str]:
        errors = []
        for name, weight in self.activity_base_weights.items():
            if weight < 0:
                errors.append(f"fraud.activity_base_weights.{name} must be non-negative")
        if self.unknown_activity_weight < 0:
            errors.append("fraud.unknown_activity_weight must be non-negative")
        if not 0 <= self.off_hours_before <= 24 or not 0 <= self.off_hours_after <= 24:
            errors.append("fraud off-hours bounds must be within 0-24")
        if self.time_of_day_weight < 0 or self.ip_reputation_weight < 0:
            errors.append("fraud signal weights must be non-negative")
        for name in ("default_public_ip_risk", "reserved_ip_risk"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                errors.append(f"fraud.{name} must be within [0, 1]")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activity_base_weights": dict(self.activity_base_weights),
            "unknown_activity_weight": self.unknown_activity_weight,
            "off_hours_before": self.off_hours_before,
            "off_hours_after": self.off_hours_after,
            "time_of_day_weight": self.time_of_day_weight,
            "ip_reputation_weight": self.ip_reputation_weight,
            "ip_blocklist": list(self.ip_blocklist),
            "default_public_ip_risk": self.default_public_ip_risk,
            "reserved_ip_risk": self.reserved_ip_risk,
            "unusual_actions_per_minute": self.unusual_actions_per_minute,
            "failed_attempts_threshold": self.failed_attempts_threshold,
            "automation_user_agent_markers": list(self.automation_user_agent_markers),
            "review_recommendation_score": self.review_recommendation_score,
        }


# ============================================================
# BEHAVIOR SCORING CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class BehaviorScoringConfig:
    """
    Configuration for behavioral anomaly scoring.

    Weights: time of day 0.2, frequency 0.3, pattern match 0.4.
    Confidence reaches 1.0 at 100 observed data points.
    """

    off_hours_before: int = 6
    off_hours_after: int = 22
    time_of_day_weight: float = 0.2

    frequency_threshold: float = 100.0        # frequency > 100
    frequency_weight: float = 0.3

    pattern_weight: float = 0.4

    extended_session_seconds: float = 3600.0  # duration > 1h
    error_count_threshold: int = 10           # errors > 10

    full_confidence_data_points: int = 100

    def validate(self) -> List[str]:
        errors = []
        for name in ("time_of_day_weight", "frequency_weight", "pattern_weight"):
            if getattr(self, name) < 0:
                errors.append(f"behavior.{name} must be non-negative")
        if self.full_confidence_data_points < 1:
            errors.append("behavior.full_confidence_data_points must be at least 1")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "off_hours_before": self.off_hours_before,
            "off_hours_after": self.off_hours_after,
            "time_of_day_weight": self.time_of_day_weight,
            "frequency_threshold": self.frequency_threshold,
            "frequency_weight": self.frequency_weight,
            "pattern_weight": self.pattern_weight,
            "extended_session_seconds": self.extended_session_seconds,
            "error_count_threshold": self.error_count_threshold,
            "full_confidence_data_points": self.full_confidence_data_points,
        }


# ============================================================
# VERIFICATION CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class VerificationConfig:
    """
    Configuration for titled player credential verification.

    ============================================================
    THRESHOLD RATIONALE
    ============================================================
    Minimum ratings follow federation title requirements.
    A claim for an unrecognized title is held to the highest
    minimum (default deny).

    Aggregate status:
    - VERIFIED at >= 0.8
    - PENDING in [0.6, 0.8)
    - REJECTED below 0.6

    ============================================================
    """

    minimum_ratings: Dict[str, int] = field(default_factory=lambda: {
        "GM": 2500,
        "IM": 2400,
        "FM": 2300,
        "WGM": 2300,
        "WIM": 2200,
        "CM": 2200,
        "WCM": 2200,
        "WFM": 2100,
        "NM": 2200,
    })

    rating_shortfall_score: float = 0.5
    document_score: float = 0.8
    minimum_years_experience: float = 2.0
    limited_experience_score: float = 0.6

    check_pass_score: float = 0.8
    verified_threshold: float = 0.8
    pending_threshold: float = 0.6

    @property
    def recognized_titles(self) -> Tuple[str, ...]:
        return tuple(self.minimum_ratings)

    @property
    def unknown_title_minimum_rating(self) -> int:
        return max(self.minimum_ratings.values())

    def minimum_rating(self, title: str) -> int:
        return self.minimum_ratings.get(title, self.unknown_title_minimum_rating)

    def validate(self) -> List[str]:
        errors = []
        if not self.minimum_ratings:
            errors.append("verification.minimum_ratings must not be empty")
        if not 0.0 <= self.pending_threshold <= self.verified_threshold <= 1.0:
            errors.append("verification thresholds must satisfy 0 <= pending <= verified <= 1")
        for name in ("rating_shortfall_score", "document_score", "limited_experience_score"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                errors.append(f"verification.{name} must be within [0, 1]")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minimum_ratings": dict(self.minimum_ratings),
            "rating_shortfall_score": self.rating_shortfall_score,
            "document_score": self.document_score,
            "minimum_years_experience": self.minimum_years_experience,
            "limited_experience_score": self.limited_experience_score,
            "check_pass_score": self.check_pass_score,
            "verified_threshold": self.verified_threshold,
            "pending_threshold": self.pending_threshold,
        }


# ============================================================
# CRISIS CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class CrisisConfig:
    """
    Configuration for crisis planning.

    Unmapped severities are treated as critical and unknown
    event types use the security breach playbook.
    """

    escalation_levels: Dict[str, int] = field(default_factory=lambda: {
        "low": 1,
        "medium": 2,
        "high": 3,
        "critical": 4,
    })
    communication_sla: Dict[str, str] = field(default_factory=lambda: {
        "critical": "immediate",
        "high": "1h",
        "medium": "4h",
        "low": "24h",
    })
    fallback_severity: str = "critical"
    fallback_event_type: str = "security_breach"

    # Level at or above which legal and external review join next steps
    legal_review_level: int = 3

    recovery_timeline: str = "24-48 hours for critical systems"

    # Stakeholder notifications sent when a crisis changes state
    escalation_action: str = "notify_escalation"
    resolution_action: str = "notify_resolution"

    def level_for(self, severity: str) -> int:
        return self.escalation_levels.get(
            severity, self.escalation_levels[self.fallback_severity]
        )

    def sla_for(self, severity: str) -> str:
        return self.communication_sla.get(
            severity, self.communication_sla[self.fallback_severity]
        )

    def validate(self) -> List[str]:
        errors = []
        if self.fallback_severity not in self.escalation_levels:
            errors.append("crisis.fallback_severity must have an escalation level")
        if self.fallback_severity not in self.communication_sla:
            errors.append("crisis.fallback_severity must have a communication SLA")
        if self.escalation_levels and self.escalation_levels.get(self.fallback_severity) != max(
            self.escalation_levels.values()
        ):
            errors.append("crisis.fallback_severity must map to the highest escalation level")
        if not self.escalation_action or not self.resolution_action:
            errors.append("crisis notification actions must not be empty")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "escalation_levels": dict(self.escalation_levels),
            "communication_sla": dict(self.communication_sla),
            "fallback_severity": self.fallback_severity,
            "fallback_event_type": self.fallback_event_type,
            "legal_review_level": self.legal_review_level,
            "recovery_timeline": self.recovery_timeline,
            "escalation_action": self.escalation_action,
            "resolution_action": self.resolution_action,
        }


# ============================================================
# POLICY CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class PolicyConfig:
    """Holds the ordered policy table used by the resolver."""

    table: PolicyTable = field(default_factory=default_policy_table)

    def validate(self) -> List[str]:
        return self.table.validate()

    def to_dict(self) -> Dict[str, Any]:
        return self.table.to_dict()


# ============================================================
# EXECUTION CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class ExecutionConfig:
    """
    Configuration for action fan-out.

    Fraud actions are opt-in; crisis actions always run when an
    executor is configured.
    """

    action_timeout_seconds: float = 5.0
    max_parallel_actions: int = 8
    execute_fraud_actions: bool = False

    webhook_url: Optional[str] = None
    webhook_timeout_seconds: float = 10.0

    def validate(self) -> List[str]:
        errors = []
        if self.action_timeout_seconds <= 0:
            errors.append("execution.action_timeout_seconds must be positive")
        if self.max_parallel_actions < 1:
            errors.append("execution.max_parallel_actions must be at least 1")
        if self.webhook_timeout_seconds <= 0:
            errors.append("execution.webhook_timeout_seconds must be positive")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_timeout_seconds": self.action_timeout_seconds,
            "max_parallel_actions": self.max_parallel_actions,
            "execute_fraud_actions": self.execute_fraud_actions,
            "webhook_url": self.webhook_url,
            "webhook_timeout_seconds": self.webhook_timeout_seconds,
        }


# ============================================================
# STORAGE CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class StorageConfig:
    """Configuration for the audit store."""

    database_url: Optional[str] = None
    store_timeout_seconds: float = 2.0
    history_limit: int = 50
    echo_sql: bool = False

    def validate(self) -> List[str]:
        errors = []
        if self.store_timeout_seconds <= 0:
            errors.append("storage.store_timeout_seconds must be positive")
        if self.history_limit < 1:
            errors.append("storage.history_limit must be at least 1")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            # Never expose credentials
            "database_url": "***" if self.database_url else None,
            "store_timeout_seconds": self.store_timeout_seconds,
            "history_limit": self.history_limit,
            "echo_sql": self.echo_sql,
        }


# ============================================================
# MASTER CONFIGURATION
# ============================================================


_SECTIONS = ("fraud", "behavior", "verification", "crisis", "execution", "storage")


@dataclass(frozen=True)
class TrustEngineConfig:
    """
    Master configuration for the Trust & Risk Decision Engine.

    Aggregates all component configs and engine settings.
    """

    fraud: FraudScoringConfig = field(default_factory=FraudScoringConfig)
    behavior: BehaviorScoringConfig = field(default_factory=BehaviorScoringConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    crisis: CrisisConfig = field(default_factory=CrisisConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    engine_version: str = "1.0.0"

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors: List[str] = []
        errors.extend(self.fraud.validate())
        errors.extend(self.behavior.validate())
        errors.extend(self.verification.validate())
        errors.extend(self.crisis.validate())
        errors.extend(self.policy.validate())
        errors.extend(self.execution.validate())
        errors.extend(self.storage.validate())
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fraud": self.fraud.to_dict(),
            "behavior": self.behavior.to_dict(),
            "verification": self.verification.to_dict(),
            "crisis": self.crisis.to_dict(),
            "policy": self.policy.to_dict(),
            "execution": self.execution.to_dict(),
            "storage": self.storage.to_dict(),
            "engine_version": self.engine_version,
        }

    # --------------------------------------------------------
    # LOADERS
    # --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrustEngineConfig":
        """Build a configuration from a nested mapping, starting from defaults."""
        data = data or {}
        unknown = set(data) - set(_SECTIONS) - {"policy", "engine_version"}
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration sections: {sorted(unknown)}",
                config_key=",".join(sorted(unknown)),
            )

        config = cls()
        overrides: Dict[str, Any] = {}

        for section in _SECTIONS:
            if section in data:
                overrides[section] = _apply_section(
                    getattr(config, section), data[section] or {}, section
                )

        if "policy" in data:
            policy_data = data["policy"] or {}
            if not isinstance(policy_data, dict):
                raise InvalidConfigError("policy", policy_data, "section must be a mapping")
            rows = policy_data.get("rules")
            if rows is not None:
                overrides["policy"] = PolicyConfig(
                    table=PolicyTable.from_rows(rows, name=policy_data.get("name", "custom"))
                )

        if "engine_version" in data:
            overrides["engine_version"] = str(data["engine_version"])

        return replace(config, **overrides)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "TrustEngineConfig":
        """Load configuration from YAML file."""
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Cannot load configuration file {path}: {e}",
                config_key="config_file",
                actual_value=str(path),
                cause=e,
            )

        if data is not None and not isinstance(data, dict):
            raise InvalidConfigError("config_file", str(path), "top level must be a mapping")

        return cls.from_dict(data or {})

    @classmethod
    def from_env(cls) -> "TrustEngineConfig":
        """
        Load configuration from environment variables.

        Reads a .env file first (python-dotenv). When TRUST_CONFIG_FILE
        is set, that YAML file is the base the variables override.
        """
        load_dotenv()

        config_file = os.getenv("TRUST_CONFIG_FILE")
        config = cls.from_yaml(config_file) if config_file else cls()

        execution = replace(
            config.execution,
            action_timeout_seconds=_env_float(
                "TRUST_ACTION_TIMEOUT_SECONDS", config.execution.action_timeout_seconds
            ),
            max_parallel_actions=_env_int(
                "TRUST_MAX_PARALLEL_ACTIONS", config.execution.max_parallel_actions
            ),
            execute_fraud_actions=_env_bool(
                "TRUST_EXECUTE_FRAUD_ACTIONS", config.execution.execute_fraud_actions
            ),
            webhook_url=os.getenv("TRUST_ACTION_WEBHOOK_URL", config.execution.webhook_url),
        )

        storage = replace(
            config.storage,
            database_url=os.getenv("DATABASE_URL", config.storage.database_url),
            store_timeout_seconds=_env_float(
                "TRUST_STORE_TIMEOUT_SECONDS", config.storage.store_timeout_seconds
            ),
            history_limit=_env_int("TRUST_HISTORY_LIMIT", config.storage.history_limit),
            echo_sql=_env_bool("TRUST_ECHO_SQL", config.storage.echo_sql),
        )

        fraud = config.fraud
        blocklist = os.getenv("TRUST_IP_BLOCKLIST")
        if blocklist is not None:
            fraud = replace(
                fraud,
                ip_blocklist=tuple(ip.strip() for ip in blocklist.split(",") if ip.strip()),
            )

        return replace(config, fraud=fraud, execution=execution, storage=storage)


# ============================================================
# HELPERS
# ============================================================


def _apply_section(current: Any, values: Dict[str, Any], section: str) -> Any:
    """Return a copy of a section config with the given values applied."""
    if not isinstance(values, dict):
        raise InvalidConfigError(section, values, "section must be a mapping")

    known = {f.name: f for f in fields(current)}
    unknown = set(values) - set(known)
    if unknown:
        raise InvalidConfigError(section, sorted(unknown), "unknown keys")

    changes: Dict[str, Any] = {}
    for key, value in values.items():
        changes[key] = _coerce(f"{section}.{key}", getattr(current, key), value)

    return replace(current, **changes)


def _coerce(key: str, existing: Any, value: Any) -> Any:
    """Convert a loaded value to the type of the default it replaces."""
    if isinstance(existing, dict):
        if not isinstance(value, dict):
            raise InvalidConfigError(key, value, "expected a mapping")
        # Partial overrides merge into the defaults
        merged = dict(existing)
        sample = next(iter(existing.values()), None)
        for name, item in value.items():
            current = existing.get(name, sample)
            merged[name] = _coerce(f"{key}.{name}", current, item) if current is not None else item
        return merged

    if isinstance(existing, tuple):
        # A bare string would otherwise be split into characters
        if not isinstance(value, (list, tuple)):
            raise InvalidConfigError(key, value, "expected a list")
        if not all(isinstance(item, str) for item in value):
            raise InvalidConfigError(key, value, "expected a list of strings")
        return tuple(value)

    if isinstance(existing, bool):
        if not isinstance(value, bool):
            raise InvalidConfigError(key, value, "expected true or false")
        return value

    if isinstance(existing, (int, float)):
        if isinstance(value, bool):
            raise InvalidConfigError(key, value, "expected a number")
        cast = int if isinstance(existing, int) else float
        try:
            number = cast(value)
        except (TypeError, ValueError):
            raise InvalidConfigError(key, value, "expected a number")
        if cast is int and isinstance(value, float) and not value.is_integer():
            raise InvalidConfigError(key, value, "expected an integer")
        return number

    if existing is None:
        if value is not None and not isinstance(value, str):
            raise InvalidConfigError(key, value, "expected a string")
        return value

    if isinstance(existing, str):
        if not isinstance(value, str):
            raise InvalidConfigError(key, value, "expected a string")
        return value

    return value


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise InvalidConfigError(key, raw, "expected a number")


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidConfigError(key, raw, "expected an integer")


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ============================================================
# DEFAULT CONFIGURATION
# ============================================================


def get_default_config() -> TrustEngineConfig:
    """
    Return the default Trust Engine configuration.

    This provides conservative defaults suitable for production.
    """
    return TrustEngineConfig()


def get_conservative_config() -> TrustEngineConfig:
    """
    Return a more conservative configuration.

    Lower thresholds = earlier intervention = more caution.
    """
    return TrustEngineConfig(
        fraud=FraudScoringConfig(
            unknown_activity_weight=0.6,
            default_public_ip_risk=0.1,
            unusual_actions_per_minute=20,
            failed_attempts_threshold=3,
        ),
        policy=PolicyConfig(
            table=PolicyTable(
                rules=(
                    PolicyRule(
                        action=PolicyAction.BLOCK_ACCOUNT,
                        score_above=0.7,
                        any_indicators=frozenset({"critical_fraud"}),
                    ),
                    PolicyRule(
                        action=PolicyAction.REQUIRE_VERIFICATION,
                        score_above=0.5,
                        indicator_count_above=1,
                    ),
                    PolicyRule(action=PolicyAction.FLAG_FOR_REVIEW, score_above=0.3),
                    PolicyRule(action=PolicyAction.MONITOR),
                ),
                name="conservative",
            )
        ),
    )
