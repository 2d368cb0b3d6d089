"""
Trust Engine - Signal Collector.

============================================================
PURPOSE
============================================================
Normalizes typed events into weighted Signals in [0, 1] plus
a set of named Indicators.

Each indicator is an independent predicate:
1. Takes the typed event and its scoring config
2. Applies one threshold or membership test
3. Returns True when the indicator fires

============================================================
DESIGN PRINCIPLES
============================================================
- Pure functions: same input = same output
- No wall-clock reads (time signals come from the event)
- Predicates never see each other's results
- Malformed payload values never fire an indicator

============================================================
SURFACES
============================================================
Activity        -> FRAUD         (activity_type, time_of_day, ip_reputation)
BehaviorSample  -> BEHAVIOR      (time_of_day, frequency, pattern_match)
IncidentReport  -> CRISIS        (routed to the crisis planner)
CredentialClaim -> VERIFICATION  (routed to the verification aggregator)

============================================================
"""

import ipaddress
import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Callable, FrozenSet, Optional, Tuple, Union

from core.exceptions import UnknownEventKindError

from .config import BehaviorScoringConfig, FraudScoringConfig
from .types import (
    Activity,
    BehaviorSample,
    CollectedSignals,
    CredentialClaim,
    DecisionSurface,
    IncidentReport,
    Signal,
)


logger = logging.getLogger(__name__)


IpNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


# ============================================================
# IP REPUTATION
# ============================================================


@lru_cache(maxsize=64)
def _blocklist_networks(entries: Tuple[str, ...]) -> Tuple[IpNetwork, ...]:
    networks = []
    for entry in entries:
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning(f"Ignoring unparsable IP blocklist entry: {entry!r}")
    return tuple(networks)


def ip_in_blocklist(ip_address: Optional[str], blocklist: Tuple[str, ...]) -> bool:
    """Return True if the address falls in any blocklisted address or network."""
    if not ip_address or not blocklist:
        return False
    try:
        address = ipaddress.ip_address(ip_address.strip())
    except ValueError:
        return False
    return any(
        address.version == network.version and address in network
        for network in _blocklist_networks(tuple(blocklist))
    )


class IpReputationProvider(ABC):
    """Maps an IP address to a risk value in [0, 1]."""

    @abstractmethod
    def risk(self, ip_address: Optional[str]) -> float:
        pass


class StaticIpReputation(IpReputationProvider):
    """
    Offline IP reputation from address class and a blocklist.

    - blocklisted                        -> 1.0
    - unparsable                         -> 1.0 (fail-safe)
    - reserved / multicast / unspecified -> reserved_risk
    - private / loopback / link-local    -> 0.0
    - other public                       -> default_public_risk
    - no address                         -> 0.0
    """

    def __init__(
        self,
        blocklist: Tuple[str, ...] = (),
        default_public_risk: float = 0.0,
        reserved_risk: float = 0.5,
    ):
        self._blocklist = tuple(blocklist)
        self._default_public_risk = default_public_risk
        self._reserved_risk = reserved_risk

    @classmethod
    def from_config(cls, config: FraudScoringConfig) -> "StaticIpReputation":
        return cls(
            blocklist=config.ip_blocklist,
            default_public_risk=config.default_public_ip_risk,
            reserved_risk=config.reserved_ip_risk,
        )

    def risk(self, ip_address: Optional[str]) -> float:
        if not ip_address:
            return 0.0

        try:
            address = ipaddress.ip_address(ip_address.strip())
        except ValueError:
            return 1.0

        if ip_in_blocklist(ip_address, self._blocklist):
            return 1.0

        # Checked before is_private: the stdlib counts 240.0.0.0/4 as private
        if address.is_multicast or address.is_reserved or address.is_unspecified:
            return self._reserved_risk

        if address.is_private or address.is_loopback or address.is_link_local:
            return 0.0

        return self._default_public_risk


# ============================================================
# INDICATOR PREDICATES
# ============================================================


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _unusual_activity_pattern(activity: Activity, config: FraudScoringConfig) -> bool:
    count = _as_number(activity.payload.get("actions_last_minute"))
    return count is not None and count > config.unusual_actions_per_minute


def _geographic_anomaly(activity: Activity, config: FraudScoringConfig) -> bool:
    country = activity.payload.get("country")
    usual = activity.payload.get("usual_countries")
    if not country or not isinstance(usual, (list, tuple, set, frozenset)) or not usual:
        return False
    return str(country).upper() not in {str(c).upper() for c in usual}


def _device_anomaly(activity: Activity, config: FraudScoringConfig) -> bool:
    if not activity.user_agent:
        return False
    agent = activity.user_agent.lower()
    return any(marker in agent for marker in config.automation_user_agent_markers)


def _behavioral_anomaly(activity: Activity, config: FraudScoringConfig) -> bool:
    failed = _as_number(activity.payload.get("failed_attempts"))
    return failed is not None and failed >= config.failed_attempts_threshold


def _critical_fraud(activity: Activity, config: FraudScoringConfig) -> bool:
    if activity.payload.get("known_fraud_marker"):
        return True
    return ip_in_blocklist(activity.ip_address, config.ip_blocklist)


ActivityPredicate = Callable[[Activity, FraudScoringConfig], bool]

ACTIVITY_INDICATORS: Tuple[Tuple[str, ActivityPredicate], ...] = (
    ("unusual_activity_pattern", _unusual_activity_pattern),
    ("geographic_anomaly", _geographic_anomaly),
    ("device_anomaly", _device_anomaly),
    ("behavioral_anomaly", _behavioral_anomaly),
    ("critical_fraud", _critical_fraud),
)


def _high_activity_frequency(sample: BehaviorSample, config: BehaviorScoringConfig) -> bool:
    return sample.frequency > config.frequency_threshold


def _extended_session_duration(sample: BehaviorSample, config: BehaviorScoringConfig) -> bool:
    return sample.duration_seconds > config.extended_session_seconds


def _high_error_rate(sample: BehaviorSample, config: BehaviorScoringConfig) -> bool:
    return sample.error_count > config.error_count_threshold


def _suspicious_behavior_patterns(sample: BehaviorSample, config: BehaviorScoringConfig) -> bool:
    return bool(sample.pattern_flags)


BehaviorPredicate = Callable[[BehaviorSample, BehaviorScoringConfig], bool]

BEHAVIOR_INDICATORS: Tuple[Tuple[str, BehaviorPredicate], ...] = (
    ("high_activity_frequency", _high_activity_frequency),
    ("extended_session_duration", _extended_session_duration),
    ("high_error_rate", _high_error_rate),
    ("suspicious_behavior_patterns", _suspicious_behavior_patterns),
)

PATTERN_MATCH_INDICATOR = "suspicious_behavior_patterns"


# ============================================================
# TIME OF DAY
# ============================================================


def is_off_hours(hour: int, before: int, after: int) -> bool:
    """Off-hours means hour < before or hour > after."""
    return hour < before or hour > after


def local_hour(activity: Activity) -> int:
    """Hour on the subject's local clock."""
    timestamp = activity.timestamp_utc
    total_minutes = timestamp.hour * 60 + timestamp.minute + activity.utc_offset_minutes
    return (total_minutes // 60) % 24


# ============================================================
# COLLECTOR
# ============================================================


class SignalCollector:
    """
    Turns typed events into CollectedSignals.

    Stateless apart from its configs and IP reputation provider.
    """

    def __init__(
        self,
        fraud_config: Optional[FraudScoringConfig] = None,
        behavior_config: Optional[BehaviorScoringConfig] = None,
        ip_reputation: Optional[IpReputationProvider] = None,
    ):
        self.fraud_config = fraud_config or FraudScoringConfig()
        self.behavior_config = behavior_config or BehaviorScoringConfig()
        self.ip_reputation = ip_reputation or StaticIpReputation.from_config(self.fraud_config)

    def collect(self, event: Any) -> CollectedSignals:
        """
        Collect signals and indicators for one event.

        Raises:
            UnknownEventKindError: event is not a recognized event type
        """
        if isinstance(event, Activity):
            return self.collect_activity(event)
        if isinstance(event, BehaviorSample):
            return self.collect_behavior(event)
        if isinstance(event, IncidentReport):
            return CollectedSignals(
                surface=DecisionSurface.CRISIS,
                subject_id=event.event_type,
                signals=(),
            )
        if isinstance(event, CredentialClaim):
            return CollectedSignals(
                surface=DecisionSurface.VERIFICATION,
                subject_id="",
                signals=(),
            )
        raise UnknownEventKindError(type(event).__name__)

    def collect_activity(self, activity: Activity) -> CollectedSignals:
        config = self.fraud_config

        indicators = self._evaluate(ACTIVITY_INDICATORS, activity, config)

        off_hours = is_off_hours(
            local_hour(activity), config.off_hours_before, config.off_hours_after
        )
        ip_risk = min(1.0, max(0.0, self.ip_reputation.risk(activity.ip_address)))

        signals = (
            Signal(
                kind="activity_type",
                value=1.0,
                weight=config.base_weight(activity.activity_type),
                source="activity",
            ),
            Signal(
                kind="time_of_day",
                value=1.0 if off_hours else 0.0,
                weight=config.time_of_day_weight,
                source="timestamp",
            ),
            Signal(
                kind="ip_reputation",
                value=ip_risk,
                weight=config.ip_reputation_weight,
                source="ip_reputation",
            ),
        )

        if indicators:
            logger.debug(
                f"Activity indicators for {activity.subject_id}: {sorted(indicators)}"
            )

        return CollectedSignals(
            surface=DecisionSurface.FRAUD,
            subject_id=activity.subject_id,
            signals=signals,
            indicators=indicators,
        )

    def collect_behavior(self, sample: BehaviorSample) -> CollectedSignals:
        config = self.behavior_config

        indicators = self._evaluate(BEHAVIOR_INDICATORS, sample, config)

        # The observed hour is read in the timezone the sample carries
        off_hours = sample.observed_at is not None and is_off_hours(
            sample.observed_at.hour, config.off_hours_before, config.off_hours_after
        )

        signals = (
            Signal(
                kind="time_of_day",
                value=1.0 if off_hours else 0.0,
                weight=config.time_of_day_weight,
                source="observed_at",
            ),
            Signal(
                kind="frequency",
                value=1.0 if "high_activity_frequency" in indicators else 0.0,
                weight=config.frequency_weight,
                source="behavior",
            ),
            Signal(
                kind="pattern_match",
                value=1.0 if PATTERN_MATCH_INDICATOR in indicators else 0.0,
                weight=config.pattern_weight,
                source="behavior",
            ),
        )

        return CollectedSignals(
            surface=DecisionSurface.BEHAVIOR,
            subject_id=sample.subject_id,
            signals=signals,
            indicators=indicators,
            observed_data_points=sample.observed_data_points,
        )

    @staticmethod
    def _evaluate(table, event, config) -> FrozenSet[str]:
        return frozenset(name for name, predicate in table if predicate(event, config))
