"""
Trust Engine - Score Aggregator.

============================================================
PURPOSE
============================================================
Combines collected signals into a composite Score per surface.

score = clamp01( SUM(signal.value * signal.weight) )

============================================================
DESIGN PRINCIPLES
============================================================
- Pure functions: same input = same output
- Range invariant: every score is in [0, 1]
- Monotone: raising any signal value never lowers the score
- Recommendations are derived from score and indicators only

============================================================
"""

from typing import FrozenSet, Iterable, List, Optional, Tuple

from core.exceptions import ValidationError

from .config import BehaviorScoringConfig, FraudScoringConfig
from .types import CollectedSignals, DecisionSurface, Score, Signal


# Scores are rounded so float noise never crosses a policy threshold
SCORE_PRECISION = 6


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def weighted_sum(signals: Iterable[Signal]) -> float:
    """clamp01 of the summed signal contributions."""
    return round(clamp01(sum(s.contribution for s in signals)), SCORE_PRECISION)


# ============================================================
# RECOMMENDATIONS
# ============================================================


FRAUD_REVIEW_RECOMMENDATIONS: Tuple[str, ...] = (
    "Immediate account review required",
    "Consider enhanced security measures",
)

GEOGRAPHIC_RECOMMENDATIONS: Tuple[str, ...] = (
    "Verify user location",
    "Check for VPN usage",
)

BEHAVIOR_RECOMMENDATIONS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("high_activity_frequency", (
        "Implement rate limiting",
        "Add additional verification steps",
    )),
    ("extended_session_duration", (
        "Add session timeout warnings",
        "Implement automatic logout",
    )),
)


# ============================================================
# AGGREGATOR
# ============================================================


class ScoreAggregator:
    """
    Composite scorer for the fraud and behavior surfaces.

    Stateless apart from configuration.
    """

    def __init__(
        self,
        fraud_config: Optional[FraudScoringConfig] = None,
        behavior_config: Optional[BehaviorScoringConfig] = None,
    ):
        self.fraud_config = fraud_config or FraudScoringConfig()
        self.behavior_config = behavior_config or BehaviorScoringConfig()

    def score(self, collected: CollectedSignals) -> Score:
        """Dispatch on the collected surface."""
        if collected.surface == DecisionSurface.FRAUD:
            return self.score_fraud(collected)
        if collected.surface == DecisionSurface.BEHAVIOR:
            return self.score_behavior(collected)
        raise ValidationError(
            f"Surface {collected.surface.value} is not scored by signal aggregation",
            field="surface",
            value=collected.surface.value,
        )

    def score_fraud(self, collected: CollectedSignals) -> Score:
        value = weighted_sum(collected.signals)
        return Score(
            surface=DecisionSurface.FRAUD,
            value=value,
            indicators=collected.indicators,
            signals=collected.signals,
            recommendations=self.fraud_recommendations(value, collected.indicators),
        )

    def score_behavior(self, collected: CollectedSignals) -> Score:
        value = weighted_sum(collected.signals)
        return Score(
            surface=DecisionSurface.BEHAVIOR,
            value=value,
            indicators=collected.indicators,
            signals=collected.signals,
            confidence=self.behavior_confidence(collected.observed_data_points or 0),
            recommendations=self.behavior_recommendations(collected.indicators),
        )

    def behavior_confidence(self, observed_data_points: int) -> float:
        """min(1, data points / full-confidence count)."""
        if observed_data_points <= 0:
            return 0.0
        return min(1.0, observed_data_points / self.behavior_config.full_confidence_data_points)

    def fraud_recommendations(self, score: float, indicators: FrozenSet[str]) -> Tuple[str, ...]:
        recommendations: List[str] = []
        if score > self.fraud_config.review_recommendation_score:
            recommendations.extend(FRAUD_REVIEW_RECOMMENDATIONS)
        if "geographic_anomaly" in indicators:
            recommendations.extend(GEOGRAPHIC_RECOMMENDATIONS)
        return tuple(recommendations)

    @staticmethod
    def behavior_recommendations(indicators: FrozenSet[str]) -> Tuple[str, ...]:
        recommendations: List[str] = []
        for indicator, entries in BEHAVIOR_RECOMMENDATIONS:
            if indicator in indicators:
                recommendations.extend(entries)
        return tuple(recommendations)
