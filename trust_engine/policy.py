"""
Trust Engine - Policy Resolver.

============================================================
PURPOSE
============================================================
Maps (score, indicators) to a discrete PolicyAction through an
ordered policy table. The first matching row wins.

============================================================
DEFAULT LADDER
============================================================
1. score > 0.8 OR 'critical_fraud' present  -> block_account
2. score > 0.6 OR more than 2 indicators    -> require_verification
3. score > 0.4                              -> flag_for_review
4. otherwise                                -> monitor

============================================================
TABLE RULES
============================================================
- Rows are data, so thresholds can be audited and changed
  without touching the aggregators
- Every row condition is monotone in the indicator set
- Rows are ordered from strictest to most lenient
- The last row is a catch-all

Together these guarantee that adding an indicator never moves
a decision to a less strict tier.

============================================================
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from core.exceptions import ConfigurationError, InvalidConfigError

from .types import Action, Decision, PolicyAction


# ============================================================
# POLICY RULE
# ============================================================


@dataclass(frozen=True)
class PolicyRule:
    """
    One row of the policy table.

    A row matches when ANY of its configured conditions holds.
    A row with no conditions is a catch-all.
    """

    action: PolicyAction
    score_above: Optional[float] = None
    any_indicators: FrozenSet[str] = frozenset()
    indicator_count_above: Optional[int] = None

    @property
    def is_catch_all(self) -> bool:
        return (
            self.score_above is None
            and not self.any_indicators
            and self.indicator_count_above is None
        )

    def matches(self, score: float, indicators: FrozenSet[str]) -> bool:
        if self.is_catch_all:
            return True
        if self.score_above is not None and score > self.score_above:
            return True
        if self.any_indicators & indicators:
            return True
        if self.indicator_count_above is not None and len(indicators) > self.indicator_count_above:
            return True
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "score_above": self.score_above,
            "any_indicators": sorted(self.any_indicators),
            "indicator_count_above": self.indicator_count_above,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PolicyRule":
        if not isinstance(data, dict):
            raise InvalidConfigError("policy.rules", data, "each rule must be a mapping")
        try:
            action = PolicyAction(data["action"])
        except (KeyError, ValueError) as e:
            raise ConfigurationError(
                f"Policy rule has missing or unknown action: {data.get('action')!r}",
                config_key="policy.rules.action",
                actual_value=data.get("action"),
            ) from e
        return cls(
            action=action,
            score_above=_optional_number(data, "score_above", float),
            any_indicators=_indicator_names(data.get("any_indicators")),
            indicator_count_above=_optional_number(data, "indicator_count_above", int),
        )


def _optional_number(data: Dict[str, Any], key: str, cast: type) -> Optional[Any]:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int subclass; a YAML "yes" is never a threshold
    if isinstance(value, bool):
        raise InvalidConfigError(f"policy.rules.{key}", value, "expected a number")
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise InvalidConfigError(f"policy.rules.{key}", value, "expected a number")


def _indicator_names(value: Any) -> FrozenSet[str]:
    if value is None:
        return frozenset()
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise InvalidConfigError(
            "policy.rules.any_indicators", value, "expected a list of indicator names"
        )
    if not all(isinstance(name, str) for name in value):
        raise InvalidConfigError(
            "policy.rules.any_indicators", value, "indicator names must be strings"
        )
    return frozenset(value)


# ============================================================
# POLICY TABLE
# ============================================================


@dataclass(frozen=True)
class PolicyTable:
    """Ordered, validated list of policy rules."""

    rules: Tuple[PolicyRule, ...]
    name: str = "default"

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                f"Invalid policy table '{self.name}': {'; '.join(errors)}",
                config_key="policy.rules",
            )

    def validate(self) -> List[str]:
        errors: List[str] = []

        if not self.rules:
            errors.append("table has no rules")
            return errors

        if not self.rules[-1].is_catch_all:
            errors.append("last rule must be a catch-all")

        for index, rule in enumerate(self.rules[:-1]):
            if rule.is_catch_all:
                errors.append(f"rule {index} is a catch-all before the end of the table")

        for index in range(1, len(self.rules)):
            if self.rules[index].action.strictness > self.rules[index - 1].action.strictness:
                errors.append(
                    f"rule {index} ({self.rules[index].action.value}) is stricter than "
                    f"rule {index - 1} ({self.rules[index - 1].action.value})"
                )

        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "rules": [r.to_dict() for r in self.rules]}

    @classmethod
    def from_rows(cls, rows: Iterable[Dict[str, Any]], name: str = "custom") -> "PolicyTable":
        if not isinstance(rows, (list, tuple)):
            raise InvalidConfigError("policy.rules", rows, "expected a list of rules")
        return cls(rules=tuple(PolicyRule.from_dict(row) for row in rows), name=name)


def default_policy_table() -> PolicyTable:
    """Return the standard four-tier ladder."""
    return PolicyTable(
        rules=(
            PolicyRule(
                action=PolicyAction.BLOCK_ACCOUNT,
                score_above=0.8,
                any_indicators=frozenset({"critical_fraud"}),
            ),
            PolicyRule(
                action=PolicyAction.REQUIRE_VERIFICATION,
                score_above=0.6,
                indicator_count_above=2,
            ),
            PolicyRule(
                action=PolicyAction.FLAG_FOR_REVIEW,
                score_above=0.4,
            ),
            PolicyRule(action=PolicyAction.MONITOR),
        ),
        name="default",
    )


# ============================================================
# RESOLVER
# ============================================================


# Executable follow-up per tier on the fraud surface
DEFAULT_ACTION_DIRECTIVES: Dict[PolicyAction, Tuple[str, ...]] = {
    PolicyAction.BLOCK_ACCOUNT: ("suspend_account",),
    PolicyAction.REQUIRE_VERIFICATION: ("require_step_up_verification",),
    PolicyAction.FLAG_FOR_REVIEW: ("flag_account_for_review",),
    PolicyAction.MONITOR: (),
}


class PolicyResolver:
    """
    Resolve scores to actions using a policy table.

    Stateless apart from the immutable table; safe to share
    across concurrent decisions.
    """

    def __init__(
        self,
        table: Optional[PolicyTable] = None,
        directives: Optional[Dict[PolicyAction, Tuple[str, ...]]] = None,
    ):
        self.table = table or default_policy_table()
        self._directives = directives or DEFAULT_ACTION_DIRECTIVES

    def resolve(self, score: float, indicators: FrozenSet[str]) -> PolicyAction:
        return self._matching_rule(score, indicators).action

    def _matching_rule(self, score: float, indicators: FrozenSet[str]) -> PolicyRule:
        for rule in self.table.rules:
            if rule.matches(score, indicators):
                return rule
        # Unreachable for a validated table
        return self.table.rules[-1]

    def decide(self, score: float, indicators: FrozenSet[str]) -> Decision:
        return Decision(
            score=score,
            indicators=frozenset(indicators),
            action=self.resolve(score, frozenset(indicators)),
        )

    def actions_for(self, decision: Decision, target: str) -> Tuple[Action, ...]:
        """Executable actions implied by a decision tier."""
        return tuple(
            Action(kind=kind, target=target)
            for kind in self._directives.get(decision.action, ())
        )
