"""
ORM Models Package.

Exports the declarative base and the decision audit models.
"""

from storage.models.base import Base, JsonPayload, RecordedAtMixin
from storage.models.decisions import TrustDecisionHistory, TrustDecisionLatest


__all__ = [
    "Base",
    "JsonPayload",
    "RecordedAtMixin",
    "TrustDecisionLatest",
    "TrustDecisionHistory",
]
