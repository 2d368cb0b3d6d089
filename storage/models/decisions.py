"""
Decision Audit ORM Models.

============================================================
PURPOSE
============================================================
Models for storing trust engine decisions: the latest record
per (subject, surface) and the append-only decision history.

============================================================
DATA LIFECYCLE ROLE
============================================================
- Stage: DERIVED (decisions)
- trust_decision_latest: UPSERT, last writer wins
- trust_decision_history: IMMUTABLE (append-only)
- Source: TrustDecisionEngine
- Consumers: audit, trend analysis

============================================================
MODELS
============================================================
- TrustDecisionLatest: current record per (subject_id, surface)
- TrustDecisionHistory: every record ever written

============================================================
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, JsonPayload, RecordedAtMixin


class TrustDecisionLatest(Base, RecordedAtMixin):
    """
    Latest audit record per subject and surface.

    ============================================================
    KEY
    ============================================================
    (subject_id, surface). Crisis events use the event type as
    subject_id, so there is one live crisis per type.

    ============================================================
    """

    __tablename__ = "trust_decision_latest"

    subject_id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
        comment="Subject (user id, or event type for crises)"
    )

    surface: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="fraud, behavior, verification or crisis"
    )

    record_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Decision record id or crisis event id"
    )

    record_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="decision, verification or crisis"
    )

    score: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Decision score, verification aggregate or escalation level"
    )

    status: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
        comment="Policy action, verification status or crisis status"
    )

    payload: Mapped[dict] = mapped_column(
        JsonPayload,
        nullable=False,
        comment="Full serialized record"
    )

    created_at: Mapped[Optional[datetime]] = mapped_column(
        nullable=True,
        comment="Record creation time from the engine clock"
    )

    def __repr__(self) -> str:
        return (
            f"<TrustDecisionLatest({self.subject_id}/{self.surface}, "
            f"score={self.score}, status={self.status})>"
        )


class TrustDecisionHistory(Base, RecordedAtMixin):
    """Append-only history of every audit record written."""

    __tablename__ = "trust_decision_history"

    history_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Monotonic write sequence"
    )

    subject_id: Mapped[str] = mapped_column(String(128), nullable=False)

    surface: Mapped[str] = mapped_column(String(32), nullable=False)

    record_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    record_type: Mapped[str] = mapped_column(String(32), nullable=False)

    score: Mapped[float] = mapped_column(Float, nullable=False)

    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    payload: Mapped[dict] = mapped_column(JsonPayload, nullable=False)

    created_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    __table_args__ = (
        Index("ix_trust_decision_history_subject_surface", "subject_id", "surface", "history_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<TrustDecisionHistory(#{self.history_id} {self.subject_id}/{self.surface}, "
            f"score={self.score})>"
        )
