"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Provides the declarative base and common mixins used by all
ORM models of the decision audit store.

============================================================
COMPONENTS
============================================================
- Base: SQLAlchemy declarative base for all models
- JsonPayload: JSON column type (JSONB on PostgreSQL)
- RecordedAtMixin: server-side write timestamp

============================================================
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB where available, plain JSON elsewhere (SQLite in tests)
JsonPayload = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.

    All audit models inherit from this base, so
    Base.metadata holds every table create_tables() creates.
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class RecordedAtMixin:
    """
    Mixin providing the time a row was written.

    Distinct from the record's own created_at, which comes
    from the engine clock.
    """

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Row write timestamp (UTC)"
    )
