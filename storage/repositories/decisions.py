"""
Decision Audit Repository.

============================================================
PURPOSE
============================================================
Data access for the decision audit tables.

- upsert_latest: atomic upsert keyed by (subject_id, surface)
- append_history: append-only insert
- list_history: newest-first reads per (subject_id, surface)

============================================================
UPSERT
============================================================
Uses the dialect's native INSERT ... ON CONFLICT DO UPDATE on
PostgreSQL and SQLite. Other dialects fall back to an ORM
merge on the primary key inside the caller's transaction.

============================================================
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storage.models.decisions import TrustDecisionHistory, TrustDecisionLatest
from storage.repositories.base import BaseRepository


_UPSERT_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}

_UPDATABLE_COLUMNS = ("record_id", "record_type", "score", "status", "payload", "created_at")


class DecisionAuditRepository(BaseRepository[TrustDecisionLatest]):
    """
    Repository for the latest-record and history tables.

    ============================================================
    METHODS
    ============================================================
    - upsert_latest: Last writer wins per (subject_id, surface)
    - append_history: Record every write
    - get_latest: Current row for (subject_id, surface)
    - list_history: Prior rows, newest first

    ============================================================
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, TrustDecisionLatest, "DecisionAuditRepository")

    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------

    async def upsert_latest(self, row: Dict[str, Any]) -> None:
        """
        Insert or replace the latest row for (subject_id, surface).

        Args:
            row: Column values including subject_id and surface
        """
        insert_fn = _UPSERT_INSERTS.get(self.dialect_name)
        try:
            if insert_fn is None:
                await self._session.merge(TrustDecisionLatest(**row))
                await self._session.flush()
                return

            stmt = insert_fn(TrustDecisionLatest).values(**row)
            stmt = stmt.on_conflict_do_update(
                index_elements=["subject_id", "surface"],
                set_={column: stmt.excluded[column] for column in _UPDATABLE_COLUMNS},
            )
            await self._session.execute(stmt)
        except SQLAlchemyError as e:
            self._handle_db_error(
                e, "upsert_latest", {"subject_id": row.get("subject_id"), "surface": row.get("surface")}
            )

    async def append_history(self, row: Dict[str, Any]) -> TrustDecisionHistory:
        """Append one history row."""
        entry = TrustDecisionHistory(**row)
        try:
            self._session.add(entry)
            await self._session.flush()
            self._logger.debug(f"Appended history: {entry}")
            return entry
        except SQLAlchemyError as e:
            self._handle_db_error(e, "append_history", {"subject_id": row.get("subject_id")})

    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------

    async def get_latest(self, subject_id: str, surface: str) -> Optional[TrustDecisionLatest]:
        try:
            return await self._session.get(TrustDecisionLatest, (subject_id, surface))
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get_latest", {"subject_id": subject_id})

    async def list_history(
        self,
        subject_id: str,
        surface: str,
        limit: int = 50,
    ) -> List[TrustDecisionHistory]:
        """Prior rows for (subject_id, surface), newest first."""
        stmt = (
            select(TrustDecisionHistory)
            .where(
                TrustDecisionHistory.subject_id == subject_id,
                TrustDecisionHistory.surface == surface,
            )
            .order_by(TrustDecisionHistory.history_id.desc())
            .limit(limit)
        )
        return await self._execute_query(stmt, "list_history")
