"""
Audit Store Adapters.

============================================================
PURPOSE
============================================================
Concrete implementations of the engine's Store interface.

- InMemoryStore: process-local, for tests and single-process use
- SqlAlchemyStore: SQLAlchemy 2.0 async ORM

============================================================
SEMANTICS
============================================================
put():
- upserts the latest record per (subject_id, surface),
  last writer wins
- appends the record to the history
- both happen in one transaction (SqlAlchemyStore) or under
  one lock (InMemoryStore)

get_history():
- newest first, at most `limit` records
- may run concurrently with writes

============================================================
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import StorageError
from storage.repositories.decisions import DecisionAuditRepository
from storage.repositories.exceptions import RepositoryException
from storage.serialization import (
    payload_to_record,
    record_id_of,
    record_status_of,
    record_to_payload,
)
from trust_engine.audit import Store, record_score
from trust_engine.types import AuditRecord, DecisionSurface


logger = logging.getLogger(__name__)


AuditKey = Tuple[str, str]


# ============================================================
# IN-MEMORY STORE
# ============================================================


class InMemoryStore(Store):
    """
    Dict-backed store.

    Writes are serialized by an asyncio.Lock; reads take a
    snapshot of the history without locking. Each key keeps
    at most max_history records; the oldest are dropped first.
    """

    def __init__(self, max_history: int = 1000):
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self._max_history = max_history
        self._latest: Dict[AuditKey, AuditRecord] = {}
        self._history: Dict[AuditKey, Deque[AuditRecord]] = {}
        self._lock = asyncio.Lock()

    async def put(self, record: AuditRecord) -> None:
        key = record.audit_key
        async with self._lock:
            self._latest[key] = record
            if key not in self._history:
                self._history[key] = deque(maxlen=self._max_history)
            self._history[key].append(record)

    async def get_history(
        self,
        subject_id: str,
        surface: DecisionSurface,
        limit: int,
    ) -> List[AuditRecord]:
        key = (subject_id, DecisionSurface(surface).value)
        snapshot = list(self._history.get(key, ()))
        snapshot.reverse()
        return snapshot[:limit]

    async def latest(self, subject_id: str, surface: DecisionSurface) -> Optional[AuditRecord]:
        return self._latest.get((subject_id, DecisionSurface(surface).value))

    def __len__(self) -> int:
        return sum(len(records) for records in self._history.values())


# ============================================================
# SQLALCHEMY STORE
# ============================================================


class SqlAlchemyStore(Store):
    """
    Store backed by the trust_decision_latest and
    trust_decision_history tables.

    Does not create tables; call storage.database.create_tables()
    explicitly beforehand.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def put(self, record: AuditRecord) -> None:
        subject_id, surface = record.audit_key
        payload = record_to_payload(record)
        row = {
            "subject_id": subject_id,
            "surface": surface,
            "record_id": record_id_of(record),
            "record_type": payload["record_type"],
            "score": record_score(record),
            "status": record_status_of(record),
            "payload": payload,
            "created_at": getattr(record, "created_at", None),
        }

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    repo = DecisionAuditRepository(session)
                    await repo.upsert_latest(row)
                    await repo.append_history(dict(row))
        except RepositoryException as e:
            raise StorageError(
                f"Failed to persist {payload['record_type']} record: {e.message}",
                operation="put",
                record_key=f"{subject_id}/{surface}",
                cause=e,
            )
        except Exception as e:
            logger.error(f"Unexpected error persisting {subject_id}/{surface}: {e}", exc_info=True)
            raise StorageError(
                f"Failed to persist record: {e}",
                operation="put",
                record_key=f"{subject_id}/{surface}",
                cause=e,
            )

    async def get_history(
        self,
        subject_id: str,
        surface: DecisionSurface,
        limit: int,
    ) -> List[AuditRecord]:
        surface_value = DecisionSurface(surface).value
        try:
            async with self._session_factory() as session:
                rows = await DecisionAuditRepository(session).list_history(
                    subject_id, surface_value, limit
                )
                payloads = [row.payload for row in rows]
        except RepositoryException as e:
            raise StorageError(
                f"Failed to read history: {e.message}",
                operation="get_history",
                record_key=f"{subject_id}/{surface_value}",
                cause=e,
            )
        return [payload_to_record(p) for p in payloads]

    async def latest(self, subject_id: str, surface: DecisionSurface) -> Optional[AuditRecord]:
        surface_value = DecisionSurface(surface).value
        try:
            async with self._session_factory() as session:
                row = await DecisionAuditRepository(session).get_latest(subject_id, surface_value)
                payload = row.payload if row is not None else None
        except RepositoryException as e:
            raise StorageError(
                f"Failed to read latest record: {e.message}",
                operation="latest",
                record_key=f"{subject_id}/{surface_value}",
                cause=e,
            )
        return payload_to_record(payload) if payload is not None else None
