"""
Trust Engine - Audit Recorder.

============================================================
PURPOSE
============================================================
Persists every decision through an injected Store and reads
prior decisions back for history and trend analysis.

============================================================
FAILURE POLICY
============================================================
- Every store call is bounded by asyncio.wait_for
- Timeouts raise StorageTimeoutError
- Adapter errors surface as StorageError
- The caller's decision is already computed; a storage
  failure never changes it

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Union

from core.exceptions import StorageError, StorageTimeoutError

from .config import StorageConfig
from .types import (
    AuditRecord,
    CrisisEvent,
    DecisionRecord,
    DecisionSurface,
    TrendSummary,
    VerificationResult,
)


logger = logging.getLogger(__name__)


# Latest score must differ from the prior mean by more than this to count as a move
TREND_TOLERANCE = 0.05


# ============================================================
# STORE INTERFACE
# ============================================================


class Store(ABC):
    """
    Durable audit storage.

    put() is an upsert of the latest record per
    (subject_id, surface) plus an append to the history.
    get_history() returns records newest first.
    """

    @abstractmethod
    async def put(self, record: AuditRecord) -> None:
        """Persist a record. Raises StorageError on failure."""
        pass

    @abstractmethod
    async def get_history(
        self,
        subject_id: str,
        surface: DecisionSurface,
        limit: int,
    ) -> List[AuditRecord]:
        pass


# ============================================================
# RECORDER
# ============================================================


def record_score(record: AuditRecord) -> float:
    """Normalized [0, 1] score of any audit record."""
    if isinstance(record, DecisionRecord):
        return record.score
    if isinstance(record, VerificationResult):
        return record.aggregate_score
    if isinstance(record, CrisisEvent):
        return min(1.0, record.escalation_level / 4)
    raise TypeError(f"Not an audit record: {type(record).__name__}")


class AuditRecorder:
    """Timeout-bounded front for a Store."""

    def __init__(self, store: Store, config: Optional[StorageConfig] = None):
        self._store = store
        self._config = config or StorageConfig()

    @property
    def store(self) -> Store:
        return self._store

    async def record(self, record: AuditRecord) -> None:
        """
        Persist one record.

        Raises:
            StorageTimeoutError: store did not answer in time
            StorageError: store failed
        """
        key = "/".join(record.audit_key)
        timeout = self._config.store_timeout_seconds
        try:
            await asyncio.wait_for(self._store.put(record), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Audit write timed out after {timeout}s: {key}")
            raise StorageTimeoutError("put", timeout, record_key=key)
        except StorageError:
            logger.warning(f"Audit write failed: {key}")
            raise
        except Exception as e:
            logger.error(f"Audit store raised unexpectedly for {key}: {e}", exc_info=True)
            raise StorageError(
                f"Store put failed: {e}", operation="put", record_key=key, cause=e
            )

        logger.debug(f"Audit record stored: {key}")

    async def history(
        self,
        subject_id: str,
        surface: Union[DecisionSurface, str],
        limit: Optional[int] = None,
    ) -> List[AuditRecord]:
        """Prior records for a subject on one surface, newest first."""
        surface = DecisionSurface(surface)
        key = f"{subject_id}/{surface.value}"
        timeout = self._config.store_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._store.get_history(subject_id, surface, limit or self._config.history_limit),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Audit read timed out after {timeout}s: {key}")
            raise StorageTimeoutError("get_history", timeout, record_key=key)
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"Audit store read raised unexpectedly for {key}: {e}", exc_info=True)
            raise StorageError(
                f"Store get_history failed: {e}",
                operation="get_history",
                record_key=key,
                cause=e,
            )

    async def trend(
        self,
        subject_id: str,
        surface: Union[DecisionSurface, str],
        limit: Optional[int] = None,
    ) -> TrendSummary:
        """
        Summarize prior scores for a subject.

        direction compares the latest score to the mean of the
        earlier ones: rising, falling or stable. Fewer than two
        records give insufficient_data.
        """
        surface = DecisionSurface(surface)
        records = await self.history(subject_id, surface, limit)
        return summarize(subject_id, surface, records)


def summarize(
    subject_id: str,
    surface: DecisionSurface,
    records: List[AuditRecord],
) -> TrendSummary:
    """Build a TrendSummary from records ordered newest first."""
    if not records:
        return TrendSummary(subject_id=subject_id, surface=surface, count=0)

    scores = [record_score(r) for r in records]
    latest = scores[0]
    mean = round(sum(scores) / len(scores), 6)

    if len(scores) < 2:
        direction = "insufficient_data"
    else:
        earlier = scores[1:]
        delta = latest - sum(earlier) / len(earlier)
        if delta > TREND_TOLERANCE:
            direction = "rising"
        elif delta < -TREND_TOLERANCE:
            direction = "falling"
        else:
            direction = "stable"

    return TrendSummary(
        subject_id=subject_id,
        surface=surface,
        count=len(scores),
        mean_score=mean,
        latest_score=latest,
        direction=direction,
    )
