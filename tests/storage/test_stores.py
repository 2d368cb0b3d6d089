"""
Tests for the audit store adapters.

============================================================
PURPOSE
============================================================
Both stores must agree on:
- last writer wins for the latest record
- history is append-only and newest first
- records come back equal to what was written

============================================================
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select

from core.exceptions import ConfigurationError, StorageError
from storage.database import (
    create_engine,
    create_session_factory,
    create_tables,
    drop_tables,
    get_database_url,
)
from storage.models import TrustDecisionHistory, TrustDecisionLatest
from storage.serialization import payload_to_record, record_to_payload
from storage.stores import InMemoryStore, SqlAlchemyStore
from trust_engine.config import StorageConfig
from trust_engine.types import (
    Action,
    ActionStatus,
    Check,
    CrisisEvent,
    CrisisStatus,
    DecisionRecord,
    DecisionSurface,
    PolicyAction,
    VerificationResult,
    VerificationStatus,
)


CREATED_AT = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def decision(record_id: str, score: float, subject_id: str = "user-1") -> DecisionRecord:
    return DecisionRecord(
        record_id=record_id,
        subject_id=subject_id,
        surface=DecisionSurface.FRAUD,
        score=score,
        indicators=frozenset({"device_anomaly"}),
        action=PolicyAction.FLAG_FOR_REVIEW,
        created_at=CREATED_AT,
        recommendations=("Verify user location",),
    )


VERIFICATION = VerificationResult(
    subject_id="player-1",
    claimed_title="IM",
    checks=(
        Check(name="title_verification", score=1.0, passed=True, detail="Title verified"),
        Check(name="rating_verification", score=0.5, passed=False, detail="Rating below minimum"),
    ),
    aggregate_score=0.75,
    status=VerificationStatus.PENDING,
    next_steps=("Improve rating_verification: Rating below minimum",),
)

CRISIS = CrisisEvent(
    event_id="evt-1",
    event_type="data_leak",
    severity="high",
    description="export bucket public",
    affected_systems=("s3",),
    actions=(
        Action(
            kind="contain_data_breach",
            target="evt-1",
            executed_at=CREATED_AT,
            outcome=ActionStatus.SUCCESS,
        ),
        Action(
            kind="notify_legal_team",
            target="evt-1",
            executed_at=CREATED_AT,
            outcome=ActionStatus.TIMEOUT,
        ),
        Action(kind="prepare_public_statement", target="evt-1"),
    ),
    escalation_level=3,
    status=CrisisStatus.ACTIVE,
    created_at=CREATED_AT,
)


class TestStoreContract:
    """Behavior shared by every Store implementation."""

    @pytest.mark.asyncio
    async def test_history_newest_first(self, any_store):
        for i, score in enumerate([0.1, 0.5, 0.9]):
            await any_store.put(decision(f"rec-{i}", score))

        history = await any_store.get_history("user-1", DecisionSurface.FRAUD, 10)

        assert [r.record_id for r in history] == ["rec-2", "rec-1", "rec-0"]

    @pytest.mark.asyncio
    async def test_history_limit(self, any_store):
        for i in range(5):
            await any_store.put(decision(f"rec-{i}", 0.1 * i))

        history = await any_store.get_history("user-1", DecisionSurface.FRAUD, 2)

        assert [r.record_id for r in history] == ["rec-4", "rec-3"]

    @pytest.mark.asyncio
    async def test_last_writer_wins(self, any_store):
        await any_store.put(decision("rec-a", 0.2))
        await any_store.put(decision("rec-b", 0.7))

        latest = await any_store.latest("user-1", DecisionSurface.FRAUD)

        assert latest.record_id == "rec-b"

    @pytest.mark.asyncio
    async def test_subjects_and_surfaces_are_separate(self, any_store):
        await any_store.put(decision("rec-a", 0.2, subject_id="user-1"))
        await any_store.put(decision("rec-b", 0.3, subject_id="user-2"))

        assert len(await any_store.get_history("user-1", DecisionSurface.FRAUD, 10)) == 1
        assert await any_store.get_history("user-1", DecisionSurface.BEHAVIOR, 10) == []
        assert await any_store.latest("user-3", DecisionSurface.FRAUD) is None

    @pytest.mark.asyncio
    async def test_records_come_back_equal(self, any_store):
        record = decision("rec-a", 0.45)

        await any_store.put(record)
        await any_store.put(VERIFICATION)
        await any_store.put(CRISIS)

        assert await any_store.latest("user-1", DecisionSurface.FRAUD) == record
        assert await any_store.latest("player-1", DecisionSurface.VERIFICATION) == VERIFICATION
        assert await any_store.latest("data_leak", DecisionSurface.CRISIS) == CRISIS

    @pytest.mark.asyncio
    async def test_failed_action_outcome_survives(self, any_store):
        await any_store.put(CRISIS)

        stored = await any_store.latest("data_leak", DecisionSurface.CRISIS)

        assert [a.kind for a in stored.failed_actions] == ["notify_legal_team"]
        assert stored.actions[1].executed_at == CREATED_AT
        assert stored.actions[2].outcome is None

    @pytest.mark.asyncio
    async def test_resolution_appends_history(self, any_store):
        record = decision("rec-a", 0.45)
        await any_store.put(record)
        await any_store.put(record.resolve(CREATED_AT))

        history = await any_store.get_history("user-1", DecisionSurface.FRAUD, 10)

        assert [r.is_resolved for r in history] == [True, False]


class TestInMemoryStore:
    """Tests for the in-process store."""

    @pytest.mark.asyncio
    async def test_history_is_bounded_per_key(self):
        store = InMemoryStore(max_history=3)
        for i in range(5):
            await store.put(decision(f"rec-{i}", 0.1))
        await store.put(decision("other", 0.1, subject_id="user-2"))

        history = await store.get_history("user-1", DecisionSurface.FRAUD, 10)

        assert [r.record_id for r in history] == ["rec-4", "rec-3", "rec-2"]
        assert (await store.latest("user-1", DecisionSurface.FRAUD)).record_id == "rec-4"
        assert len(store) == 4

    def test_rejects_empty_bound(self):
        with pytest.raises(ValueError):
            InMemoryStore(max_history=0)


@pytest_asyncio.fixture
async def sqlite_engine():
    db_engine = create_engine(url="sqlite+aiosqlite:///:memory:")
    await create_tables(db_engine)
    try:
        yield db_engine
    finally:
        await db_engine.dispose()


class TestSqlAlchemyStore:
    """Tests for the SQLAlchemy-backed rows."""

    @pytest.mark.asyncio
    async def test_crisis_score_column_is_normalized(self, sqlite_engine):
        session_factory = create_session_factory(sqlite_engine)
        await SqlAlchemyStore(session_factory).put(CRISIS)

        async with session_factory() as session:
            latest = (await session.execute(select(TrustDecisionLatest))).scalar_one()
            history = (await session.execute(select(TrustDecisionHistory))).scalar_one()

        assert latest.score == 0.75
        assert history.score == 0.75
        assert latest.status == "active"

    @pytest.mark.asyncio
    async def test_drop_tables(self, sqlite_engine):
        store = SqlAlchemyStore(create_session_factory(sqlite_engine))
        await store.put(CRISIS)

        await drop_tables(sqlite_engine)

        with pytest.raises(StorageError):
            await store.put(CRISIS)


class TestSerialization:
    """Tests for payload conversion edge cases."""

    def test_unknown_record_type(self):
        with pytest.raises(StorageError):
            payload_to_record({"record_type": "horoscope"})

    def test_corrupt_payload(self):
        payload = record_to_payload(CRISIS)
        del payload["escalation_level"]

        with pytest.raises(StorageError):
            payload_to_record(payload)

    def test_indicators_are_sorted(self):
        record = DecisionRecord(
            record_id="r",
            subject_id="u",
            surface=DecisionSurface.FRAUD,
            score=0.5,
            indicators=frozenset({"geographic_anomaly", "device_anomaly"}),
            action=PolicyAction.FLAG_FOR_REVIEW,
            created_at=CREATED_AT,
        )

        assert record_to_payload(record)["indicators"] == ["device_anomaly", "geographic_anomaly"]


class TestDatabaseUrl:
    """Tests for database URL resolution."""

    def test_config_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://env/trust")

        url = get_database_url(StorageConfig(database_url="sqlite+aiosqlite:///trust.db"))

        assert url == "sqlite+aiosqlite:///trust.db"

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://env/trust")

        assert get_database_url() == "postgresql+asyncpg://env/trust"

    def test_missing_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(ConfigurationError):
            get_database_url(StorageConfig())
