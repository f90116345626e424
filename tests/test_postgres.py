"""Tests for the PostgreSQL storage."""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from vitals_monitor.core.errors import StorageFailure
from vitals_monitor.core.ingestion import IngestionGateway
from vitals_monitor.core.models import CurrentState, Principal, Severity, Vitals
from vitals_monitor.core.queries import QueryService
from vitals_monitor.db.pool import DatabasePool, apply_schema
from vitals_monitor.db.postgres import (
    PostgresStorage,
    alert_from_row,
    history_from_row,
    state_from_row
)

READING_TIME = datetime(2025, 3, 1, 8, 30, tzinfo=timezone.utc)


class FakePool:
    """Stands in for DatabasePool, handing out one mocked connection."""

    def __init__(self, conn=None, error: Exception = None):
        self.conn = conn
        self.error = error
        self.close = AsyncMock()

    @asynccontextmanager
    async def acquire(self):
        if self.error:
            raise self.error
        yield self.conn


def mock_connection() -> MagicMock:
    conn = MagicMock()
    conn.execute = AsyncMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    return conn


def test_state_from_row():
    row = {
        "patient_id": "P1",
        "patient_name": "Jane",
        "heart_rate": 88.0,
        "spo2": None,
        "temperature": 37.9,
        "fall_detected": None,
        "heart_rate_severity": "WARNING",
        "spo2_severity": "INFO",
        "temperature_severity": "WARNING",
        "fall_motion_severity": "NORMAL",
        "final_severity": "WARNING",
        "alert_active": False,
        "message": "",
        "timestamp": READING_TIME,
    }

    state = state_from_row(row)

    assert state.vitals.heart_rate == 88.0
    assert state.vitals.spo2 is None
    assert state.severity_report.fall_motion == Severity.NORMAL
    assert state.final_severity == Severity.WARNING
    assert state.timestamp == READING_TIME


def test_history_and_alert_from_row():
    entry = history_from_row({
        "id": 7,
        "patient_id": "P1",
        "heart_rate": None,
        "spo2": 93.0,
        "temperature": None,
        "fall_detected": True,
        "final_severity": "CRITICAL",
        "timestamp": READING_TIME,
        "created_at": READING_TIME,
    })
    alert = alert_from_row({
        "id": 8,
        "patient_id": "P1",
        "severity": "CRITICAL",
        "message": "Fall detected",
        "timestamp": READING_TIME,
        "created_at": READING_TIME,
    })

    assert entry.id == 7
    assert entry.vitals.fall_detected is True
    assert alert.severity == Severity.CRITICAL
    assert alert.message == "Fall detected"


@pytest.mark.asyncio
async def test_transaction_locks_patient_before_writing():
    conn = mock_connection()
    storage = PostgresStorage(FakePool(conn))
    state = CurrentState(
        patient_id="P1",
        patient_name="Jane",
        vitals=Vitals(spo2=91),
        final_severity=Severity.INFO,
        timestamp=READING_TIME
    )

    async with storage.transaction("P1") as repos:
        await repos.states.upsert(state)

    conn.transaction.assert_called_once()
    lock_call, upsert_call = conn.execute.await_args_list
    assert "pg_advisory_xact_lock" in lock_call.args[0]
    assert lock_call.args[1] == "P1"

    sql, *params = upsert_call.args
    assert "ON CONFLICT (patient_id) DO UPDATE" in sql
    # Absent channels are written as NULL, not skipped
    assert params[2:6] == [None, 91.0, None, None]
    assert params[10] == "INFO"


@pytest.mark.asyncio
async def test_unreachable_database_is_a_storage_failure():
    storage = PostgresStorage(FakePool(error=ConnectionRefusedError("connection refused")))

    with pytest.raises(StorageFailure):
        async with storage.session() as repos:
            await repos.states.list()

    with pytest.raises(StorageFailure):
        async with storage.transaction("P1"):
            pass


@pytest.mark.asyncio
async def test_statement_timeout_is_a_storage_failure():
    conn = mock_connection()
    conn.fetch = AsyncMock(side_effect=TimeoutError())
    service = QueryService(PostgresStorage(FakePool(conn)))

    with pytest.raises(StorageFailure) as exc_info:
        await service.list_history("P1")

    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_close_releases_pool():
    pool = FakePool(mock_connection())

    await PostgresStorage(pool).close()

    pool.close.assert_awaited_once()


TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")


@pytest.fixture
async def postgres_storage():
    """Real PostgreSQL storage; tables are emptied after each test."""
    db_pool = DatabasePool(TEST_DATABASE_URL)
    await db_pool.initialize()
    await apply_schema(db_pool)

    yield PostgresStorage(db_pool)

    async with db_pool.acquire() as conn:
        await conn.execute(
            "TRUNCATE patients, current_states, reading_history, alerts RESTART IDENTITY"
        )
    await db_pool.close()


@pytest.mark.skipif(TEST_DATABASE_URL is None, reason="TEST_DATABASE_URL not set")
@pytest.mark.asyncio
async def test_full_workflow_against_postgres(postgres_storage):
    """Ingest twice, then read state, history and alerts back."""
    gateway = IngestionGateway(postgres_storage)
    service = QueryService(postgres_storage)
    device = Principal(subject="device", can_ingest=True)

    await gateway.ingest({
        "patientId": "P1",
        "patientName": "Jane",
        "deviceId": "wrist-7",
        "vitals": {"heartRate": 180, "spo2": 97},
        "finalSeverity": "CRITICAL",
        "alertActive": True,
        "message": "Tachycardia",
        "timestamp": "2025-03-01T08:30:00Z"
    }, device)
    await gateway.ingest({
        "patientId": "P1",
        "patientName": "Jane",
        "vitals": {"heartRate": 90},
        "finalSeverity": "NORMAL",
        "timestamp": "2025-03-01T08:35:00Z"
    }, device)

    latest = await service.get_current_state("P1")
    assert latest.vitals.heart_rate == 90
    assert latest.vitals.spo2 is None
    assert latest.final_severity == Severity.NORMAL

    history = await service.list_history("P1", limit=5)
    assert [h.vitals.heart_rate for h in history] == [90, 180]

    alerts = await service.list_alerts("P1")
    assert len(alerts) == 1
    assert alerts[0].severity == Severity.CRITICAL

    warnings = await service.list_current_states(only_warnings=True)
    assert warnings == []

    async with postgres_storage.session() as repos:
        patient = await repos.patients.get("P1")
    assert patient.device_id == "wrist-7"
