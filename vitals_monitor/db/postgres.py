"""PostgreSQL repositories built on asyncpg."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Mapping, Optional

import asyncpg

from vitals_monitor.core.errors import StorageFailure
from vitals_monitor.core.models import (
    AlertEvent,
    CurrentState,
    HistoryEntry,
    Patient,
    Severity,
    SeverityReport,
    Vitals
)
from vitals_monitor.core.repositories import (
    AlertRepository,
    HistoryRepository,
    PatientRepository,
    Repositories,
    StateRepository,
    Storage
)
from vitals_monitor.db.pool import DatabasePool

logger = logging.getLogger(__name__)

# Driver, network and statement-timeout errors; all surface as StorageFailure
STORAGE_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError
)

STATE_COLUMNS = """
    patient_id, patient_name, heart_rate, spo2, temperature, fall_detected,
    heart_rate_severity, spo2_severity, temperature_severity,
    fall_motion_severity, final_severity, alert_active, message, timestamp
"""


def _vitals_from_row(row: Mapping[str, Any]) -> Vitals:
    return Vitals(
        heart_rate=row["heart_rate"],
        spo2=row["spo2"],
        temperature=row["temperature"],
        fall_detected=row["fall_detected"]
    )


def patient_from_row(row: Mapping[str, Any]) -> Patient:
    return Patient(
        patient_id=row["patient_id"],
        name=row["name"],
        device_id=row["device_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"]
    )


def state_from_row(row: Mapping[str, Any]) -> CurrentState:
    return CurrentState(
        patient_id=row["patient_id"],
        patient_name=row["patient_name"],
        vitals=_vitals_from_row(row),
        severity_report=SeverityReport(
            heart_rate=Severity(row["heart_rate_severity"]),
            spo2=Severity(row["spo2_severity"]),
            temperature=Severity(row["temperature_severity"]),
            fall_motion=Severity(row["fall_motion_severity"])
        ),
        final_severity=Severity(row["final_severity"]),
        alert_active=row["alert_active"],
        message=row["message"],
        timestamp=row["timestamp"]
    )


def history_from_row(row: Mapping[str, Any]) -> HistoryEntry:
    return HistoryEntry(
        id=row["id"],
        patient_id=row["patient_id"],
        vitals=_vitals_from_row(row),
        final_severity=Severity(row["final_severity"]),
        timestamp=row["timestamp"],
        created_at=row["created_at"]
    )


def alert_from_row(row: Mapping[str, Any]) -> AlertEvent:
    return AlertEvent(
        id=row["id"],
        patient_id=row["patient_id"],
        severity=Severity(row["severity"]),
        message=row["message"],
        timestamp=row["timestamp"],
        created_at=row["created_at"]
    )


class PostgresPatientRepository(PatientRepository):

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def upsert(self, patient_id: str, name: str, device_id: Optional[str] = None) -> None:
        await self.conn.execute(
            """
            INSERT INTO patients (patient_id, name, device_id, created_at, updated_at)
            VALUES ($1, $2, $3, NOW(), NOW())
            ON CONFLICT (patient_id) DO UPDATE
            SET name = EXCLUDED.name,
                device_id = COALESCE(EXCLUDED.device_id, patients.device_id),
                updated_at = NOW()
            """,
            patient_id,
            name,
            device_id
        )

    async def get(self, patient_id: str) -> Optional[Patient]:
        row = await self.conn.fetchrow(
            """
            SELECT patient_id, name, device_id, created_at, updated_at
            FROM patients
            WHERE patient_id = $1
            """,
            patient_id
        )
        return patient_from_row(row) if row else None


class PostgresStateRepository(StateRepository):

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def upsert(self, state: CurrentState) -> None:
        # Every column is overwritten; absent channels become NULL
        await self.conn.execute(
            f"""
            INSERT INTO current_states ({STATE_COLUMNS}, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, NOW())
            ON CONFLICT (patient_id) DO UPDATE
            SET patient_name = EXCLUDED.patient_name,
                heart_rate = EXCLUDED.heart_rate,
                spo2 = EXCLUDED.spo2,
                temperature = EXCLUDED.temperature,
                fall_detected = EXCLUDED.fall_detected,
                heart_rate_severity = EXCLUDED.heart_rate_severity,
                spo2_severity = EXCLUDED.spo2_severity,
                temperature_severity = EXCLUDED.temperature_severity,
                fall_motion_severity = EXCLUDED.fall_motion_severity,
                final_severity = EXCLUDED.final_severity,
                alert_active = EXCLUDED.alert_active,
                message = EXCLUDED.message,
                timestamp = EXCLUDED.timestamp,
                updated_at = NOW()
            """,
            state.patient_id,
            state.patient_name,
            state.vitals.heart_rate,
            state.vitals.spo2,
            state.vitals.temperature,
            state.vitals.fall_detected,
            state.severity_report.heart_rate.value,
            state.severity_report.spo2.value,
            state.severity_report.temperature.value,
            state.severity_report.fall_motion.value,
            state.final_severity.value,
            state.alert_active,
            state.message,
            state.timestamp
        )

    async def get(self, patient_id: str) -> Optional[CurrentState]:
        row = await self.conn.fetchrow(
            f"SELECT {STATE_COLUMNS} FROM current_states WHERE patient_id = $1",
            patient_id
        )
        return state_from_row(row) if row else None

    async def list(self, only_warnings: bool = False) -> List[CurrentState]:
        rows = await self.conn.fetch(
            f"""
            SELECT {STATE_COLUMNS}
            FROM current_states
            WHERE NOT $1::boolean
               OR final_severity IN ('WARNING', 'CRITICAL')
               OR alert_active
            ORDER BY timestamp DESC
            """,
            only_warnings
        )
        return [state_from_row(row) for row in rows]


class PostgresHistoryRepository(HistoryRepository):

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def append(self, entry: HistoryEntry) -> None:
        await self.conn.execute(
            """
            INSERT INTO reading_history
            (patient_id, heart_rate, spo2, temperature, fall_detected,
             final_severity, timestamp, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, NOW())
            """,
            entry.patient_id,
            entry.vitals.heart_rate,
            entry.vitals.spo2,
            entry.vitals.temperature,
            entry.vitals.fall_detected,
            entry.final_severity.value,
            entry.timestamp
        )

    async def list(self, patient_id: str, limit: int) -> List[HistoryEntry]:
        rows = await self.conn.fetch(
            """
            SELECT id, patient_id, heart_rate, spo2, temperature, fall_detected,
                   final_severity, timestamp, created_at
            FROM reading_history
            WHERE patient_id = $1
            ORDER BY timestamp DESC, id DESC
            LIMIT $2
            """,
            patient_id,
            limit
        )
        return [history_from_row(row) for row in rows]


class PostgresAlertRepository(AlertRepository):

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def append(self, event: AlertEvent) -> None:
        await self.conn.execute(
            """
            INSERT INTO alerts (patient_id, severity, message, timestamp, created_at)
            VALUES ($1, $2, $3, $4, NOW())
            """,
            event.patient_id,
            event.severity.value,
            event.message,
            event.timestamp
        )

    async def list(self, patient_id: str, limit: int) -> List[AlertEvent]:
        rows = await self.conn.fetch(
            """
            SELECT id, patient_id, severity, message, timestamp, created_at
            FROM alerts
            WHERE patient_id = $1
            ORDER BY timestamp DESC, id DESC
            LIMIT $2
            """,
            patient_id,
            limit
        )
        return [alert_from_row(row) for row in rows]


def _repositories(conn: asyncpg.Connection) -> Repositories:
    return Repositories(
        patients=PostgresPatientRepository(conn),
        states=PostgresStateRepository(conn),
        history=PostgresHistoryRepository(conn),
        alerts=PostgresAlertRepository(conn)
    )


class PostgresStorage(Storage):
    """Repositories over a shared asyncpg pool."""

    def __init__(self, db_pool: DatabasePool):
        """
        Initialize PostgreSQL storage.

        Args:
            db_pool: Database connection pool
        """
        self.db_pool = db_pool

    @asynccontextmanager
    async def transaction(self, patient_id: str) -> AsyncIterator[Repositories]:
        """
        One database transaction per unit.

        A transaction-scoped advisory lock on the patient id serializes
        concurrent units for the same patient; it is released on commit or
        rollback. The last unit to acquire it wins.
        """
        try:
            async with self.db_pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        "SELECT pg_advisory_xact_lock(hashtext($1))",
                        patient_id
                    )
                    yield _repositories(conn)
        except STORAGE_ERRORS as e:
            logger.error(f"Transaction failed for patient {patient_id}: {e}")
            raise StorageFailure(f"Storage unavailable: {e}") from e

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Repositories]:
        try:
            async with self.db_pool.acquire() as conn:
                yield _repositories(conn)
        except STORAGE_ERRORS as e:
            logger.error(f"Read session failed: {e}")
            raise StorageFailure(f"Storage unavailable: {e}") from e

    async def close(self) -> None:
        await self.db_pool.close()
