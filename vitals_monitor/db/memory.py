"""In-memory storage, used by tests and by the `memory` backend."""

import itertools
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional

from vitals_monitor.core.models import (
    AlertEvent,
    CurrentState,
    HistoryEntry,
    Patient
)
from vitals_monitor.core.repositories import (
    AlertRepository,
    HistoryRepository,
    PatientRepository,
    Repositories,
    StateRepository,
    Storage
)

logger = logging.getLogger(__name__)


class _Tables:
    """Committed data shared by every repository of one store."""

    def __init__(self):
        self.patients: Dict[str, Patient] = {}
        self.states: Dict[str, CurrentState] = {}
        self.history: Dict[str, List[HistoryEntry]] = defaultdict(list)
        self.alerts: Dict[str, List[AlertEvent]] = defaultdict(list)
        self.ids = itertools.count(1)


class _Writer:
    """Applies writes immediately, or stages them until commit."""

    def __init__(self, staged: Optional[List[Callable[[], None]]] = None):
        self.staged = staged

    def write(self, operation: Callable[[], None]) -> None:
        if self.staged is None:
            operation()
        else:
            self.staged.append(operation)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryPatientRepository(PatientRepository):

    def __init__(self, tables: _Tables, writer: _Writer):
        self.tables = tables
        self.writer = writer

    async def upsert(self, patient_id: str, name: str, device_id: Optional[str] = None) -> None:
        def apply():
            now = _now()
            existing = self.tables.patients.get(patient_id)
            if existing is None:
                self.tables.patients[patient_id] = Patient(
                    patient_id=patient_id,
                    name=name,
                    device_id=device_id,
                    created_at=now,
                    updated_at=now
                )
            else:
                self.tables.patients[patient_id] = existing.model_copy(update={
                    "name": name,
                    "device_id": device_id or existing.device_id,
                    "updated_at": now
                })

        self.writer.write(apply)

    async def get(self, patient_id: str) -> Optional[Patient]:
        return self.tables.patients.get(patient_id)


class InMemoryStateRepository(StateRepository):

    def __init__(self, tables: _Tables, writer: _Writer):
        self.tables = tables
        self.writer = writer

    async def upsert(self, state: CurrentState) -> None:
        record = state.model_copy(deep=True)

        def apply():
            self.tables.states[record.patient_id] = record

        self.writer.write(apply)

    async def get(self, patient_id: str) -> Optional[CurrentState]:
        return self.tables.states.get(patient_id)

    async def list(self, only_warnings: bool = False) -> List[CurrentState]:
        states = list(self.tables.states.values())
        if only_warnings:
            states = [s for s in states if s.final_severity.is_urgent or s.alert_active]
        return sorted(states, key=lambda s: s.timestamp, reverse=True)


class InMemoryHistoryRepository(HistoryRepository):

    def __init__(self, tables: _Tables, writer: _Writer):
        self.tables = tables
        self.writer = writer

    async def append(self, entry: HistoryEntry) -> None:
        def apply():
            stored = entry.model_copy(deep=True, update={
                "id": next(self.tables.ids),
                "created_at": _now()
            })
            self.tables.history[entry.patient_id].append(stored)

        self.writer.write(apply)

    async def list(self, patient_id: str, limit: int) -> List[HistoryEntry]:
        entries = sorted(
            self.tables.history.get(patient_id, []),
            key=lambda e: (e.timestamp, e.id),
            reverse=True
        )
        return entries[:limit]


class InMemoryAlertRepository(AlertRepository):

    def __init__(self, tables: _Tables, writer: _Writer):
        self.tables = tables
        self.writer = writer

    async def append(self, event: AlertEvent) -> None:
        def apply():
            stored = event.model_copy(update={
                "id": next(self.tables.ids),
                "created_at": _now()
            })
            self.tables.alerts[event.patient_id].append(stored)

        self.writer.write(apply)

    async def list(self, patient_id: str, limit: int) -> List[AlertEvent]:
        events = sorted(
            self.tables.alerts.get(patient_id, []),
            key=lambda e: (e.timestamp, e.id),
            reverse=True
        )
        return events[:limit]


class InMemoryStorage(Storage):
    """
    Process-local store with all-or-nothing units.

    Writes made inside `transaction()` are staged and applied in one step only
    when the block exits without raising. Nothing survives a restart.
    """

    patient_repository_class = InMemoryPatientRepository
    state_repository_class = InMemoryStateRepository
    history_repository_class = InMemoryHistoryRepository
    alert_repository_class = InMemoryAlertRepository

    def __init__(self):
        self.tables = _Tables()
        logger.info("In-memory storage initialized")

    def _repositories(self, writer: _Writer) -> Repositories:
        return Repositories(
            patients=self.patient_repository_class(self.tables, writer),
            states=self.state_repository_class(self.tables, writer),
            history=self.history_repository_class(self.tables, writer),
            alerts=self.alert_repository_class(self.tables, writer)
        )

    @asynccontextmanager
    async def transaction(self, patient_id: str) -> AsyncIterator[Repositories]:
        staged: List[Callable[[], None]] = []
        yield self._repositories(_Writer(staged))

        # Applied without yielding to the loop, so readers never see half a unit
        for operation in staged:
            operation()
        logger.debug(f"Committed {len(staged)} writes for patient {patient_id}")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Repositories]:
        yield self._repositories(_Writer())
