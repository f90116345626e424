"""Repository interfaces injected into ingestion and queries."""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import List, Optional

from vitals_monitor.core.models import (
    AlertEvent,
    CurrentState,
    HistoryEntry,
    Patient
)


class PatientRepository(ABC):
    """Registry of monitored patients."""

    @abstractmethod
    async def upsert(self, patient_id: str, name: str, device_id: Optional[str] = None) -> None:
        """Create the patient, or refresh its name (and device binding when given)."""

    @abstractmethod
    async def get(self, patient_id: str) -> Optional[Patient]:
        ...


class StateRepository(ABC):
    """One current state per patient, replaced wholesale."""

    @abstractmethod
    async def upsert(self, state: CurrentState) -> None:
        """Write the whole record; fields absent from `state` are cleared."""

    @abstractmethod
    async def get(self, patient_id: str) -> Optional[CurrentState]:
        ...

    @abstractmethod
    async def list(self, only_warnings: bool = False) -> List[CurrentState]:
        """All states, newest timestamp first."""


class HistoryRepository(ABC):
    """Append-only reading history."""

    @abstractmethod
    async def append(self, entry: HistoryEntry) -> None:
        ...

    @abstractmethod
    async def list(self, patient_id: str, limit: int) -> List[HistoryEntry]:
        """Up to `limit` entries, newest timestamp first."""


class AlertRepository(ABC):
    """Append-only alert ledger. Never deduplicates."""

    @abstractmethod
    async def append(self, event: AlertEvent) -> None:
        ...

    @abstractmethod
    async def list(self, patient_id: str, limit: int) -> List[AlertEvent]:
        """Up to `limit` events, newest timestamp first."""


@dataclass
class Repositories:
    """Repositories bound to one unit of work."""

    patients: PatientRepository
    states: StateRepository
    history: HistoryRepository
    alerts: AlertRepository


class Storage(ABC):
    """Hands out repositories bound to a transaction or a read session."""

    @abstractmethod
    def transaction(self, patient_id: str) -> AbstractAsyncContextManager[Repositories]:
        """
        Open a unit of work for one patient.

        Writes made through the yielded repositories land together when the
        block exits cleanly and not at all when it raises. Units for the same
        patient do not interleave.
        """

    @abstractmethod
    def session(self) -> AbstractAsyncContextManager[Repositories]:
        """Open read access to committed data."""

    async def close(self) -> None:
        """Release any resources held by the store."""
