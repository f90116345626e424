"""Read-side queries backing the monitoring dashboard."""

import logging
from typing import List, Optional

from vitals_monitor.core.errors import NotFound
from vitals_monitor.core.models import AlertEvent, CurrentState, HistoryEntry
from vitals_monitor.core.repositories import Storage

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 200
DEFAULT_ALERT_LIMIT = 50
MAX_QUERY_LIMIT = 2000


def clamp_limit(limit: Optional[int], default: int, maximum: int = MAX_QUERY_LIMIT) -> int:
    """Clamp a requested limit to [1, maximum]; None means `default`."""
    if limit is None:
        limit = default
    return min(max(limit, 1), maximum)


class QueryService:
    """Read-only access to current states, history and alerts."""

    def __init__(
        self,
        storage: Storage,
        default_history_limit: int = DEFAULT_HISTORY_LIMIT,
        default_alert_limit: int = DEFAULT_ALERT_LIMIT,
        max_limit: int = MAX_QUERY_LIMIT
    ):
        self.storage = storage
        self.default_history_limit = default_history_limit
        self.default_alert_limit = default_alert_limit
        self.max_limit = max_limit

    async def list_current_states(self, only_warnings: bool = False) -> List[CurrentState]:
        """
        Current state of every patient, newest timestamp first.

        Args:
            only_warnings: Keep only WARNING/CRITICAL states and states with
                an active alert

        Returns:
            Ordered current states
        """
        async with self.storage.session() as repos:
            states = await repos.states.list(only_warnings=only_warnings)

        logger.debug(f"Listed {len(states)} current states (only_warnings: {only_warnings})")
        return states

    async def get_current_state(self, patient_id: str) -> CurrentState:
        """
        Current state of one patient.

        Raises:
            NotFound: If no reading was ever accepted for the patient
        """
        async with self.storage.session() as repos:
            state = await repos.states.get(patient_id.strip())

        if state is None:
            raise NotFound()
        return state

    async def list_history(self, patient_id: str, limit: Optional[int] = None) -> List[HistoryEntry]:
        """Past readings, newest first, at most `limit` (clamped to [1, max])."""
        limit = clamp_limit(limit, self.default_history_limit, self.max_limit)

        async with self.storage.session() as repos:
            return await repos.history.list(patient_id.strip(), limit)

    async def list_alerts(self, patient_id: str, limit: Optional[int] = None) -> List[AlertEvent]:
        """Alert events, newest first, at most `limit` (clamped to [1, max])."""
        limit = clamp_limit(limit, self.default_alert_limit, self.max_limit)

        async with self.storage.session() as repos:
            return await repos.alerts.list(patient_id.strip(), limit)
