"""Alert-worthiness policy for accepted readings."""

from typing import Optional

from vitals_monitor.core.models import AlertEvent, CurrentState, Severity

DEFAULT_ALERT_MESSAGE = "Alert"


def is_alert_worthy(state: CurrentState) -> bool:
    """An explicit flag, an urgent severity, or any message raises an alert."""
    return state.alert_active or state.final_severity.is_urgent or bool(state.message)


def alert_severity(state: CurrentState) -> Severity:
    """
    Severity stored on the alert.

    An explicit alert flag on a NORMAL reading is escalated to CRITICAL so an
    operator-declared emergency is never recorded as all clear.
    """
    if state.alert_active and state.final_severity == Severity.NORMAL:
        return Severity.CRITICAL
    return state.final_severity


def derive_alert(state: CurrentState) -> Optional[AlertEvent]:
    """
    Build the alert event for a reading, if it warrants one.

    Events are never coalesced: every qualifying reading yields a new one.

    Args:
        state: Normalized current state produced by the reading

    Returns:
        AlertEvent, or None when the reading is not alert-worthy
    """
    if not is_alert_worthy(state):
        return None

    return AlertEvent(
        patient_id=state.patient_id,
        severity=alert_severity(state),
        message=state.message or DEFAULT_ALERT_MESSAGE,
        timestamp=state.timestamp
    )
