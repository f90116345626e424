"""Tests for the alert-worthiness policy."""

from datetime import datetime, timezone

from vitals_monitor.core.alerts import derive_alert, is_alert_worthy
from vitals_monitor.core.models import CurrentState, Severity

READING_TIME = datetime(2025, 3, 1, 8, 30, tzinfo=timezone.utc)


def make_state(final_severity=Severity.NORMAL, alert_active=False, message="") -> CurrentState:
    return CurrentState(
        patient_id="P1",
        patient_name="Jane",
        final_severity=final_severity,
        alert_active=alert_active,
        message=message,
        timestamp=READING_TIME
    )


def test_quiet_reading_raises_nothing():
    assert derive_alert(make_state()) is None
    assert derive_alert(make_state(final_severity=Severity.INFO)) is None


def test_warning_without_message_uses_default_text():
    alert = derive_alert(make_state(final_severity=Severity.WARNING))

    assert alert is not None
    assert alert.severity == Severity.WARNING
    assert alert.message == "Alert"
    assert alert.timestamp == READING_TIME
    assert alert.patient_id == "P1"


def test_explicit_flag_on_normal_reading_escalates_to_critical():
    alert = derive_alert(make_state(final_severity=Severity.NORMAL, alert_active=True))

    assert alert.severity == Severity.CRITICAL


def test_explicit_flag_keeps_non_normal_severity():
    alert = derive_alert(make_state(final_severity=Severity.INFO, alert_active=True))

    assert alert.severity == Severity.INFO


def test_message_alone_is_alert_worthy():
    state = make_state(final_severity=Severity.NORMAL, message="Patient pressed call button")

    assert is_alert_worthy(state)
    alert = derive_alert(state)
    assert alert.severity == Severity.NORMAL
    assert alert.message == "Patient pressed call button"


def test_critical_keeps_supplied_message():
    alert = derive_alert(make_state(
        final_severity=Severity.CRITICAL,
        alert_active=True,
        message="Tachycardia"
    ))

    assert alert.severity == Severity.CRITICAL
    assert alert.message == "Tachycardia"
