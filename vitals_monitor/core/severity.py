"""Severity classification for untrusted device input."""

from typing import Any

from vitals_monitor.core.models import Severity

_KNOWN = {severity.value: severity for severity in Severity}


def normalize_severity(raw: Any) -> Severity:
    """
    Map a raw severity label to a Severity.

    Total over all inputs: anything that is not exactly one of the four
    labels after upper-casing (including None, empty strings and non-string
    values) becomes INFO, never NORMAL.

    Args:
        raw: Value supplied by the device or gateway

    Returns:
        The matching Severity, or Severity.INFO
    """
    if isinstance(raw, Severity):
        return raw
    if raw is None:
        return Severity.INFO
    return _KNOWN.get(str(raw).upper(), Severity.INFO)
