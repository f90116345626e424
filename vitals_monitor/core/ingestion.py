"""Ingestion of vital-sign readings into state, history and alerts."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError

from vitals_monitor.api.schemas import IngestResponse, ReadingPayload
from vitals_monitor.core.alerts import derive_alert
from vitals_monitor.core.errors import AuthDenied, StorageFailure, ValidationFailed
from vitals_monitor.core.models import (
    AlertEvent,
    CurrentState,
    HistoryEntry,
    Principal,
    SeverityReport,
    Vitals
)
from vitals_monitor.core.repositories import Storage
from vitals_monitor.core.severity import normalize_severity

logger = logging.getLogger(__name__)

_datetime_adapter = TypeAdapter(datetime)


@dataclass
class NormalizedReading:
    """Everything one accepted reading writes."""

    patient_id: str
    patient_name: str
    device_id: Optional[str]
    state: CurrentState
    history_entry: HistoryEntry
    alert: Optional[AlertEvent]


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_timestamp(raw: Any, received_at: datetime) -> datetime:
    """
    Resolve the reading's timestamp.

    Args:
        raw: ISO-8601 string or Unix time (seconds or milliseconds); None or
            an empty string means "not supplied"
        received_at: Time of receipt, used when nothing was supplied

    Returns:
        Timezone-aware datetime (naive input is taken as UTC)

    Raises:
        ValidationFailed: If a supplied value is not a valid instant
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return received_at

    if isinstance(raw, bool):
        raise ValidationFailed("Invalid timestamp")

    try:
        parsed = _datetime_adapter.validate_python(raw.strip() if isinstance(raw, str) else raw)
    except ValidationError as e:
        raise ValidationFailed("Invalid timestamp") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_payload(raw: Any) -> ReadingPayload:
    """
    Coerce a request body into a ReadingPayload.

    Args:
        raw: Raw JSON bytes or text, an already decoded object, or a ReadingPayload

    Raises:
        ValidationFailed: If the body is not a JSON object or a field has the wrong type
    """
    if isinstance(raw, ReadingPayload):
        return raw
    if isinstance(raw, (bytes, str)):
        if not raw.strip():
            raise ValidationFailed("Invalid request body")
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationFailed("Invalid request body") from e
    if not isinstance(raw, dict):
        raise ValidationFailed("Invalid request body")

    try:
        return ReadingPayload.model_validate(raw)
    except ValidationError as e:
        location = ".".join(str(part) for part in e.errors()[0]["loc"])
        raise ValidationFailed(f"Invalid {location}") from e


def normalize_reading(payload: ReadingPayload, received_at: datetime) -> NormalizedReading:
    """
    Validate and normalize a reading.

    Absent vitals channels stay None; they are never defaulted to zero.
    Channel severities and the caller's final severity each pass through
    the classifier; the aggregate is trusted, not recomputed.

    Raises:
        ValidationFailed: Missing patient id/name or malformed timestamp
    """
    patient_id = _clean_text(payload.patient_id)
    patient_name = _clean_text(payload.patient_name) or _clean_text(payload.name)
    if not patient_id or not patient_name:
        raise ValidationFailed("Missing patientId or patientName")

    timestamp = parse_timestamp(payload.timestamp, received_at)

    raw_vitals = payload.vitals
    vitals = Vitals(
        heart_rate=raw_vitals.heart_rate if raw_vitals else None,
        spo2=raw_vitals.spo2 if raw_vitals else None,
        temperature=raw_vitals.temperature if raw_vitals else None,
        fall_detected=raw_vitals.fall_detected if raw_vitals else None
    )

    raw_report = payload.severity_report
    severity_report = SeverityReport(
        heart_rate=normalize_severity(raw_report.heart_rate if raw_report else None),
        spo2=normalize_severity(raw_report.spo2 if raw_report else None),
        temperature=normalize_severity(raw_report.temperature if raw_report else None),
        fall_motion=normalize_severity(raw_report.fall_motion if raw_report else None)
    )

    final_severity = normalize_severity(payload.final_severity)
    message = str(payload.message) if payload.message else ""

    state = CurrentState(
        patient_id=patient_id,
        patient_name=patient_name,
        vitals=vitals,
        severity_report=severity_report,
        final_severity=final_severity,
        alert_active=bool(payload.alert_active),
        message=message,
        timestamp=timestamp
    )

    history_entry = HistoryEntry(
        patient_id=patient_id,
        vitals=vitals.model_copy(),
        final_severity=final_severity,
        timestamp=timestamp
    )

    device_id = _clean_text(payload.device_id) or None

    return NormalizedReading(
        patient_id=patient_id,
        patient_name=patient_name,
        device_id=device_id,
        state=state,
        history_entry=history_entry,
        alert=derive_alert(state)
    )


class IngestionGateway:
    """Drives patient, state, history and alert writes for each reading."""

    def __init__(self, storage: Storage):
        """
        Initialize ingestion gateway.

        Args:
            storage: Store providing transactional repositories
        """
        self.storage = storage

    async def ingest(
        self,
        payload: Any,
        principal: Optional[Principal],
        received_at: Optional[datetime] = None
    ) -> IngestResponse:
        """
        Accept one reading.

        The patient upsert, state replacement, history append and optional
        alert append commit as one unit. Nothing is retried: a storage
        failure aborts the unit and is reported to the caller, who may
        resubmit.

        Args:
            payload: Raw JSON body, decoded object or ReadingPayload; decoded
                only once the caller is authorized
            principal: Caller cleared by the ingest authorizer, if any
            received_at: Receipt time (defaults to now, UTC)

        Returns:
            Acknowledgement

        Raises:
            AuthDenied: If the caller may not ingest
            ValidationFailed: If the reading is malformed
            StorageFailure: If the store rejected the unit
        """
        if principal is None or not principal.can_ingest:
            raise AuthDenied()

        received_at = received_at or datetime.now(timezone.utc)
        reading = normalize_reading(parse_payload(payload), received_at)

        try:
            async with self.storage.transaction(reading.patient_id) as repos:
                await repos.patients.upsert(
                    reading.patient_id,
                    reading.patient_name,
                    device_id=reading.device_id
                )
                await repos.states.upsert(reading.state)
                await repos.history.append(reading.history_entry)
                if reading.alert is not None:
                    await repos.alerts.append(reading.alert)
        except StorageFailure as e:
            logger.error(f"Ingestion failed for patient {reading.patient_id}: {e}")
            raise

        logger.info(
            f"Accepted reading for patient {reading.patient_id} "
            f"(severity: {reading.state.final_severity.value}, "
            f"alert: {reading.alert is not None})"
        )
        return IngestResponse(ok=True)
