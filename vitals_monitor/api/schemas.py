"""API request/response schemas."""

from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool
from pydantic.alias_generators import to_camel

from vitals_monitor.core.models import AlertEvent, CurrentState, HistoryEntry


class PayloadModel(BaseModel):
    """Lenient camelCase request body; unknown keys are ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        allow_inf_nan=False
    )


# Numbers only (no booleans or numeric strings), and never NaN or Infinity
Measurement = Annotated[float, Field(strict=True, allow_inf_nan=False)]


class VitalsPayload(PayloadModel):
    """Raw vitals channels as sent by the device."""

    heart_rate: Optional[Measurement] = None
    spo2: Optional[Measurement] = None
    temperature: Optional[Measurement] = None
    fall_detected: Optional[StrictBool] = None


class SeverityReportPayload(PayloadModel):
    """Raw per-channel labels; classified during ingestion."""

    heart_rate: Any = None
    spo2: Any = None
    temperature: Any = None
    fall_motion: Any = None


class ReadingPayload(PayloadModel):
    """Body of POST /api/ingest/readings."""

    patient_id: Any = None
    patient_name: Any = None
    name: Any = None
    device_id: Any = None
    vitals: Optional[VitalsPayload] = None
    severity_report: Optional[SeverityReportPayload] = None
    final_severity: Any = None
    alert_active: Optional[bool] = None
    message: Any = None
    timestamp: Any = None


class IngestResponse(BaseModel):
    """Acknowledgement of an accepted reading."""

    ok: bool = True


class DashboardResponse(BaseModel):
    patients: List[CurrentState] = Field(default_factory=list)


class LatestResponse(BaseModel):
    latest: CurrentState


class HistoryResponse(BaseModel):
    history: List[HistoryEntry] = Field(default_factory=list)


class AlertsResponse(BaseModel):
    alerts: List[AlertEvent] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Every error body; never carries internal details."""

    message: str
