"""Pydantic domain models for the vitals monitor."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Severity(str, Enum):
    """Severity levels, ordered by increasing urgency."""

    NORMAL = "NORMAL"
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def is_urgent(self) -> bool:
        """WARNING and CRITICAL need operator attention."""
        return self.rank >= _SEVERITY_RANK[Severity.WARNING]


_SEVERITY_RANK = {
    Severity.NORMAL: 0,
    Severity.INFO: 1,
    Severity.WARNING: 2,
    Severity.CRITICAL: 3,
}


class CamelModel(BaseModel):
    """Base model serialized with camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Vitals(CamelModel):
    """One cycle's measurements. None means the channel was not measured."""

    heart_rate: Optional[float] = None
    spo2: Optional[float] = None
    temperature: Optional[float] = None
    fall_detected: Optional[bool] = None


class SeverityReport(CamelModel):
    """Per-channel severity, each assigned independently."""

    heart_rate: Severity = Severity.INFO
    spo2: Severity = Severity.INFO
    temperature: Severity = Severity.INFO
    fall_motion: Severity = Severity.INFO


class Patient(CamelModel):
    """Registry entry for a monitored patient."""

    patient_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    device_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CurrentState(CamelModel):
    """Latest reading for a patient, replaced wholesale on every ingestion."""

    patient_id: str = Field(..., min_length=1)
    patient_name: str
    vitals: Vitals = Field(default_factory=Vitals)
    severity_report: SeverityReport = Field(default_factory=SeverityReport)
    final_severity: Severity
    alert_active: bool = False
    message: str = ""
    timestamp: datetime


class HistoryEntry(CamelModel):
    """Immutable snapshot of one accepted reading."""

    id: Optional[int] = None
    patient_id: str
    vitals: Vitals = Field(default_factory=Vitals)
    final_severity: Severity
    timestamp: datetime
    created_at: Optional[datetime] = None


class AlertEvent(CamelModel):
    """Immutable record of a reading judged alert-worthy."""

    id: Optional[int] = None
    patient_id: str
    severity: Severity
    message: str
    timestamp: datetime
    created_at: Optional[datetime] = None


class Principal(BaseModel):
    """Caller identity produced by the authentication collaborators."""

    subject: str
    can_ingest: bool = False
    can_read: bool = False
