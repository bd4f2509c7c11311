"""Pydantic models for backup event records and health reports."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field, field_validator

from ._time import ensure_utc


class Severity(str, Enum):
    CRITICAL = "Critical"
    ERROR = "Error"
    WARNING = "Warning"
    INFORMATION = "Information"

    @property
    def is_problem(self) -> bool:
        """True for severities that count against backup health."""
        return self is not Severity.INFORMATION


class Verdict(str, Enum):
    HEALTHY = "Healthy"
    DEGRADED = "Degraded"


class EventRecord(BaseModel):
    """A read-only event record from the backup subsystem's event log."""

    provider_name: str
    severity: Severity
    created_at: datetime
    id: int = Field(description="Provider-specific event identifier")
    message: str = ""

    model_config = {"frozen": True}

    @field_validator("created_at")
    @classmethod
    def _created_at_aware(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class HealthReport(BaseModel):
    """Time-windowed summary of a provider's event records."""

    provider_name: str
    window_start: datetime
    window_end: datetime
    error_records: tuple[EventRecord, ...] = ()
    informational_records: tuple[EventRecord, ...] = ()

    model_config = {"frozen": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def verdict(self) -> Verdict:
        return Verdict.DEGRADED if self.error_records else Verdict.HEALTHY
