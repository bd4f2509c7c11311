"""Pydantic models for orchestration step outcomes."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from ._time import ensure_utc


class StepStatus(str, Enum):
    """Outcome of a single orchestration step."""

    PENDING = "Pending"
    COMPLETE = "Complete"
    FAILED = "Failed"


class RunOutcome(str, Enum):
    SUCCESS = "Success"
    FAILURE = "Failure"


class StepRecord(BaseModel):
    """One entry of a run's step ledger.

    Immutable once appended.
    """

    name: str = Field(description="Orchestration phase, e.g. MountVolume")
    status: StepStatus
    detail: Optional[str] = Field(default=None, description="Error text when Failed")
    timestamp: datetime

    model_config = {"frozen": True}

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("step name must be non-empty")
        return value

    @field_validator("timestamp")
    @classmethod
    def _timestamp_aware(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class RunResult(BaseModel):
    """Final result of one orchestration run.

    ``outcome`` and ``failing_step`` are derived from the ledger alone, so a
    result never disagrees with the records it carries.
    """

    run_id: str
    ledger: tuple[StepRecord, ...] = ()

    model_config = {"frozen": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def outcome(self) -> RunOutcome:
        if self.ledger and all(r.status is StepStatus.COMPLETE for r in self.ledger):
            return RunOutcome.SUCCESS
        return RunOutcome.FAILURE

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failing_step(self) -> Optional[StepRecord]:
        for record in self.ledger:
            if record.status is StepStatus.FAILED:
                return record
        return None

    @property
    def succeeded(self) -> bool:
        return self.outcome is RunOutcome.SUCCESS
