"""Pydantic models for the durable run log."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

LedgerEventType = Literal[
    "RUN_STARTED",
    "STEP_RECORDED",
    "RUN_FINISHED",
    "NOTIFICATION_SENT",
    "NOTIFICATION_FAILED",
    "HEALTH_REPORT_BUILT",
]


class LedgerEvent(BaseModel):
    """Append-only run log record.

    Written as JSONL to <state_dir>/ledger.jsonl.
    Never mutate or delete; only append.
    """

    event_id: str = Field(description="Unique event identifier (uuid4)")
    run_id: str = Field(description="Run identifier (uuid4)")
    ts: datetime = Field(description="Event timestamp (ISO8601 UTC)")
    event_type: LedgerEventType = Field(description="Event type")
    payload: dict = Field(default_factory=dict, description="Event-specific data")

    model_config = {"frozen": True}
