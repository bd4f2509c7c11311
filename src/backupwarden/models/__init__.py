"""Pydantic models for backupwarden."""

from .events import EventRecord, HealthReport, Severity, Verdict
from .ledger import LedgerEvent, LedgerEventType
from .message import Message
from .steps import RunOutcome, RunResult, StepRecord, StepStatus

__all__ = [
    # Orchestration
    "StepStatus",
    "StepRecord",
    "RunOutcome",
    "RunResult",
    # Event log
    "Severity",
    "EventRecord",
    "Verdict",
    "HealthReport",
    # Delivery and persistence
    "Message",
    "LedgerEvent",
    "LedgerEventType",
]
