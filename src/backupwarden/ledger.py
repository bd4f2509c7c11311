"""Step ledger for a single run, and the append-only run log it mirrors to."""

import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from rich.console import Console

from .models.ledger import LedgerEvent, LedgerEventType
from .models.steps import RunResult, StepRecord, StepStatus
from .models._time import ensure_utc, utc_now

console = Console()
logger = logging.getLogger(__name__)


class LedgerWriter:
    """Append-only run log writer.

    Writes events to <state_dir>/ledger.jsonl.
    Never truncates or rewrites; only appends.
    """

    def __init__(self, ledger_path: Path, run_id: str | None = None):
        """Initialize ledger writer.

        Args:
            ledger_path: Path to ledger.jsonl file
            run_id: Optional run ID; if None, generates a new uuid4
        """
        self.ledger_path = ledger_path
        self.run_id = run_id or str(uuid.uuid4())

    def append_event(self, event_type: LedgerEventType, payload: dict) -> LedgerEvent:
        """Append an event to the run log.

        Args:
            event_type: Type of event
            payload: Event-specific data

        Returns:
            The created LedgerEvent
        """
        self.ledger_path.parent.mkdir(parents=True, exist_ok=True)

        event = LedgerEvent(
            event_id=str(uuid.uuid4()),
            run_id=self.run_id,
            ts=utc_now(),
            event_type=event_type,
            payload=payload,
        )

        # JSONL: one JSON object per line
        with open(self.ledger_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event.model_dump(mode="json")) + "\n")

        return event

    def record_step(self, record: StepRecord) -> LedgerEvent:
        return self.append_event("STEP_RECORDED", record.model_dump(mode="json"))


class StepLedger:
    """Ordered, append-only record of step outcomes for one run.

    Records are stamped from ``clock`` on append. When a sink is given, every
    record is also written to the durable run log so the audit trail survives
    a lost notification.
    """

    def __init__(
        self,
        run_id: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sink: Optional[LedgerWriter] = None,
    ):
        if run_id is None:
            run_id = sink.run_id if sink is not None else str(uuid.uuid4())
        self.run_id = run_id
        self._clock = clock or utc_now
        self._sink = sink
        self._records: list[StepRecord] = []

    def append(
        self, name: str, status: StepStatus, detail: Optional[str] = None
    ) -> StepRecord:
        """Append a new step outcome and return the stored record."""
        timestamp = ensure_utc(self._clock())
        if self._records:
            # Clock went backwards: keep append order and time order aligned
            timestamp = max(timestamp, self._records[-1].timestamp)

        record = StepRecord(name=name, status=status, detail=detail, timestamp=timestamp)
        self._records.append(record)

        if self._sink is not None:
            try:
                self._sink.record_step(record)
            except OSError as e:
                logger.error(f"Failed to persist step {name} to {self._sink.ledger_path}: {e}")

        return record

    @property
    def records(self) -> tuple[StepRecord, ...]:
        return tuple(self._records)

    def __iter__(self) -> Iterator[StepRecord]:
        return iter(tuple(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def to_result(self) -> RunResult:
        return RunResult(run_id=self.run_id, ledger=self.records)


def _read_events(ledger_path: Path) -> list[LedgerEvent]:
    """Parse every well-formed line of the run log, warning about the rest."""
    if not ledger_path.exists():
        return []

    events: list[LedgerEvent] = []
    malformed_count = 0

    with open(ledger_path, "r", encoding="utf-8") as f:
        lines = f.readlines()

    for line in lines:
        line = line.strip()
        if not line:
            continue

        try:
            events.append(LedgerEvent(**json.loads(line)))
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            malformed_count += 1
            console.print(f"[yellow]Warning: Skipping malformed line: {e}[/yellow]")

    if malformed_count > 0:
        console.print(f"[yellow]Skipped {malformed_count} malformed line(s)[/yellow]")

    return events


def read_ledger_tail(ledger_path: Path, n: int = 20) -> list[LedgerEvent]:
    """Read the last N events from the run log.

    Robust parsing: skips malformed lines with a warning.

    Args:
        ledger_path: Path to ledger.jsonl file
        n: Number of events to read from the end

    Returns:
        List of LedgerEvent objects (last N events)
    """
    if n <= 0:
        return []
    return _read_events(ledger_path)[-n:]


def load_run(ledger_path: Path, run_id: str) -> list[StepRecord]:
    """Rebuild the step records of one run from the run log.

    Args:
        ledger_path: Path to ledger.jsonl file
        run_id: Run identifier as printed in the notification or ledger tail

    Returns:
        StepRecords in the order they were appended (empty if the run is unknown)
    """
    return [
        StepRecord(**event.payload)
        for event in _read_events(ledger_path)
        if event.run_id == run_id and event.event_type == "STEP_RECORDED"
    ]
