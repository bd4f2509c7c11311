"""Backup event-log auditing: query, classify, window, report."""

import csv
import logging
import re
import subprocess
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from .errors import EventStoreError
from .models._time import ensure_utc, utc_now
from .models.events import EventRecord, HealthReport, Severity
from .render import format_timestamp

logger = logging.getLogger(__name__)

EVENT_NS = "{http://schemas.microsoft.com/win/2004/08/events/event}"

# Windows event levels; 0 (LogAlways) and 5 (Verbose) carry no problem signal
LEVEL_SEVERITY = {
    0: Severity.INFORMATION,
    1: Severity.CRITICAL,
    2: Severity.ERROR,
    3: Severity.WARNING,
    4: Severity.INFORMATION,
    5: Severity.INFORMATION,
}

_SYSTEM_TIME_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})?$"
)


class EventStore(Protocol):
    """Queryable store of backup-subsystem event records."""

    def query(self, provider_name: str) -> list[EventRecord]: ...


def parse_system_time(value: str) -> datetime:
    """Parse an event ``SystemTime`` such as ``2026-10-17T02:00:03.1234567Z``.

    Fractions beyond microseconds are truncated; a missing offset means UTC.
    """
    match = _SYSTEM_TIME_RE.match(value.strip())
    if not match:
        raise ValueError(f"Unrecognized event timestamp: {value!r}")
    text = match.group("base")
    if match.group("frac"):
        text += "." + match.group("frac")[:6].ljust(6, "0")
    tz = match.group("tz")
    if tz and tz != "Z":
        text += tz
    return ensure_utc(datetime.fromisoformat(text))


def parse_events_xml(xml_text: str) -> list[EventRecord]:
    """Parse ``wevtutil qe /f:RenderedXml /e:Events`` output in document order.

    Raises:
        ValueError: If the XML or any event in it cannot be parsed
    """
    xml_text = xml_text.strip().lstrip("\ufeff")
    if not xml_text:
        return []

    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ValueError(f"Malformed event XML: {e}") from e

    records: list[EventRecord] = []
    for event in root.iter(f"{EVENT_NS}Event"):
        system = event.find(f"{EVENT_NS}System")
        if system is None:
            raise ValueError("Event without a System element")

        provider = system.find(f"{EVENT_NS}Provider")
        event_id = system.findtext(f"{EVENT_NS}EventID")
        level = system.findtext(f"{EVENT_NS}Level") or "0"
        time_created = system.find(f"{EVENT_NS}TimeCreated")
        if provider is None or event_id is None or time_created is None:
            raise ValueError("Event is missing Provider, EventID or TimeCreated")

        message = event.findtext(f"{EVENT_NS}RenderingInfo/{EVENT_NS}Message") or ""

        records.append(
            EventRecord(
                provider_name=provider.get("Name", ""),
                severity=LEVEL_SEVERITY.get(int(level), Severity.INFORMATION),
                created_at=parse_system_time(time_created.get("SystemTime", "")),
                id=int(event_id),
                message=message.strip(),
            )
        )
    return records


class WevtutilEventStore:
    """EventStore backed by ``wevtutil qe`` on the local machine.

    Records come back newest first (``/rd:true``), which is the order the
    health report keeps.
    """

    def __init__(self, log_name: str, executable: str = "wevtutil", timeout: float = 120):
        self.log_name = log_name
        self.executable = executable
        self.timeout = timeout

    def build_command(self, provider_name: str) -> list[str]:
        quote = '"' if "'" in provider_name else "'"
        xpath = f"*[System[Provider[@Name={quote}{provider_name}{quote}]]]"
        return [
            self.executable,
            "qe",
            self.log_name,
            f"/q:{xpath}",
            "/f:RenderedXml",
            "/rd:true",
            "/e:Events",
        ]

    def query(self, provider_name: str) -> list[EventRecord]:
        command = self.build_command(provider_name)
        logger.debug(f"Querying event log: {' '.join(command)}")
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise EventStoreError(f"Could not query {self.log_name}: {e}") from e

        if completed.returncode != 0:
            raise EventStoreError(
                f"{self.executable} exited with status {completed.returncode}: "
                f"{(completed.stderr or '').strip() or 'no output'}"
            )

        try:
            return parse_events_xml(completed.stdout or "")
        except ValueError as e:
            raise EventStoreError(str(e)) from e


class JsonlEventStore:
    """EventStore over exported records, one EventRecord JSON object per line."""

    def __init__(self, path: Path):
        self.path = path

    def query(self, provider_name: str) -> list[EventRecord]:
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise EventStoreError(f"Cannot read event export {self.path}: {e}") from e

        records: list[EventRecord] = []
        for lineno, line in enumerate(lines, 1):
            if not line.strip():
                continue
            try:
                record = EventRecord.model_validate_json(line)
            except ValidationError as e:
                raise EventStoreError(f"{self.path}:{lineno}: malformed event record: {e}") from e
            if record.provider_name == provider_name:
                records.append(record)
        return records


class EventAggregator:
    """Builds a HealthReport from one provider's records in a trailing window."""

    def __init__(self, store: EventStore, clock: Optional[Callable[[], datetime]] = None):
        self._store = store
        self._clock = clock or utc_now

    def collect(self, provider_name: str, window: timedelta) -> HealthReport:
        """Collect a provider's records from the last ``window``.

        Args:
            provider_name: Event provider to audit
            window: Trailing duration, both ends inclusive

        Returns:
            HealthReport with records in the store's order

        Raises:
            ValueError: If window is not positive
            EventStoreError: If the store query fails (no partial report)
        """
        if window <= timedelta(0):
            raise ValueError(f"window must be positive, got {window}")

        window_end = ensure_utc(self._clock())
        window_start = window_end - window

        try:
            records = self._store.query(provider_name)
        except EventStoreError:
            raise
        except Exception as e:
            raise EventStoreError(f"Event store query failed: {type(e).__name__}: {e}") from e

        errors: list[EventRecord] = []
        informational: list[EventRecord] = []
        for record in records:
            if record.provider_name != provider_name:
                continue
            if not window_start <= record.created_at <= window_end:
                continue
            if record.severity.is_problem:
                errors.append(record)
            else:
                informational.append(record)

        logger.info(
            f"{provider_name}: {len(errors)} problem and {len(informational)} informational "
            f"record(s) of {len(records)} in the last {window}"
        )
        return HealthReport(
            provider_name=provider_name,
            window_start=window_start,
            window_end=window_end,
            error_records=tuple(errors),
            informational_records=tuple(informational),
        )


def write_report_csv(report: HealthReport, path: Path) -> Path:
    """Write every record of a report to CSV, problems first.

    Returns:
        The path written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["TimeCreated", "Id", "Level", "Message", "ProviderName"])
        for record in (*report.error_records, *report.informational_records):
            writer.writerow(
                [
                    format_timestamp(record.created_at),
                    record.id,
                    record.severity.value,
                    record.message,
                    record.provider_name,
                ]
            )
    return path
