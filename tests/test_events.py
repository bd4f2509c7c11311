"""Tests for event-log aggregation and the event stores."""

import csv
import json
import subprocess
from datetime import timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from backupwarden.errors import EventStoreError
from backupwarden.events import (
    EventAggregator,
    JsonlEventStore,
    WevtutilEventStore,
    parse_events_xml,
    parse_system_time,
    write_report_csv,
)
from backupwarden.models.events import Severity, Verdict

from .conftest import NOW, ListEventStore, make_event

PROVIDER = "Microsoft-Windows-Backup"
DAY = timedelta(hours=24)

EVENTS_XML = """<Events>
<Event xmlns='http://schemas.microsoft.com/win/2004/08/events/event'>
  <System>
    <Provider Name='Microsoft-Windows-Backup' Guid='{1db28f2e-8f80-4027-8c5a-a11f7f10f62d}'/>
    <EventID>5</EventID>
    <Level>2</Level>
    <TimeCreated SystemTime='2026-10-18T02:10:00.1234567Z'/>
  </System>
  <RenderingInfo Culture='en-US'>
    <Message>The backup operation that started at '2026-10-18T02:00:00' has failed.</Message>
  </RenderingInfo>
</Event>
<Event xmlns='http://schemas.microsoft.com/win/2004/08/events/event'>
  <System>
    <Provider Name='Microsoft-Windows-Backup'/>
    <EventID Qualifiers='0'>4</EventID>
    <Level>4</Level>
    <TimeCreated SystemTime='2026-10-17T02:30:00Z'/>
  </System>
  <RenderingInfo Culture='en-US'>
    <Message>The backup operation has finished successfully.</Message>
  </RenderingInfo>
</Event>
</Events>"""


def test_collect_classifies_and_windows_records():
    """Test that records are split by severity and limited to the window."""
    recent_error = make_event(1, Severity.ERROR, 5)
    old_error = make_event(25, Severity.ERROR, 5)
    recent_info = make_event(2, Severity.INFORMATION, 4)
    store = ListEventStore([recent_error, old_error, recent_info])

    report = EventAggregator(store, clock=lambda: NOW).collect(PROVIDER, DAY)

    assert report.error_records == (recent_error,)
    assert report.informational_records == (recent_info,)
    assert report.verdict is Verdict.DEGRADED
    assert report.window_start == NOW - DAY
    assert report.window_end == NOW
    assert store.queries == [PROVIDER]


def test_collect_healthy_when_only_information():
    """Test that informational records alone give a Healthy verdict."""
    info = make_event(3, Severity.INFORMATION, 4)
    store = ListEventStore([info, make_event(30, Severity.CRITICAL, 517)])

    report = EventAggregator(store, clock=lambda: NOW).collect(PROVIDER, DAY)

    assert report.verdict is Verdict.HEALTHY
    assert report.error_records == ()
    assert report.informational_records == (info,)


def test_collect_counts_warnings_and_critical_as_problems():
    """Test that warnings and critical records count as problems."""
    warning = make_event(1, Severity.WARNING, 49)
    critical = make_event(2, Severity.CRITICAL, 517)
    store = ListEventStore([warning, critical])

    report = EventAggregator(store, clock=lambda: NOW).collect(PROVIDER, DAY)

    assert report.error_records == (warning, critical)


def test_collect_preserves_store_order():
    """Test that records keep the order the store returned."""
    records = [make_event(h, Severity.ERROR, h) for h in (1, 5, 3, 2)]

    report = EventAggregator(ListEventStore(records), clock=lambda: NOW).collect(PROVIDER, DAY)

    assert [r.id for r in report.error_records] == [1, 5, 3, 2]


def test_collect_window_bounds_are_inclusive():
    """Test that records exactly on either window bound are kept."""
    at_start = make_event(24, Severity.ERROR, 1)
    at_end = make_event(0, Severity.ERROR, 2)

    report = EventAggregator(ListEventStore([at_start, at_end]), clock=lambda: NOW).collect(
        PROVIDER, DAY
    )

    assert report.error_records == (at_start, at_end)


def test_collect_ignores_other_providers():
    """Test that records from other providers are dropped."""
    other = make_event(1, Severity.ERROR, 1, provider="Microsoft-Windows-Kernel")

    report = EventAggregator(ListEventStore([other]), clock=lambda: NOW).collect(PROVIDER, DAY)

    assert report.verdict is Verdict.HEALTHY


def test_collect_store_failure_is_fatal():
    """Test that a store error propagates without a partial report."""
    store = ListEventStore(error=EventStoreError("log not found"))

    with pytest.raises(EventStoreError, match="log not found"):
        EventAggregator(store, clock=lambda: NOW).collect(PROVIDER, DAY)


def test_collect_wraps_unexpected_store_errors():
    """Test that unexpected store exceptions become EventStoreError."""
    store = ListEventStore(error=RuntimeError("rpc unavailable"))

    with pytest.raises(EventStoreError, match="rpc unavailable"):
        EventAggregator(store, clock=lambda: NOW).collect(PROVIDER, DAY)


def test_collect_rejects_non_positive_window():
    """Test that a zero or negative window raises ValueError."""
    with pytest.raises(ValueError):
        EventAggregator(ListEventStore(), clock=lambda: NOW).collect(PROVIDER, timedelta(0))


def test_parse_system_time_truncates_to_microseconds():
    """Test that 100ns SystemTime fractions are truncated."""
    parsed = parse_system_time("2026-10-18T02:10:00.1234567Z")

    assert parsed.microsecond == 123456
    assert parsed.tzinfo == timezone.utc


def test_parse_events_xml():
    """Test that rendered event XML becomes EventRecords in order."""
    records = parse_events_xml(EVENTS_XML)

    assert [(r.id, r.severity) for r in records] == [
        (5, Severity.ERROR),
        (4, Severity.INFORMATION),
    ]
    assert records[0].provider_name == PROVIDER
    assert records[1].message == "The backup operation has finished successfully."


def test_parse_events_xml_empty_output():
    """Test that empty wevtutil output means no records."""
    assert parse_events_xml("") == []
    assert parse_events_xml("<Events></Events>") == []


def test_parse_events_xml_rejects_garbage():
    """Test that unparseable XML raises ValueError."""
    with pytest.raises(ValueError):
        parse_events_xml("<Events><Event>")


def test_wevtutil_command():
    """Test the wevtutil query command line."""
    store = WevtutilEventStore(PROVIDER)

    command = store.build_command(PROVIDER)

    assert command[:3] == ["wevtutil", "qe", PROVIDER]
    assert f"/q:*[System[Provider[@Name='{PROVIDER}']]]" in command
    assert "/rd:true" in command
    assert "/f:RenderedXml" in command


@patch("backupwarden.events.subprocess.run")
def test_wevtutil_store_parses_output(mock_run):
    """Test that wevtutil output is parsed into records."""
    mock_run.return_value = Mock(returncode=0, stdout=EVENTS_XML, stderr="")

    records = WevtutilEventStore(PROVIDER).query(PROVIDER)

    assert len(records) == 2


@patch("backupwarden.events.subprocess.run")
def test_wevtutil_store_nonzero_exit(mock_run):
    """Test that a failing wevtutil raises EventStoreError."""
    mock_run.return_value = Mock(returncode=15007, stdout="", stderr="The specified channel could not be found.")

    with pytest.raises(EventStoreError, match="channel could not be found"):
        WevtutilEventStore(PROVIDER).query(PROVIDER)


@patch("backupwarden.events.subprocess.run")
def test_wevtutil_store_launch_failure(mock_run):
    """Test that a missing wevtutil raises EventStoreError."""
    mock_run.side_effect = FileNotFoundError("wevtutil")

    with pytest.raises(EventStoreError):
        WevtutilEventStore(PROVIDER).query(PROVIDER)


@patch("backupwarden.events.subprocess.run")
def test_wevtutil_store_timeout(mock_run):
    """Test that a hung wevtutil raises EventStoreError."""
    mock_run.side_effect = subprocess.TimeoutExpired(cmd="wevtutil", timeout=120)

    with pytest.raises(EventStoreError):
        WevtutilEventStore(PROVIDER).query(PROVIDER)


def test_jsonl_store_reads_matching_provider(tmp_path):
    """Test that the JSONL store returns only the requested provider."""
    path = tmp_path / "events.jsonl"
    records = [make_event(1, Severity.ERROR, 5), make_event(1, Severity.ERROR, 9, provider="Other")]
    path.write_text("\n".join(r.model_dump_json() for r in records) + "\n\n")

    assert JsonlEventStore(path).query(PROVIDER) == [records[0]]


def test_jsonl_store_malformed_line_is_fatal(tmp_path):
    """Test that a malformed export line names its line number."""
    path = tmp_path / "events.jsonl"
    path.write_text(json.dumps({"provider_name": PROVIDER}) + "\n")

    with pytest.raises(EventStoreError, match=":1:"):
        JsonlEventStore(path).query(PROVIDER)


def test_jsonl_store_missing_file(tmp_path):
    """Test that a missing export raises EventStoreError."""
    with pytest.raises(EventStoreError):
        JsonlEventStore(tmp_path / "missing.jsonl").query(PROVIDER)


def test_write_report_csv(tmp_path):
    """Test that the CSV lists problem records before informational ones."""
    error = make_event(1, Severity.ERROR, 5, "failed, with comma")
    info = make_event(2, Severity.INFORMATION, 4, "ok")
    report = EventAggregator(ListEventStore([info, error]), clock=lambda: NOW).collect(PROVIDER, DAY)

    path = write_report_csv(report, tmp_path / "reports" / "health.csv")

    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0] == ["TimeCreated", "Id", "Level", "Message", "ProviderName"]
    assert rows[1] == ["2026-10-18 05:00:00 UTC", "5", "Error", "failed, with comma", PROVIDER]
    assert rows[2][2] == "Information"
