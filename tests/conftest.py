"""Pytest fixtures for backupwarden tests."""

from datetime import datetime, timedelta, timezone

import pytest

from backupwarden.config import MailConfig, VolumeConfig, WardenConfig
from backupwarden.errors import BackupError, MountError, UnmountError
from backupwarden.models.events import EventRecord, Severity
from backupwarden.paths import StatePaths

NOW = datetime(2026, 10, 18, 6, 0, 0, tzinfo=timezone.utc)
VOLUME_ID = "\\\\?\\Volume{1b2c3d4e-0000-1111-2222-333344445555}\\"


class FakeVolumes:
    """Records mount/unmount calls; fails when told to."""

    def __init__(self, fail_mount=None, fail_unmount=None):
        self.fail_mount = fail_mount
        self.fail_unmount = fail_unmount
        self.calls = []

    def mount(self, volume_id, drive_letter):
        self.calls.append(("mount", volume_id, drive_letter))
        if self.fail_mount:
            raise MountError(self.fail_mount)

    def unmount(self, drive_letter):
        self.calls.append(("unmount", drive_letter))
        if self.fail_unmount:
            raise UnmountError(self.fail_unmount)


class FakeRunner:
    def __init__(self, error=None):
        self.error = error
        self.targets = []

    def run(self, target):
        self.targets.append(target)
        if self.error is not None:
            raise self.error


class FakeTransport:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    def send(self, message):
        if self.error is not None:
            raise self.error
        self.sent.append(message)


class ListEventStore:
    def __init__(self, records=(), error=None):
        self.records = list(records)
        self.error = error
        self.queries = []

    def query(self, provider_name):
        self.queries.append(provider_name)
        if self.error is not None:
            raise self.error
        return list(self.records)


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start=NOW):
        self.current = start

    def __call__(self):
        value = self.current
        self.current = value + timedelta(seconds=1)
        return value


def make_event(hours_ago, severity, event_id=4, message="", provider="Microsoft-Windows-Backup"):
    """Build an EventRecord created ``hours_ago`` before NOW."""
    return EventRecord(
        provider_name=provider,
        severity=severity,
        created_at=NOW - timedelta(hours=hours_ago),
        id=event_id,
        message=message,
    )


@pytest.fixture
def temp_state(tmp_path):
    """Create a temporary state directory root.

    Args:
        tmp_path: pytest's built-in temporary directory fixture

    Returns:
        Path to temporary state root
    """
    state_root = tmp_path / "state"
    state_root.mkdir()
    return state_root


@pytest.fixture
def warden_config(temp_state):
    """WardenConfig pointing at the temporary state dir, with one recipient."""
    return WardenConfig(
        state_dir=temp_state,
        volume=VolumeConfig(volume_id=VOLUME_ID, drive_letter="B"),
        mail=MailConfig(to=["ops@example.com"], sender="backup@example.com"),
    )


@pytest.fixture
def state_paths(warden_config):
    """StatePaths for the temporary state dir, directories created."""
    paths = StatePaths.from_config(warden_config)
    paths.ensure()
    return paths


@pytest.fixture
def clock():
    """Clock that starts at NOW and ticks one second per call."""
    return StepClock()


@pytest.fixture
def volumes():
    """Volume controller that always succeeds."""
    return FakeVolumes()


@pytest.fixture
def runner():
    """Backup runner that always succeeds."""
    return FakeRunner()


@pytest.fixture
def transport():
    """Mail transport that records every message it sends."""
    return FakeTransport()


@pytest.fixture
def backup_failure():
    """A non-zero wbadmin exit as the runner would raise it."""
    return BackupError("wbadmin exited with status 1: ERROR - disk full", exit_status=1)
