"""Scheduled entry points: one backup run, one health check."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from .config import WardenConfig
from .errors import NotificationError
from .events import EventAggregator, EventStore, WevtutilEventStore, write_report_csv
from .ledger import LedgerWriter
from .models.events import HealthReport
from .models.ledger import LedgerEventType
from .models.message import Message
from .models.steps import RunResult
from .notify import NotificationComposer
from .orchestrator import Orchestrator
from .paths import StatePaths
from .runner import BackupRunner, BackupTarget, WbadminRunner
from .transport import GmailTransport, MailTransport, SmtpTransport
from .volume import MountvolController, VolumeController

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackupRunSummary:
    """What a scheduled backup invocation produced."""

    result: RunResult
    delivered: bool
    notification_error: Optional[str] = None


def build_transport(config: WardenConfig) -> MailTransport:
    mail = config.mail
    if mail.transport == "gmail":
        return GmailTransport(token_path=mail.gmail_token_path, sender=mail.sender)
    return SmtpTransport(
        host=mail.smtp_host,
        sender=mail.sender,
        port=mail.smtp_port,
        starttls=mail.starttls,
        username=mail.username,
        password=mail.password,
        timeout=mail.timeout_seconds,
    )


def _record(ledger_writer: LedgerWriter, event_type: LedgerEventType, payload: dict) -> None:
    """Append to the run log; a write failure is logged and never stops the run."""
    try:
        ledger_writer.append_event(event_type, payload)
    except OSError as e:
        logger.error(f"Failed to record {event_type} in {ledger_writer.ledger_path}: {e}")


def _prepare_state(paths: StatePaths) -> None:
    try:
        paths.ensure()
    except OSError as e:
        logger.error(f"Cannot create state directory {paths.root}: {e}")


def _deliver(
    composer: NotificationComposer, message: Message, ledger_writer: LedgerWriter
) -> Optional[str]:
    """Send a message and log the delivery outcome; returns the error text on failure."""
    try:
        composer.send(message)
    except NotificationError as e:
        logger.error(f"Notification '{message.subject}' not delivered: {e}")
        _record(ledger_writer, "NOTIFICATION_FAILED", {"subject": message.subject, "error": str(e)})
        return str(e)

    _record(ledger_writer, "NOTIFICATION_SENT", {"subject": message.subject, "to": list(message.to)})
    return None


def run_backup(
    config: WardenConfig,
    volumes: Optional[VolumeController] = None,
    runner: Optional[BackupRunner] = None,
    transport: Optional[MailTransport] = None,
    hostname: Optional[str] = None,
) -> BackupRunSummary:
    """Run one scheduled backup and notify the operator.

    The run log is written before the notification is attempted, so a lost
    email still leaves the full ledger on disk.

    Args:
        config: backupwarden configuration
        volumes: VolumeController override (defaults to mountvol)
        runner: BackupRunner override (defaults to wbadmin)
        transport: Mail transport override (defaults to the configured one)
        hostname: Host name for the subject line (defaults to this machine)

    Returns:
        BackupRunSummary with the run result and delivery status

    Raises:
        ValueError: If no volume identifier is configured
    """
    if not config.volume.volume_id:
        raise ValueError("volume.volume_id is not configured")
    if not config.mail.to:
        logger.warning("mail.to is empty; the run will only be recorded in the ledger")

    paths = StatePaths.from_config(config)
    _prepare_state(paths)

    ledger_writer = LedgerWriter(paths.ledger_file)
    target = BackupTarget(
        destination=config.volume.drive_letter,
        include=tuple(config.backup.include),
        all_critical=config.backup.all_critical,
        vss_full=config.backup.vss_full,
    )
    _record(
        ledger_writer,
        "RUN_STARTED",
        {
            "volume_id": config.volume.volume_id,
            "drive_letter": config.volume.drive_letter,
            "target": target.model_dump(mode="json"),
        },
    )

    orchestrator = Orchestrator(
        volumes=volumes or MountvolController(dismount=config.volume.dismount),
        runner=runner
        or WbadminRunner(executable=config.backup.executable, timeout=config.backup.timeout_seconds),
        sink=ledger_writer,
        compensate_on_failure=config.compensate_on_failure,
    )
    result = orchestrator.run(config.volume.volume_id, config.volume.drive_letter, target)

    failing = result.failing_step
    _record(
        ledger_writer,
        "RUN_FINISHED",
        {
            "outcome": result.outcome.value,
            "failing_step": failing.name if failing else None,
            "steps": len(result.ledger),
        },
    )

    if not config.mail.to:
        return BackupRunSummary(result=result, delivered=False, notification_error="no recipients")

    composer = NotificationComposer(
        recipients=config.mail.to,
        hostname=hostname,
        transport=transport or build_transport(config),
    )
    error = _deliver(composer, composer.compose_run_result(result), ledger_writer)
    return BackupRunSummary(result=result, delivered=error is None, notification_error=error)


def run_health_check(
    config: WardenConfig,
    store: Optional[EventStore] = None,
    transport: Optional[MailTransport] = None,
    clock: Optional[Callable[[], datetime]] = None,
    hostname: Optional[str] = None,
) -> tuple[HealthReport, bool]:
    """Audit recent backup events and email the health report.

    Returns:
        (report, delivered)

    Raises:
        EventStoreError: If the event store cannot be queried
    """
    paths = StatePaths.from_config(config)
    _prepare_state(paths)
    ledger_writer = LedgerWriter(paths.ledger_file)

    aggregator = EventAggregator(
        store or WevtutilEventStore(config.health.log_name, executable=config.health.executable),
        clock=clock,
    )
    report = aggregator.collect(
        config.health.provider_name, timedelta(hours=config.health.window_hours)
    )

    attachment = None
    if config.health.attach_csv:
        date_str = report.window_end.strftime("%Y-%m-%d")
        try:
            attachment = write_report_csv(report, paths.report_csv_path(date_str))
        except OSError as e:
            logger.error(f"Cannot write report CSV, sending without attachment: {e}")

    _record(
        ledger_writer,
        "HEALTH_REPORT_BUILT",
        {
            "provider_name": report.provider_name,
            "verdict": report.verdict.value,
            "window_start": report.window_start.isoformat(),
            "window_end": report.window_end.isoformat(),
            "error_records": len(report.error_records),
            "informational_records": len(report.informational_records),
            "attachment": str(attachment) if attachment else None,
        },
    )

    if not config.mail.to:
        logger.warning("mail.to is empty; health report not sent")
        return report, False

    composer = NotificationComposer(
        recipients=config.mail.to,
        hostname=hostname,
        transport=transport or build_transport(config),
    )
    message = composer.compose_health_report(report, attachment=attachment)
    return report, _deliver(composer, message, ledger_writer) is None
