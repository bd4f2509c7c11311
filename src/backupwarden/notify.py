"""Compose operator notifications from run results and health reports."""

import logging
import socket
from pathlib import Path
from typing import Optional, Sequence, Union

from .errors import NotificationError
from .models.events import EventRecord, HealthReport, Verdict
from .models.message import Message
from .models.steps import RunResult
from .render import format_timestamp, render_document, render_table
from .transport import MailTransport

logger = logging.getLogger(__name__)

RUN_SUCCESS_SUBJECT = "Backup Complete"
RUN_FAILURE_SUBJECT = "Backup Error on {hostname}"
HEALTH_DEGRADED_SUBJECT = "Backup Errors"
HEALTH_DEGRADED_HEADER = "The following backup errors occurred:"
HEALTH_HEALTHY_SUBJECT = "Backup Success!"
HEALTH_HEALTHY_HEADER = "Backups succeeded! See related Event Logs below:"

STEP_COLUMNS = ("Step", "Status", "Timestamp", "Detail")
EVENT_COLUMNS = ("TimeCreated", "Id", "Level", "Message")


def _event_rows(records: Sequence[EventRecord]) -> list[tuple]:
    return [
        (format_timestamp(r.created_at), r.id, r.severity.value, r.message)
        for r in records
    ]


class NotificationComposer:
    """Turns RunResults and HealthReports into Messages and sends them.

    Composition is a pure function of its input: the same result always
    yields the same Message. Sending is best-effort and never retried.
    """

    def __init__(
        self,
        recipients: Sequence[str],
        hostname: Optional[str] = None,
        transport: Optional[MailTransport] = None,
    ):
        self.recipients = tuple(recipients)
        self.hostname = hostname or socket.gethostname()
        self.transport = transport

    def compose(
        self, item: Union[RunResult, HealthReport], attachment: Optional[Path] = None
    ) -> Message:
        if isinstance(item, RunResult):
            return self.compose_run_result(item)
        if isinstance(item, HealthReport):
            return self.compose_health_report(item, attachment=attachment)
        raise TypeError(f"Cannot compose a message from {type(item).__name__}")

    def compose_run_result(self, result: RunResult) -> Message:
        if result.succeeded:
            subject = RUN_SUCCESS_SUBJECT
            header = f"Backup completed successfully on {self.hostname}."
        else:
            subject = RUN_FAILURE_SUBJECT.format(hostname=self.hostname)
            failing = result.failing_step
            if failing is not None:
                header = f"Backup failed at step {failing.name} on {self.hostname}."
            else:
                header = f"Backup did not complete on {self.hostname}."

        rows = [
            (r.name, r.status.value, format_timestamp(r.timestamp), r.detail)
            for r in result.ledger
        ]
        body = render_document(
            header,
            render_table(STEP_COLUMNS, rows),
            extra_lines=[f"Run ID: {result.run_id}"],
        )
        return Message(to=self.recipients, subject=subject, body=body)

    def compose_health_report(
        self, report: HealthReport, attachment: Optional[Path] = None
    ) -> Message:
        if report.verdict is Verdict.DEGRADED:
            subject, header = HEALTH_DEGRADED_SUBJECT, HEALTH_DEGRADED_HEADER
            records = report.error_records
        else:
            subject, header = HEALTH_HEALTHY_SUBJECT, HEALTH_HEALTHY_HEADER
            records = report.informational_records

        window = (
            f"Window: {format_timestamp(report.window_start)} to "
            f"{format_timestamp(report.window_end)} ({report.provider_name} on {self.hostname})"
        )
        body = render_document(
            header,
            render_table(EVENT_COLUMNS, _event_rows(records)),
            extra_lines=[window],
        )
        return Message(to=self.recipients, subject=subject, body=body, attachment=attachment)

    def send(self, message: Message) -> None:
        """Hand a message to the transport.

        Raises:
            NotificationError: If no transport is configured or delivery fails
        """
        if self.transport is None:
            raise NotificationError("No mail transport configured")

        try:
            self.transport.send(message)
        except NotificationError:
            raise
        except Exception as e:
            raise NotificationError(f"Delivery failed: {type(e).__name__}: {e}") from e

        logger.info(f"Sent '{message.subject}' to {', '.join(message.to)}")
