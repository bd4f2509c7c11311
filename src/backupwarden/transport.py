"""Mail transports that deliver composed notifications."""

import base64
import logging
import mimetypes
import smtplib
from email.message import EmailMessage
from pathlib import Path
from typing import Optional, Protocol

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .errors import NotificationError
from .models.message import Message

logger = logging.getLogger(__name__)


class MailTransport(Protocol):
    """The send(message) capability notifications are handed to."""

    def send(self, message: Message) -> None: ...


def build_mime_message(message: Message, sender: str) -> EmailMessage:
    """Build the MIME message for a composed notification.

    Raises:
        NotificationError: If the attachment cannot be read
    """
    mime = EmailMessage()
    mime["From"] = sender
    mime["To"] = ", ".join(message.to)
    mime["Subject"] = message.subject
    mime.set_content(message.body, subtype="html")

    if message.attachment is not None:
        try:
            data = message.attachment.read_bytes()
        except OSError as e:
            raise NotificationError(f"Cannot read attachment {message.attachment}: {e}") from e
        mime_type, _ = mimetypes.guess_type(message.attachment.name)
        maintype, subtype = (mime_type or "application/octet-stream").split("/", 1)
        mime.add_attachment(
            data, maintype=maintype, subtype=subtype, filename=message.attachment.name
        )

    return mime


class SmtpTransport:
    """Deliver notifications through an SMTP relay."""

    def __init__(
        self,
        host: str,
        sender: str,
        port: int = 25,
        starttls: bool = False,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30,
    ):
        self.host = host
        self.sender = sender
        self.port = port
        self.starttls = starttls
        self.username = username
        self.password = password
        self.timeout = timeout

    def send(self, message: Message) -> None:
        mime = build_mime_message(message, self.sender)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(mime)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(
                f"SMTP delivery via {self.host}:{self.port} failed: {e}"
            ) from e
        logger.debug(f"Delivered '{message.subject}' via {self.host}:{self.port}")


class GmailTransport:
    """Deliver notifications through the Gmail API.

    Uses an OAuth token file provisioned ahead of time; an expired token is
    refreshed and written back, but no interactive authorization is attempted.
    """

    SCOPES = ["https://www.googleapis.com/auth/gmail.send"]

    def __init__(self, token_path: Path, sender: str = "me"):
        self.token_path = token_path
        self.sender = sender
        self.service = None

    def _get_credentials(self) -> Credentials:
        if not self.token_path.exists():
            raise NotificationError(
                f"Gmail token not found at {self.token_path}. "
                "Provision an OAuth token with the gmail.send scope first."
            )

        creds = Credentials.from_authorized_user_file(str(self.token_path), self.SCOPES)
        if not creds.valid:
            if creds.expired and creds.refresh_token:
                creds.refresh(Request())
                self.token_path.write_text(creds.to_json(), encoding="utf-8")
            else:
                raise NotificationError(f"Gmail token at {self.token_path} is not usable")
        return creds

    def authenticate(self) -> None:
        try:
            creds = self._get_credentials()
            self.service = build("gmail", "v1", credentials=creds)
        except (GoogleAuthError, HttpError, ValueError, OSError) as e:
            raise NotificationError(f"Gmail API authentication failed: {e}") from e

    def send(self, message: Message) -> None:
        if not self.service:
            self.authenticate()

        mime = build_mime_message(message, self.sender)
        raw = base64.urlsafe_b64encode(mime.as_bytes()).decode("ascii")
        try:
            self.service.users().messages().send(userId="me", body={"raw": raw}).execute()
        except HttpError as e:
            raise NotificationError(f"Gmail send failed: {e}") from e
        logger.debug(f"Delivered '{message.subject}' via Gmail API")
