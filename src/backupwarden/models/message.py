"""Outbound notification message."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Message(BaseModel):
    """A fully composed notification, ready for a mail transport."""

    to: tuple[str, ...] = Field(description="Recipient addresses")
    subject: str
    body: str = Field(description="HTML document")
    attachment: Optional[Path] = None

    model_config = {"frozen": True}

    @field_validator("to")
    @classmethod
    def _has_recipient(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("message needs at least one recipient")
        return value
