"""Run the external imaging tool against the mounted backup volume."""

import logging
import subprocess
from typing import Optional, Protocol

from pydantic import BaseModel, Field, field_validator

from .errors import BackupError

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 2000


class BackupTarget(BaseModel):
    """Where the image goes and what it includes."""

    destination: str = Field(description="Target drive letter (B, B:) or target identifier")
    include: tuple[str, ...] = ("C:",)
    all_critical: bool = True
    vss_full: bool = False

    model_config = {"frozen": True}

    @field_validator("destination")
    @classmethod
    def _destination_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("backup destination must be non-empty")
        return value

    @property
    def destination_arg(self) -> str:
        # A bare drive letter needs its colon for wbadmin
        if len(self.destination) == 1 and self.destination.isalpha():
            return f"{self.destination.upper()}:"
        return self.destination


class BackupRunner(Protocol):
    def run(self, target: BackupTarget) -> None: ...


class WbadminRunner:
    """BackupRunner that launches ``wbadmin start backup`` and waits for it.

    The wait is the only blocking point of an orchestration run. When
    ``timeout`` (seconds) expires the child is left running and a timed-out
    BackupError is raised; an operator decides what happens to it.
    """

    def __init__(self, executable: str = "wbadmin", timeout: Optional[float] = None):
        self.executable = executable
        self.timeout = timeout

    def build_command(self, target: BackupTarget) -> list[str]:
        command = [
            self.executable,
            "start",
            "backup",
            f"-backupTarget:{target.destination_arg}",
        ]
        if target.include:
            command.append(f"-include:{','.join(target.include)}")
        if target.all_critical:
            command.append("-allCritical")
        if target.vss_full:
            command.append("-vssFull")
        command.append("-quiet")
        return command

    def run(self, target: BackupTarget) -> None:
        command = self.build_command(target)
        logger.info(f"Starting backup: {' '.join(command)}")

        try:
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise BackupError(f"Could not launch {self.executable}: {e}") from e

        try:
            _, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            logger.error(
                f"{self.executable} (pid {process.pid}) still running after {self.timeout}s; "
                "leaving it running"
            )
            raise BackupError(
                f"{self.executable} did not finish within {self.timeout}s "
                f"(pid {process.pid} left running for operator review)",
                timed_out=True,
            )

        if process.returncode != 0:
            stderr_tail = (stderr or "").strip()[-STDERR_TAIL_CHARS:]
            message = f"{self.executable} exited with status {process.returncode}"
            if stderr_tail:
                message = f"{message}: {stderr_tail}"
            raise BackupError(message, exit_status=process.returncode, stderr=stderr_tail or None)

        logger.info(f"{self.executable} finished successfully")
