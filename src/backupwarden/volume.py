"""Mount and unmount the offline backup volume."""

import logging
import re
import subprocess
from typing import Protocol

from .errors import MountError, UnmountError

logger = logging.getLogger(__name__)

_GUID_RE = re.compile(r"\{[0-9A-Fa-f]{8}-(?:[0-9A-Fa-f]{4}-){3}[0-9A-Fa-f]{12}\}")


class VolumeController(Protocol):
    """Mount-by-identifier and unmount-by-letter capability."""

    def mount(self, volume_id: str, drive_letter: str) -> None: ...

    def unmount(self, drive_letter: str) -> None: ...


def normalize_volume_id(volume_id: str) -> str:
    """Return the canonical ``\\\\?\\Volume{GUID}\\`` path for a volume.

    The GUID path stays valid while the volume has no drive letter, which is
    why the volume is addressed by it rather than by label or letter.

    Raises:
        ValueError: If no volume GUID can be found in ``volume_id``
    """
    match = _GUID_RE.search(volume_id or "")
    if not match:
        raise ValueError(f"Not a volume GUID or GUID path: {volume_id!r}")
    return f"\\\\?\\Volume{match.group(0).lower()}\\"


def normalize_drive_letter(drive_letter: str) -> str:
    """Accept ``B``, ``b``, ``B:`` or ``B:\\`` and return ``B``."""
    letter = (drive_letter or "").strip().rstrip("\\").rstrip(":")
    if len(letter) != 1 or not letter.isalpha():
        raise ValueError(f"Invalid drive letter: {drive_letter!r}")
    return letter.upper()


def _tool_output(completed: subprocess.CompletedProcess) -> str:
    return " ".join(
        part.strip() for part in (completed.stdout or "", completed.stderr or "") if part.strip()
    )


class MountvolController:
    """VolumeController backed by the Windows ``mountvol`` tool.

    Unmounting uses ``/p`` by default, which also dismounts the volume and
    takes it offline so nothing can write to it outside the backup window.
    """

    def __init__(self, executable: str = "mountvol", dismount: bool = True):
        self.executable = executable
        self.dismount = dismount

    def mount(self, volume_id: str, drive_letter: str) -> None:
        try:
            volume_path = normalize_volume_id(volume_id)
            letter = normalize_drive_letter(drive_letter)
        except ValueError as e:
            raise MountError(str(e)) from e

        command = [self.executable, f"{letter}:", volume_path]
        logger.info(f"Mounting {volume_path} at {letter}:")
        try:
            completed = subprocess.run(command, capture_output=True, text=True, check=False)
        except OSError as e:
            raise MountError(f"Could not launch {self.executable}: {e}") from e

        if completed.returncode != 0:
            raise MountError(
                f"{self.executable} exited with status {completed.returncode}: "
                f"{_tool_output(completed) or 'no output'}"
            )

    def unmount(self, drive_letter: str) -> None:
        try:
            letter = normalize_drive_letter(drive_letter)
        except ValueError as e:
            raise UnmountError(str(e)) from e

        command = [self.executable, f"{letter}:", "/p" if self.dismount else "/d"]
        logger.info(f"Unmounting {letter}:")
        try:
            completed = subprocess.run(command, capture_output=True, text=True, check=False)
        except OSError as e:
            raise UnmountError(f"Could not launch {self.executable}: {e}") from e

        if completed.returncode != 0:
            raise UnmountError(
                f"{self.executable} exited with status {completed.returncode}: "
                f"{_tool_output(completed) or 'no output'}"
            )
