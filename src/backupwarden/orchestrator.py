"""Mount -> backup -> unmount sequencing with a per-run step ledger."""

import logging
from datetime import datetime
from typing import Callable, Optional

from .errors import StepError
from .ledger import LedgerWriter, StepLedger
from .models.steps import RunResult, StepRecord, StepStatus
from .runner import BackupRunner, BackupTarget
from .volume import VolumeController

logger = logging.getLogger(__name__)

MOUNT_VOLUME = "MountVolume"
RUN_BACKUP = "RunBackup"
UNMOUNT_VOLUME = "UnmountVolume"
COMPENSATE_UNMOUNT = "CompensateUnmountVolume"


class Orchestrator:
    """Runs the fixed backup sequence and reports it as a RunResult.

    Steps run in order and the sequence stops at the first failure; nothing
    is retried. With ``compensate_on_failure`` a single best-effort unmount is
    attempted after a failure so the volume is not left exposed. Either way
    the run's outcome is decided by the original failure.
    """

    def __init__(
        self,
        volumes: VolumeController,
        runner: BackupRunner,
        sink: Optional[LedgerWriter] = None,
        compensate_on_failure: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize orchestrator.

        Args:
            volumes: VolumeController for the offline backup volume
            runner: BackupRunner for the imaging tool
            sink: Optional durable run log; each step record is mirrored to it
            compensate_on_failure: Attempt an unmount after a failed step
            clock: Timestamp source for step records (defaults to UTC now)
        """
        self._volumes = volumes
        self._runner = runner
        self._sink = sink
        self._compensate = compensate_on_failure
        self._clock = clock

    def run(self, volume_id: str, drive_letter: str, target: BackupTarget) -> RunResult:
        """Run one mount -> backup -> unmount sequence.

        Never raises: every failure ends up as a Failed record in the result.

        Args:
            volume_id: Stable volume identifier (GUID path)
            drive_letter: Letter to mount the volume at for the backup window
            target: What to back up and where

        Returns:
            RunResult carrying the full step ledger
        """
        ledger = StepLedger(clock=self._clock, sink=self._sink)
        steps: list[tuple[str, Callable[[], None]]] = [
            (MOUNT_VOLUME, lambda: self._volumes.mount(volume_id, drive_letter)),
            (RUN_BACKUP, lambda: self._runner.run(target)),
            (UNMOUNT_VOLUME, lambda: self._volumes.unmount(drive_letter)),
        ]

        logger.info(f"Backup run {ledger.run_id} starting ({len(steps)} steps)")

        for name, operation in steps:
            record = self._execute(ledger, name, operation)
            if record.status is StepStatus.FAILED:
                logger.warning(f"Step {name} failed, aborting remaining steps: {record.detail}")
                if self._compensate and name != UNMOUNT_VOLUME:
                    self._execute(
                        ledger, COMPENSATE_UNMOUNT, lambda: self._volumes.unmount(drive_letter)
                    )
                break

        result = ledger.to_result()
        logger.info(f"Backup run {result.run_id} finished: {result.outcome.value}")
        return result

    def _execute(
        self, ledger: StepLedger, name: str, operation: Callable[[], None]
    ) -> StepRecord:
        logger.info(f"Step {name} starting")
        try:
            operation()
        except StepError as e:
            return ledger.append(name, StepStatus.FAILED, str(e) or type(e).__name__)
        except Exception as e:
            logger.exception(f"Step {name} raised an unexpected error")
            return ledger.append(name, StepStatus.FAILED, f"{type(e).__name__}: {e}")

        logger.info(f"Step {name} complete")
        return ledger.append(name, StepStatus.COMPLETE)
