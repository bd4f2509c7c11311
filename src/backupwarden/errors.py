"""Exception types raised at the collaborator boundaries."""


class BackupWardenError(Exception):
    """Base class for all backupwarden errors."""


class StepError(BackupWardenError):
    """An orchestration step's underlying operation failed."""


class MountError(StepError):
    """The volume could not be mounted."""


class UnmountError(StepError):
    """The volume could not be unmounted."""


class BackupError(StepError):
    """The imaging tool failed to launch, exited non-zero, or timed out.

    The child process is never terminated on timeout; ``timed_out`` tells the
    operator that an image backup may still be running.
    """

    def __init__(
        self,
        message: str,
        exit_status: int | None = None,
        stderr: str | None = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.exit_status = exit_status
        self.stderr = stderr
        self.timed_out = timed_out


class NotificationError(BackupWardenError):
    """A composed message could not be delivered."""


class EventStoreError(BackupWardenError):
    """The event-record store could not be queried."""
