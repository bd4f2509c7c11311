"""backupwarden - offline-volume backup orchestration and health reporting."""

__version__ = "0.1.0"
