"""Path management for the backupwarden state directory."""

from pathlib import Path

from .config import WardenConfig


class StatePaths:
    """Manages paths within the state directory."""

    def __init__(self, state_root: Path):
        """Initialize state paths from root directory.

        Args:
            state_root: Root directory for run logs and report artifacts
        """
        self.root = state_root
        self.reports = state_root / "reports"

        # Durable run log (append-only JSONL)
        self.ledger_file = state_root / "ledger.jsonl"

    @classmethod
    def from_config(cls, config: WardenConfig) -> "StatePaths":
        """Create StatePaths from a WardenConfig."""
        return cls(config.state_dir)

    def get_all_directories(self) -> list[Path]:
        """Get list of all directories that should exist in the state dir."""
        return [self.root, self.reports]

    def ensure(self) -> None:
        for directory in self.get_all_directories():
            directory.mkdir(parents=True, exist_ok=True)

    def report_csv_path(self, date_str: str) -> Path:
        """Get path to the CSV attachment of a health report.

        Args:
            date_str: Date in YYYY-MM-DD format

        Returns:
            Path to the report CSV
        """
        return self.reports / f"backup_health_{date_str}.csv"
