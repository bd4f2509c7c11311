"""Configuration management for backupwarden."""

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .volume import normalize_drive_letter

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11

REPO_CONFIG_RELPATH = Path(".backupwarden") / "config.toml"


def _find_repo_root(start_dir: Path) -> Path:
    """Find repository root by walking upward looking for .git or pyproject.toml."""
    current_dir = start_dir

    while True:
        if (current_dir / ".git").exists() or (current_dir / "pyproject.toml").exists():
            return current_dir

        parent_dir = current_dir.parent

        # Stop if we reach filesystem root
        if parent_dir == current_dir:
            return start_dir

        current_dir = parent_dir


def _find_config_file(start_dir: Path) -> Optional[Path]:
    """Look for .backupwarden/config.toml from start_dir up to the repo root."""
    stop_at = _find_repo_root(start_dir)
    current_dir = start_dir
    while True:
        candidate = current_dir / REPO_CONFIG_RELPATH
        if candidate.exists():
            return candidate
        if current_dir == stop_at or current_dir.parent == current_dir:
            return None
        current_dir = current_dir.parent


def _load_config_data(config_file: Path) -> dict:
    """Load a TOML config file.

    Raises:
        ValueError: If the file cannot be read or parsed
    """
    try:
        with open(config_file, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ValueError(f"Cannot load config {config_file}: {e}") from e


def _env_bool(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_list(name: str) -> Optional[list[str]]:
    value = os.environ.get(name)
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


class VolumeConfig(BaseModel):
    """The offline backup volume."""

    volume_id: str = Field(default="", description="Volume GUID or \\\\?\\Volume{GUID}\\ path")
    drive_letter: str = Field(default="B")
    dismount: bool = Field(default=True, description="Take the volume offline on unmount")

    @field_validator("drive_letter")
    @classmethod
    def _valid_letter(cls, value: str) -> str:
        return normalize_drive_letter(value)


class BackupConfig(BaseModel):
    """Imaging tool invocation."""

    executable: str = Field(default="wbadmin")
    include: list[str] = Field(default_factory=lambda: ["C:"])
    all_critical: bool = Field(default=True)
    vss_full: bool = Field(default=False)
    timeout_seconds: Optional[int] = Field(default=6 * 60 * 60)


class MailConfig(BaseModel):
    """Notification delivery."""

    transport: Literal["smtp", "gmail"] = Field(default="smtp")
    to: list[str] = Field(default_factory=list)
    sender: str = Field(default="backupwarden@localhost")
    smtp_host: str = Field(default="localhost")
    smtp_port: int = Field(default=25)
    starttls: bool = Field(default=False)
    username: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None)
    timeout_seconds: int = Field(default=30)
    gmail_token_path: Path = Field(
        default_factory=lambda: Path.home() / ".config" / "backupwarden" / "gmail_token.json"
    )


class HealthConfig(BaseModel):
    """Event-log health reporting."""

    provider_name: str = Field(default="Microsoft-Windows-Backup")
    log_name: str = Field(default="Microsoft-Windows-Backup")
    window_hours: int = Field(default=24, gt=0)
    attach_csv: bool = Field(default=True)
    executable: str = Field(default="wevtutil")


class WardenConfig(BaseModel):
    """Configuration for backup orchestration and health reporting."""

    state_dir: Path = Field(
        default_factory=lambda: Path(os.environ.get("BACKUPWARDEN_STATE_DIR", "./backupwarden_state"))
    )
    compensate_on_failure: bool = Field(default=False)
    volume: VolumeConfig = Field(default_factory=VolumeConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    mail: MailConfig = Field(default_factory=MailConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)

    @classmethod
    def from_env(cls, config_path: Optional[str] = None) -> "WardenConfig":
        """Load configuration from a TOML file, then apply environment overrides.

        File precedence:
        1. config_path (CLI --config)
        2. BACKUPWARDEN_CONFIG environment variable
        3. .backupwarden/config.toml found walking up from CWD to the repo root

        Environment variables (BACKUPWARDEN_*) override file values.

        Raises:
            ValueError: If an explicit config file is missing or malformed
        """
        explicit = config_path or os.environ.get("BACKUPWARDEN_CONFIG")
        if explicit:
            config_file: Optional[Path] = Path(explicit).expanduser()
            if not config_file.exists():
                raise ValueError(f"Config file does not exist: {config_file}")
        else:
            config_file = _find_config_file(Path.cwd())

        data = _load_config_data(config_file) if config_file else {}
        data = {key: (dict(value) if isinstance(value, dict) else value) for key, value in data.items()}

        overrides = {
            ("state_dir",): os.environ.get("BACKUPWARDEN_STATE_DIR"),
            ("compensate_on_failure",): _env_bool("BACKUPWARDEN_COMPENSATE_ON_FAILURE"),
            ("volume", "volume_id"): os.environ.get("BACKUPWARDEN_VOLUME_ID"),
            ("volume", "drive_letter"): os.environ.get("BACKUPWARDEN_DRIVE_LETTER"),
            ("volume", "dismount"): _env_bool("BACKUPWARDEN_DISMOUNT"),
            ("backup", "executable"): os.environ.get("BACKUPWARDEN_BACKUP_EXECUTABLE"),
            ("backup", "include"): _env_list("BACKUPWARDEN_BACKUP_INCLUDE"),
            ("backup", "timeout_seconds"): os.environ.get("BACKUPWARDEN_BACKUP_TIMEOUT_SECONDS"),
            ("mail", "transport"): os.environ.get("BACKUPWARDEN_MAIL_TRANSPORT"),
            ("mail", "to"): _env_list("BACKUPWARDEN_MAIL_TO"),
            ("mail", "sender"): os.environ.get("BACKUPWARDEN_MAIL_SENDER"),
            ("mail", "smtp_host"): os.environ.get("BACKUPWARDEN_SMTP_HOST"),
            ("mail", "smtp_port"): os.environ.get("BACKUPWARDEN_SMTP_PORT"),
            ("mail", "starttls"): _env_bool("BACKUPWARDEN_SMTP_STARTTLS"),
            ("mail", "username"): os.environ.get("BACKUPWARDEN_SMTP_USERNAME"),
            ("mail", "password"): os.environ.get("BACKUPWARDEN_SMTP_PASSWORD"),
            ("mail", "gmail_token_path"): os.environ.get("BACKUPWARDEN_GMAIL_TOKEN_PATH"),
            ("health", "provider_name"): os.environ.get("BACKUPWARDEN_HEALTH_PROVIDER"),
            ("health", "log_name"): os.environ.get("BACKUPWARDEN_HEALTH_LOG"),
            ("health", "window_hours"): os.environ.get("BACKUPWARDEN_HEALTH_WINDOW_HOURS"),
            ("health", "attach_csv"): _env_bool("BACKUPWARDEN_HEALTH_ATTACH_CSV"),
        }
        for keys, value in overrides.items():
            if value is None:
                continue
            section = data
            for key in keys[:-1]:
                if not isinstance(section.get(key), dict):
                    section[key] = {}
                section = section[key]
            section[keys[-1]] = value

        return cls.model_validate(data)

    def to_toml_str(self) -> str:
        """Render the effective configuration as TOML (secrets masked)."""
        def _q(value: object) -> str:
            return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'

        def _list(values: list[str]) -> str:
            return "[" + ", ".join(_q(v) for v in values) + "]"

        timeout = self.backup.timeout_seconds
        if timeout is None:
            timeout_line = "# timeout_seconds unset (wait indefinitely)"
        else:
            timeout_line = f"timeout_seconds = {timeout}"
        username = _q(self.mail.username or "")
        password = _q("********" if self.mail.password else "")
        return f"""# backupwarden configuration

state_dir = {_q(self.state_dir)}
compensate_on_failure = {str(self.compensate_on_failure).lower()}

[volume]
volume_id = {_q(self.volume.volume_id)}
drive_letter = {_q(self.volume.drive_letter)}
dismount = {str(self.volume.dismount).lower()}

[backup]
executable = {_q(self.backup.executable)}
include = {_list(self.backup.include)}
all_critical = {str(self.backup.all_critical).lower()}
vss_full = {str(self.backup.vss_full).lower()}
{timeout_line}

[mail]
transport = {_q(self.mail.transport)}
to = {_list(self.mail.to)}
sender = {_q(self.mail.sender)}
smtp_host = {_q(self.mail.smtp_host)}
smtp_port = {self.mail.smtp_port}
starttls = {str(self.mail.starttls).lower()}
username = {username}
password = {password}
gmail_token_path = {_q(self.mail.gmail_token_path)}

[health]
provider_name = {_q(self.health.provider_name)}
log_name = {_q(self.health.log_name)}
window_hours = {self.health.window_hours}
attach_csv = {str(self.health.attach_csv).lower()}
executable = {_q(self.health.executable)}
"""
