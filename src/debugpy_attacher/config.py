"""Application configuration using Pydantic Settings."""

import tempfile
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DEBUGPY_ATTACHER_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Server settings
    host: str = "127.0.0.1"
    port: int = 5680
    debug: bool = False
    log_level: str = "INFO"

    # Monitoring defaults (runtime toggles are persisted in config.json)
    enable_live_monitoring: bool = True
    auto_attach: bool = True
    hide_processes_from_other_users: bool = False

    # Timers
    status_refresh_seconds: float = Field(default=3.0, gt=0)
    auto_attach_retry_interval_ms: int = Field(default=1000, ge=100, le=60000)
    session_end_cooldown_seconds: float = Field(default=2.0, ge=0)
    auto_attach_release_delay_seconds: float = Field(default=5.0, ge=0)
    manual_attach_release_delay_seconds: float = Field(default=1.0, ge=0)

    # Port locks
    lock_root: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    stale_lock_seconds: float = Field(default=30.0, gt=0)
    activity_window_seconds: float = Field(default=60.0, gt=0)

    # Discovery commands
    scan_timeout_seconds: float = Field(default=10.0, gt=0)
    scan_max_output_bytes: int = Field(default=1024 * 1024, ge=1024)
    probe_timeout_seconds: float = Field(default=5.0, gt=0)
    probe_max_output_bytes: int = Field(default=512 * 1024, ge=1024)

    # DAP settings
    dap_timeout_seconds: float = Field(default=5.0, ge=0.5, le=300.0)

    # Launch configuration
    default_port: int = Field(default=5678, ge=1024, le=65535)
    workspace_folders: list[Path] = Field(default_factory=list)

    # Persistence
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".debugpy-attacher")

    @property
    def auto_attach_retry_interval_seconds(self) -> float:
        """Auto-attach tick interval in seconds."""
        return self.auto_attach_retry_interval_ms / 1000

    @property
    def config_file(self) -> Path:
        """Path to the persisted preferences file."""
        return self.data_dir / "config.json"

    def lock_dir_for(self, username: str) -> Path:
        """Per-user lock directory."""
        return self.lock_root / f"debugpy-attacher-{username}" / "locks"

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
