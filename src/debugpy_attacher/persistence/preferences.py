"""Persistence of the runtime monitoring toggles."""

import logging
from pathlib import Path

from pydantic import BaseModel, ValidationError

from debugpy_attacher.config import Settings, settings
from debugpy_attacher.core.exceptions import PersistenceError
from debugpy_attacher.persistence.storage import atomic_write, safe_read

logger = logging.getLogger(__name__)


class MonitorPreferences(BaseModel):
    """Toggles a user can flip at runtime."""

    live_monitoring: bool = True
    auto_attach: bool = True
    hide_processes_from_other_users: bool = False

    @classmethod
    def from_settings(cls, config: Settings) -> "MonitorPreferences":
        return cls(
            live_monitoring=config.enable_live_monitoring,
            auto_attach=config.auto_attach,
            hide_processes_from_other_users=config.hide_processes_from_other_users,
        )


class PreferenceStore:
    """Stores MonitorPreferences in config.json."""

    def __init__(self, path: Path | None = None):
        self.path = path or settings.config_file

    async def load(self, defaults: MonitorPreferences) -> MonitorPreferences:
        """Load saved toggles, falling back to ``defaults`` on any problem."""
        try:
            data = await safe_read(self.path)
        except PersistenceError as e:
            logger.warning(f"Ignoring unreadable preferences: {e.message}")
            return defaults

        if not data:
            return defaults

        try:
            return MonitorPreferences(**{**defaults.model_dump(), **data})
        except ValidationError as e:
            logger.warning(f"Ignoring invalid preferences in {self.path}: {e}")
            return defaults

    async def save(self, preferences: MonitorPreferences) -> None:
        await atomic_write(self.path, preferences.model_dump(mode="json"))
        logger.debug(f"Saved preferences to {self.path}")
