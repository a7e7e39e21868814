"""
Settings service: load, save and reset the persisted AppSettings.
"""

import logging
import subprocess
from typing import TYPE_CHECKING

from .models import AppSettings

if TYPE_CHECKING:
    from ..persistence.database import AppDatabase

logger = logging.getLogger(__name__)


class SettingsService:
    """
    Single-document settings store.

    The first read of an empty database inserts the defaults.
    """

    def __init__(self, db: "AppDatabase"):
        self._db = db

    def get_settings(self) -> AppSettings:
        settings = self._db.settings.find_one(lambda s: True)
        if settings is None:
            settings = AppSettings()
            self._db.settings.insert(settings)
            logger.info("[Settings] Initialized default settings")
        return settings

    def save_settings(self, settings: AppSettings) -> AppSettings:
        """Persist `settings`, keeping the id of the stored document."""
        existing = self._db.settings.find_one(lambda s: True)
        if existing is not None and existing.id != settings.id:
            settings = settings.model_copy(update={"id": existing.id})
        self._db.settings.upsert(settings)
        return settings

    def reset_to_default(self) -> AppSettings:
        self._db.settings.delete_all()
        settings = AppSettings()
        self._db.settings.insert(settings)
        logger.info("[Settings] Reset to defaults")
        return settings

    def validate_ffmpeg_path(self, path: str) -> bool:
        """True if `path` (or `ffmpeg` on PATH when empty) runs `-version` cleanly."""
        executable = path or "ffmpeg"
        try:
            result = subprocess.run(
                [executable, "-version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"[Settings] FFmpeg validation failed for {executable}: {e}")
            return False
        return result.returncode == 0
