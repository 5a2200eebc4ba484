"""Per-user settings persisted through the storage service."""

from __future__ import annotations

from pydantic import ValidationError

from .config import AppConfig
from .errors import StorageError
from .logging_config import get_logger
from .models import UserSettings
from .storage import StorageService

logger = get_logger(__name__)

SETTINGS_KEY = "settings"


class UserSettingsStore:
    def __init__(self, storage: StorageService, config: AppConfig):
        self.storage = storage
        self.config = config

    async def load(self) -> UserSettings:
        """Stored settings, or defaults when nothing valid is stored."""
        raw = await self.storage.load(SETTINGS_KEY)
        if raw is None:
            return UserSettings()
        try:
            return UserSettings.model_validate(raw)
        except ValidationError as exc:
            logger.warning(f"Ignoring invalid stored settings: {exc}")
            return UserSettings()

    async def save(self, settings: UserSettings) -> UserSettings:
        if settings.max_segment_seconds is not None and not (
            0 < settings.max_segment_seconds <= self.config.max_segment_seconds
        ):
            raise StorageError(
                f"max_segment_seconds must be between 0 and {self.config.max_segment_seconds}"
            )
        await self.storage.save(SETTINGS_KEY, settings.model_dump())
        return settings

    async def max_segment_seconds(self) -> float:
        """The user's segment cap, falling back to the configured maximum."""
        settings = await self.load()
        return settings.max_segment_seconds or self.config.max_segment_seconds
