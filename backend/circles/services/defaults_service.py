"""Defaults service - loads the bundled per-tier settings from YAML."""

from pathlib import Path

import yaml

from circles.schemas.settings import NotificationSettings, PrivacySettings, SettingsBundle

DEFAULTS_FILE = Path(__file__).parent.parent / "data" / "defaults.yaml"


class DefaultsService:
    def __init__(self, path: Path = DEFAULTS_FILE):
        self.path = path
        self._cache: SettingsBundle | None = None

    def load(self) -> SettingsBundle:
        """Parse and validate the defaults file (cached after first read)."""
        if self._cache is not None:
            return self._cache

        if not self.path.exists():
            raise FileNotFoundError(f"Defaults file not found: {self.path}")

        with open(self.path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        self._cache = SettingsBundle.model_validate(raw)
        return self._cache

    def bundle(self) -> SettingsBundle:
        return self.load().model_copy(deep=True)

    def privacy(self) -> PrivacySettings:
        """A fresh copy, safe for a user to mutate."""
        return self.load().privacy.model_copy(deep=True)

    def notifications(self) -> NotificationSettings:
        return self.load().notifications.model_copy(deep=True)


defaults_service = DefaultsService()
