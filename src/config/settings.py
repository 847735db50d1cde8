"""Application settings management for FTPLink.

Provides AppSettings dataclass and SettingsManager for persistence.
"""

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from src.config.paths import get_settings_path

logger = logging.getLogger("ftplink.settings")


@dataclass
class AppSettings:
    """Settings that persist between runs."""

    # Client defaults (remembered after a successful connection)
    last_host: str = ""
    last_port: int = 21
    last_username: str = "anonymous"
    timeout: int = 30

    # Server defaults
    server_host: str = "127.0.0.1"
    server_port: int = 2121
    server_root: str = ""

    def to_dict(self) -> dict:
        """Convert settings to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AppSettings":
        """Create settings from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)


class SettingsManager:
    """Manages settings persistence in a JSON file."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize settings manager.

        Args:
            config_path: Optional custom path, defaults to platform standard
        """
        self._config_path = config_path or get_settings_path()
        self._settings: Optional[AppSettings] = None

    @property
    def config_path(self) -> Path:
        """Path to settings file."""
        return self._config_path

    @property
    def settings(self) -> AppSettings:
        """Current settings, loaded on first access."""
        if self._settings is None:
            return self.load()
        return self._settings

    def load(self) -> AppSettings:
        """
        Load settings from disk.

        Returns:
            AppSettings instance (defaults if the file is missing or unreadable)
        """
        if not self._config_path.exists():
            self._settings = AppSettings()
            return self._settings

        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
            self._settings = AppSettings.from_dict(data)
        except (json.JSONDecodeError, OSError, TypeError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", self._config_path, e)
            self._settings = AppSettings()

        return self._settings

    def save(self, settings: AppSettings) -> None:
        """
        Persist settings to disk.

        Args:
            settings: Settings to save
        """
        self._settings = settings
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self._config_path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)
        logger.debug("Settings saved to %s", self._config_path)

    def reset(self) -> AppSettings:
        """
        Reset to default settings and remove the settings file.

        Returns:
            Default AppSettings instance
        """
        self._settings = AppSettings()
        if self._config_path.exists():
            self._config_path.unlink()
        return self._settings

    def update(self, **kwargs) -> AppSettings:
        """
        Update specific settings fields and save.

        Unknown field names are ignored.

        Args:
            **kwargs: Field names and new values

        Returns:
            Updated AppSettings instance
        """
        settings = self.settings
        for key, value in kwargs.items():
            if hasattr(settings, key):
                setattr(settings, key, value)
            else:
                logger.debug("Ignoring unknown setting %r", key)

        self.save(settings)
        return settings
