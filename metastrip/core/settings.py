"""User preferences for MetaStrip."""

import logging
import os
from typing import Any, Dict, List, Optional

from metastrip.core.models import StripPreset
from metastrip.core.presets import (
    CUSTOM_PRESETS_FILENAME, builtin_presets, load_custom_presets, save_custom_presets,
)
from metastrip.core.utils import atomic_write_json, read_json

logger = logging.getLogger(__name__)


def default_config_dir() -> str:
    """Per-user configuration directory."""
    if os.name == "nt":
        base = os.environ.get("APPDATA", os.path.expanduser("~"))
    else:
        base = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return os.path.join(base, "metastrip")


class Settings:
    """Persisted user preferences.

    Values live in ``settings.json`` inside the config directory; custom
    presets sit beside it in ``presets.json``. Read and write failures are
    logged and otherwise ignored.
    """

    DEFAULT_SETTINGS: Dict[str, Any] = {
        "max_workers": None,
        "write_embedded": True,
        "default_suffix": "_clean",
        "export_dir": "",
        "user_value": "",
        "log_dir": "",
    }

    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = config_dir or default_config_dir()
        self._settings: Dict[str, Any] = self.DEFAULT_SETTINGS.copy()
        self.load()

    @property
    def config_path(self) -> str:
        return os.path.join(self.config_dir, "settings.json")

    @property
    def presets_path(self) -> str:
        return os.path.join(self.config_dir, CUSTOM_PRESETS_FILENAME)

    def load(self) -> None:
        """Load settings from disk, keeping defaults for missing keys."""
        if not os.path.exists(self.config_path):
            return
        try:
            loaded = read_json(self.config_path)
        except Exception as e:
            logger.debug(f"Error loading settings from {self.config_path}: {e}")
            return
        if isinstance(loaded, dict):
            self._settings.update(loaded)

    def save(self) -> None:
        try:
            atomic_write_json(self.config_path, self._settings)
        except Exception as e:
            logger.debug(f"Error saving settings to {self.config_path}: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        return self._settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value

    def custom_presets(self) -> List[StripPreset]:
        return load_custom_presets(self.presets_path)

    def all_presets(self) -> List[StripPreset]:
        """Built-in presets followed by the user's custom ones."""
        return builtin_presets() + self.custom_presets()

    def save_custom_presets(self, presets: List[StripPreset]) -> None:
        try:
            save_custom_presets(self.presets_path, presets)
        except OSError as e:
            logger.warning(f"Error saving presets to {self.presets_path}: {e}")
