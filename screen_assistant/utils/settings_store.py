"""
Settings persistence.

User settings live in a flat YAML file under ~/.config/screen-assistant/.
Defaults are defined here; the file only needs the keys the user changed.
Callers read immutable Settings snapshots and write through
set()/update(), never by mutating a snapshot.
"""

import logging
import os
import threading
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(os.path.expanduser("~/.config/screen-assistant"))
DEFAULT_SETTINGS_PATH = CONFIG_DIR / "settings.yaml"
CONFIG_ENV_VAR = "SCREEN_ASSISTANT_CONFIG"


@dataclass(frozen=True)
class Settings:
    """Read-only snapshot of user configuration."""
    capture_interval_ms: int = 10000
    auto_capture_enabled: bool = False
    api_key: str = ""
    minimize_to_tray: bool = True
    show_notifications: bool = True

    # Analysis
    model: str = "gpt-4o"
    custom_prompt: str = ""

    # Capture
    monitor: int = 1  # 0 = all displays

    def to_dict(self) -> dict:
        return asdict(self)


SETTING_TYPES: dict[str, type] = {f.name: f.type for f in fields(Settings)}


def _coerce(key: str, value: Any) -> Any:
    """Validate a value for a settings key, raising ValueError when it doesn't fit."""
    if key not in SETTING_TYPES:
        raise ValueError(f"Unknown setting: {key}")

    expected = SETTING_TYPES[key]
    if expected is bool:
        if not isinstance(value, bool):
            raise ValueError(f"{key} must be a boolean, got {value!r}")
        return value
    if expected is int:
        # bool is an int subclass, reject it explicitly
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{key} must be an integer, got {value!r}")
        if key == "capture_interval_ms" and value <= 0:
            raise ValueError(f"{key} must be positive, got {value}")
        if key == "monitor" and value < 0:
            raise ValueError(f"{key} must not be negative, got {value}")
        return value
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value.strip() if key == "api_key" else value


def resolve_settings_path(path: Optional[Path] = None) -> Path:
    """Explicit path, then $SCREEN_ASSISTANT_CONFIG, then the default location."""
    if path is not None:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_SETTINGS_PATH


class SettingsStore:
    """
    YAML-backed settings store.

    Args:
        path: Settings file. None keeps settings in memory only.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._settings = self._load()

    def _load(self) -> Settings:
        if self.path is None or not self.path.exists():
            return Settings()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to read settings from {self.path}: {e}")
            return Settings()

        if not isinstance(raw, dict):
            logger.error(f"Settings file {self.path} is not a mapping, using defaults")
            return Settings()

        values = {}
        for key, value in raw.items():
            try:
                values[key] = _coerce(key, value)
            except ValueError as e:
                logger.warning(f"Ignoring setting from file: {e}")

        logger.info(f"Loaded settings from {self.path}")
        return replace(Settings(), **values)

    def _save(self, settings: Settings):
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(settings.to_dict(), f, default_flow_style=False, sort_keys=True)
        os.replace(tmp_path, self.path)

    def snapshot(self) -> Settings:
        return self._settings

    def get(self, key: str) -> Any:
        if key not in SETTING_TYPES:
            raise KeyError(key)
        return getattr(self._settings, key)

    def set(self, key: str, value: Any) -> Settings:
        return self.update({key: value})

    def update(self, partial: dict) -> Settings:
        """
        Overwrite every field present in `partial`.

        All values are validated before anything is written, so a bad
        field leaves the stored settings untouched.
        """
        values = {key: _coerce(key, value) for key, value in partial.items()}
        with self._lock:
            updated = replace(self._settings, **values)
            self._save(updated)
            self._settings = updated
        return updated
