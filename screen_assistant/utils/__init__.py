"""
Utility modules for Screen Assistant.
"""

from .settings_store import (
    Settings,
    SettingsStore,
    resolve_settings_path,
)
from .logging_setup import setup_logging, install_fault_handlers

__all__ = [
    "Settings",
    "SettingsStore",
    "resolve_settings_path",
    "setup_logging",
    "install_fault_handlers",
]
