"""
Desktop Module

Provides the tray application around the capture orchestrator:
- Main window (pywebview) bridged to the orchestrator events
- System tray integration
- Global hotkeys
- Desktop notifications
"""

from .app import DesktopAPI, DesktopConfig, ScreenAssistantApp

__all__ = ["DesktopAPI", "DesktopConfig", "ScreenAssistantApp"]
