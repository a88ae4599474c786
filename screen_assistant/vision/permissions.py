"""
Screen capture permission checks.

Only macOS gates screen capture behind a user grant (Screen Recording
in the privacy settings). Other platforms report granted.
"""

import logging
import sys

from .base import PermissionProbe

logger = logging.getLogger(__name__)

# Conditional import for macOS-specific Quartz module
try:
    if sys.platform == "darwin":
        import Quartz
    else:
        Quartz = None
except ImportError:
    Quartz = None

SETTINGS_URL = (
    "x-apple.systempreferences:com.apple.preference.security?Privacy_ScreenCapture"
)


class SystemPermissionProbe(PermissionProbe):
    """Queries the OS for screen recording access."""

    def __init__(self, quartz=None):
        self._quartz = quartz if quartz is not None else Quartz

    @property
    def applicable(self) -> bool:
        return self._quartz is not None

    def is_granted(self) -> bool:
        if not self.applicable:
            return True
        granted = bool(self._quartz.CGPreflightScreenCaptureAccess())
        if not granted:
            logger.warning("Screen Recording permission not granted")
        return granted

    def request(self) -> bool:
        """Trigger the OS prompt; the grant usually needs an app restart."""
        if not self.applicable:
            return True
        return bool(self._quartz.CGRequestScreenCaptureAccess())
