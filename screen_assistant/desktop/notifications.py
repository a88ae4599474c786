"""
Desktop notifications via plyer.
"""

import logging

logger = logging.getLogger(__name__)

try:
    from plyer import notification
    HAS_PLYER = True
except ImportError:
    HAS_PLYER = False
    logger.warning("plyer not installed. Desktop notifications will be disabled.")

APP_NAME = "AI Screen Assistant"
PREVIEW_LENGTH = 100


def preview(text: str, length: int = PREVIEW_LENGTH) -> str:
    """First `length` characters, with an ellipsis when cut."""
    return text[:length] + ("..." if len(text) > length else "")


def notify(title: str, message: str, timeout: int = 5) -> bool:
    """
    Show a system notification.

    Returns:
        True if the notification was handed to the OS
    """
    if not HAS_PLYER:
        return False
    try:
        notification.notify(
            title=title,
            message=message,
            app_name=APP_NAME,
            timeout=timeout
        )
        return True
    except Exception as e:
        # plyer raises backend-specific errors (dbus, win32, ...)
        logger.warning(f"Failed to show notification: {e}")
        return False


def notify_analysis(analysis: str) -> bool:
    return notify("AI Analysis Complete", preview(analysis))
