"""
System tray integration for background operation.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from PIL import Image, ImageDraw

logger = logging.getLogger(__name__)

# pystray connects to the display server on import, which fails on headless hosts
try:
    import pystray
    TRAY_AVAILABLE = True
except Exception as e:
    TRAY_AVAILABLE = False
    logger.warning(f"pystray unavailable ({e}). System tray disabled. Install with: pip install pystray")

TRAY_TITLE = "AI Screen Assistant"
ICON_COLOR = (138, 79, 255, 255)


def create_default_icon(size: int = 64) -> Image.Image:
    """Purple disc on a transparent background, used when no icon file exists."""
    image = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    margin = max(1, size // 16)
    draw.ellipse((margin, margin, size - margin - 1, size - margin - 1), fill=ICON_COLOR)
    return image


def load_icon(icon_path: Optional[str]) -> Image.Image:
    if icon_path and Path(icon_path).exists():
        try:
            return Image.open(icon_path)
        except OSError as e:
            logger.warning(f"Could not load tray icon {icon_path}: {e}")
    return create_default_icon()


def tooltip(auto_capture_enabled: bool) -> str:
    status = "Auto-capture ON" if auto_capture_enabled else "Auto-capture OFF"
    return f"{TRAY_TITLE} - {status}"


class TrayIcon:
    """
    Tray icon with the application menu.

    Menu callbacks run on the pystray thread; the owner is responsible
    for marshalling them onto its own loop.
    """

    def __init__(
        self,
        on_show: Callable[[], None],
        on_capture: Callable[[], None],
        on_toggle_auto: Callable[[], None],
        is_auto_capture: Callable[[], bool],
        on_settings: Callable[[], None],
        on_quit: Callable[[], None],
        icon_path: Optional[str] = None,
    ):
        self._on_show = on_show
        self._on_capture = on_capture
        self._on_toggle_auto = on_toggle_auto
        self._is_auto_capture = is_auto_capture
        self._on_settings = on_settings
        self._on_quit = on_quit
        self._icon_path = icon_path
        self.icon = None
        self._thread: Optional[threading.Thread] = None

    def _build_menu(self):
        return pystray.Menu(
            pystray.MenuItem("Show AI Screen Assistant", lambda: self._on_show(), default=True),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem("Capture Now (F9)", lambda: self._on_capture()),
            pystray.MenuItem(
                "Auto-Capture",
                lambda: self._on_toggle_auto(),
                checked=lambda item: self._is_auto_capture()
            ),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem("Settings", lambda: self._on_settings()),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem("Quit", lambda: self._on_quit())
        )

    @property
    def active(self) -> bool:
        """True while the tray thread is running and can bring the window back."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Run the tray icon in a background thread."""
        if not TRAY_AVAILABLE:
            logger.info("System tray not available, window close will quit")
            return False

        def run():
            self.icon = pystray.Icon(
                "screen-assistant",
                load_icon(self._icon_path),
                tooltip(self._is_auto_capture()),
                self._build_menu()
            )
            logger.info("System tray created")
            self.icon.run()

        self._thread = threading.Thread(target=run, daemon=True, name="tray")
        self._thread.start()
        return True

    def refresh(self, auto_capture_enabled: bool):
        """Update the check mark and tooltip after an auto-capture change."""
        if self.icon is None:
            return
        self.icon.title = tooltip(auto_capture_enabled)
        self.icon.update_menu()

    def stop(self):
        if self.icon is not None:
            self.icon.stop()
            self.icon = None
