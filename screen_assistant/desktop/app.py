"""
Desktop Application

Tray application that captures the screen on demand or on a timer,
sends it to the OpenAI vision API and shows the answer in a small
window and as a system notification.

Features:
- Main window (pywebview) with results and settings
- System tray with quick actions
- Global hotkeys (F9 capture now, F12 show/hide)
- Minimize to tray on close
- Auto-capture restored on launch
"""

import asyncio
import json
import logging
import subprocess
import sys
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from screen_assistant.assistant import (
    ANALYZING,
    AUTO_CAPTURE_STATUS,
    CAPTURE_COMPLETE,
    CAPTURE_STARTED,
    AnalysisError,
    CaptureOrchestrator,
    CaptureSession,
    ErrorClass,
    human_message,
)
from screen_assistant.utils import SettingsStore, install_fault_handlers
from screen_assistant.vision import MssScreenCapture, OpenAIVisionClient, SystemPermissionProbe
from screen_assistant.vision.permissions import SETTINGS_URL
from .notifications import notify_analysis
from .tray import TrayIcon

logger = logging.getLogger(__name__)

FRONTEND_DIR = Path(__file__).parent / "frontend"

# Optional imports with fallbacks
try:
    import webview
    WEBVIEW_AVAILABLE = True
except ImportError:
    WEBVIEW_AVAILABLE = False
    logger.warning("pywebview not installed. Install with: pip install pywebview")

try:
    from pynput import keyboard
    PYNPUT_AVAILABLE = True
except ImportError:
    PYNPUT_AVAILABLE = False
    logger.warning("pynput not installed. Hotkeys disabled. Install with: pip install pynput")


@dataclass
class DesktopConfig:
    """Configuration for the desktop application."""
    # Window settings
    width: int = 900
    height: int = 700
    min_width: int = 600
    min_height: int = 500

    # Features
    enable_hotkeys: bool = True
    enable_tray: bool = True
    capture_on_start: bool = False

    # Paths
    settings_path: Optional[Path] = None
    html_path: str = ""
    icon_path: str = ""

    # Debug
    debug: bool = False

    def __post_init__(self):
        if not self.html_path:
            self.html_path = str(FRONTEND_DIR / "index.html")


class ScreenAssistantApp:
    """
    Main desktop application.

    The orchestrator lives on an asyncio loop in a background thread;
    pywebview owns the main thread, pystray and pynput run their own.
    Calls from those threads are marshalled onto the loop.
    """

    def __init__(self, config: Optional[DesktopConfig] = None):
        self.config = config or DesktopConfig()
        self.settings = SettingsStore(self.config.settings_path)

        snapshot = self.settings.snapshot()
        self.client = OpenAIVisionClient(model=snapshot.model)
        self.screen = MssScreenCapture(monitor=snapshot.monitor)
        self.orchestrator = CaptureOrchestrator(
            capture=self.screen,
            client=self.client,
            settings=self.settings,
            permissions=SystemPermissionProbe(),
        )

        # Components
        self.window = None
        self.tray: Optional[TrayIcon] = None
        self.hotkey_listener = None

        # State
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._loop_ready = threading.Event()
        self._ready = threading.Event()
        self._stopping = False
        self._quitting = False
        self._visible = True
        self._lock = threading.Lock()

        self._subscribe_events()
        logger.info("ScreenAssistantApp initialized")

    # ==================== Event loop ====================

    def _start_loop(self):
        self._loop_thread = threading.Thread(target=self._run_loop, daemon=True, name="orchestrator")
        self._loop_thread.start()
        self._loop_ready.wait(timeout=5)

    def _run_loop(self):
        """Run the asyncio event loop in background thread."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        install_fault_handlers(self._loop)
        self._loop.call_soon(self._loop_ready.set)
        try:
            self._loop.run_forever()
        finally:
            self._loop.close()

    def submit(self, coro) -> Future:
        """Schedule a coroutine on the orchestrator loop from any thread."""
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def call(self, fn: Callable, *args, timeout: float = 5) -> Any:
        """Run a plain callable on the orchestrator loop and wait for its result."""
        async def run():
            return fn(*args)
        return self.submit(run()).result(timeout=timeout)

    # ==================== Lifecycle ====================

    def start(self):
        """Start the application (blocks until the window closes)."""
        if not WEBVIEW_AVAILABLE:
            logger.error("pywebview is required! Install with: pip install pywebview")
            return

        self._start_loop()

        if self.config.enable_tray:
            self._start_tray()

        if self.config.enable_hotkeys and PYNPUT_AVAILABLE:
            self._start_hotkeys()

        if self.orchestrator.settings.get("auto_capture_enabled"):
            self.call(self.orchestrator.restore_auto_capture)

        if self.config.capture_on_start:
            self.capture_now()

        # Start webview (blocking)
        self._start_window()

    def stop(self):
        """Stop the application. Timer first, window last."""
        with self._lock:
            if self._stopping:
                return
            self._stopping = True
        logger.info("Application shutting down")

        if self._loop and self._loop.is_running():
            try:
                self.submit(self.orchestrator.shutdown()).result(timeout=10)
                self.submit(self.client.aclose()).result(timeout=2)
            except Exception as e:
                logger.warning(f"Error during orchestrator shutdown: {e}")
            self._loop.call_soon_threadsafe(self._loop.stop)

        if self.tray:
            self.tray.stop()

        if self.hotkey_listener:
            self.hotkey_listener.stop()

        if self.window:
            self._quitting = True
            self.window.destroy()

    def quit(self):
        self._quitting = True
        self.stop()

    def _start_window(self):
        """Create and start the webview window."""
        api = DesktopAPI(self)

        self.window = webview.create_window(
            title="AI Screen Assistant",
            url=self.config.html_path,
            js_api=api,
            width=self.config.width,
            height=self.config.height,
            min_size=(self.config.min_width, self.config.min_height),
        )

        self.window.events.loaded += self._on_window_loaded
        self.window.events.closing += self._on_window_closing
        self.window.events.closed += self._on_window_closed

        webview.start(debug=self.config.debug)

    def _start_tray(self):
        self.tray = TrayIcon(
            on_show=self.show_window,
            on_capture=self.capture_now,
            on_toggle_auto=self._toggle_auto_from_tray,
            is_auto_capture=lambda: self.orchestrator.auto_capture_running,
            on_settings=self._open_settings,
            on_quit=self.quit,
            icon_path=self.config.icon_path,
        )
        if not self.tray.start():
            self.tray = None

    def _start_hotkeys(self):
        """Start global hotkey listener."""
        def on_press(key):
            try:
                if key == keyboard.Key.f9:
                    self.capture_now()
                elif key == keyboard.Key.f12:
                    self.toggle_visibility()
            except Exception as e:
                logger.error(f"Hotkey error: {e}")

        self.hotkey_listener = keyboard.Listener(on_press=on_press)
        self.hotkey_listener.daemon = True
        self.hotkey_listener.start()
        logger.info("Hotkeys: F9=capture now, F12=toggle window")

    # ==================== Orchestrator events ====================

    def _subscribe_events(self):
        events = self.orchestrator.events
        events.subscribe(CAPTURE_STARTED, lambda _: self._dispatch(CAPTURE_STARTED))
        events.subscribe(ANALYZING, lambda _: self._dispatch(ANALYZING))
        events.subscribe(CAPTURE_COMPLETE, self._on_capture_complete)
        events.subscribe(AUTO_CAPTURE_STATUS, self._on_auto_capture_status)

    def _on_capture_complete(self, payload: dict):
        self._dispatch(CAPTURE_COMPLETE, payload)
        if payload.get("success") and self.settings.get("show_notifications"):
            notify_analysis(payload["analysis"])

    def _on_auto_capture_status(self, payload: dict):
        self._dispatch(AUTO_CAPTURE_STATUS, payload)
        if self.tray:
            self.tray.refresh(payload["enabled"])

    def _dispatch(self, event: str, detail: Optional[dict] = None):
        """Forward an event to the page as a DOM CustomEvent."""
        detail_json = json.dumps(detail if detail is not None else {})
        self._eval_js(
            f"window.dispatchEvent(new CustomEvent({json.dumps(event)}, {{detail: {detail_json}}}))"
        )

    def _eval_js(self, script: str):
        """Safely evaluate JavaScript in the window."""
        if self.window and self._ready.is_set() and not self._stopping:
            try:
                self.window.evaluate_js(script)
            except Exception as e:
                logger.error(f"JS eval error: {e}")

    # ==================== Window events ====================

    def _on_window_loaded(self):
        self._ready.set()
        logger.info("Window loaded")

    def _on_window_closing(self):
        """Hide instead of closing when minimize-to-tray is on."""
        if self._quitting or not (self.tray and self.tray.active):
            return True
        if not self.settings.get("minimize_to_tray"):
            return True
        self.window.hide()
        self._visible = False
        return False

    def _on_window_closed(self):
        logger.info("Window closed")
        self.window = None
        self.stop()

    # ==================== Public Methods ====================

    def capture_now(self, wait: bool = False) -> Optional[CaptureSession]:
        """
        Trigger one capture from any thread.

        Args:
            wait: Block until the attempt finishes and return its session
        """
        future = self.submit(self.orchestrator.request_immediate_capture())
        future.add_done_callback(self._after_capture)
        if wait:
            return future.result()
        return None

    def _after_capture(self, future: Future):
        if future.cancelled() or future.exception() is not None:
            return
        session = future.result()
        if session is not None and session.error_class is ErrorClass.PERMISSION_DENIED:
            # Runs on the loop thread; the dialog must not block it
            threading.Thread(target=self.prompt_permission, daemon=True).start()

    def set_auto_capture(self, enabled: bool) -> bool:
        if enabled:
            if not self.orchestrator.check_permission():
                self.prompt_permission()
                return False
            self.call(self.orchestrator.start_auto_capture)
        else:
            self.call(self.orchestrator.stop_auto_capture)
        return enabled

    def _toggle_auto_from_tray(self):
        self.set_auto_capture(not self.orchestrator.auto_capture_running)

    def prompt_permission(self):
        """Ask the user to grant Screen Recording and open the settings pane."""
        if sys.platform != "darwin" or not self.window:
            return
        if self.orchestrator.permissions.request():
            return
        self.show_window()
        accepted = self.window.create_confirmation_dialog(
            "Screen Capture Permission Required",
            "This app needs permission to capture your screen.\n\n"
            "Please grant Screen Recording permission in System Settings > "
            "Privacy & Security > Screen Recording. After granting permission, "
            "you may need to restart the app."
        )
        if accepted:
            subprocess.run(["open", SETTINGS_URL], check=False)

    def show_window(self):
        if self.window:
            self.window.show()
            self._visible = True

    def toggle_visibility(self):
        """Toggle window visibility."""
        if not self.window:
            return

        with self._lock:
            if self._visible:
                self.window.hide()
                self._visible = False
            else:
                self.window.show()
                self._visible = True

    def _open_settings(self):
        self.show_window()
        self._dispatch("open-settings")


class DesktopAPI:
    """
    Python API exposed to JavaScript via pywebview.

    Methods here can be called from JS: pywebview.api.method_name()

    NOTE: Only simple methods are exposed. We don't store complex objects
    as attributes to avoid pywebview serialization errors with __weakref__.
    """

    def __init__(self, app: ScreenAssistantApp):
        import weakref
        self._app_ref = weakref.ref(app)

    @property
    def _app(self) -> Optional[ScreenAssistantApp]:
        return self._app_ref()

    def capture_now(self) -> dict:
        """Capture and analyze now ("Help me now" button)."""
        app = self._app
        if app is None:
            return {"started": False, "busy": False}
        if app.orchestrator.is_busy:
            return {"started": False, "busy": True}

        session = app.capture_now(wait=True)
        if session is None:
            return {"started": False, "busy": True}
        return {"started": True, "busy": False, "success": session.succeeded}

    def toggle_auto_capture(self, enabled: bool) -> bool:
        app = self._app
        if app is None:
            return False
        return app.set_auto_capture(bool(enabled))

    def get_settings(self) -> dict:
        app = self._app
        if app is None:
            return {}
        settings = app.settings.snapshot().to_dict()
        settings["auto_capture_enabled"] = app.orchestrator.auto_capture_running
        return settings

    def update_settings(self, partial: dict) -> dict:
        app = self._app
        if app is None:
            return {"ok": False, "error": "Application is shutting down"}
        try:
            updated = app.call(app.orchestrator.update_settings, dict(partial))
        except ValueError as e:
            logger.warning(f"Rejected settings update: {e}")
            return {"ok": False, "error": str(e)}
        app.screen.monitor = updated.monitor
        return {"ok": True}

    def check_permission(self) -> bool:
        app = self._app
        return app.orchestrator.check_permission() if app else False

    def test_api_key(self, api_key: Optional[str] = None) -> dict:
        app = self._app
        if app is None:
            return {"ok": False}
        key = api_key if api_key is not None else app.settings.get("api_key")
        try:
            app.submit(app.client.test_connection(key)).result(timeout=15)
        except AnalysisError as e:
            return {"ok": False, "error": e.user_message}
        except FutureTimeoutError:
            logger.warning("API key check did not finish in time")
            return {"ok": False, "error": human_message(ErrorClass.TIMEOUT)}
        return {"ok": True}

    def show_window(self):
        app = self._app
        if app:
            app.show_window()

    def quit(self):
        app = self._app
        if app:
            app.quit()
