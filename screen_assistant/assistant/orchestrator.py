"""
Capture Orchestrator - Owns the capture → analyze cycle.

Sequence for one attempt:
    permission gate → screen capture → API key gate → vision analysis
    → capture-complete event

Rules:
- Single-flight: a request made while an attempt is in flight is a
  no-op (nothing queued, no event, returns None).
- Every failure ends the attempt in a FAILED session plus one
  capture-complete{success: False} event. Nothing is raised past
  the orchestrator except task cancellation.
- No retries. The next attempt comes from the timer or the user.
- After shutdown() no further events are emitted.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from screen_assistant.assistant.errors import (
    AnalysisError,
    AssistantError,
    CaptureError,
    ErrorClass,
    human_message,
)
from screen_assistant.assistant.events import (
    ANALYZING,
    AUTO_CAPTURE_STATUS,
    CAPTURE_COMPLETE,
    CAPTURE_STARTED,
    EventEmitter,
)
from screen_assistant.assistant.session import CaptureSession, SessionState
from screen_assistant.assistant.timer import AsyncioIntervalTimer, IntervalTimer
from screen_assistant.utils.settings_store import Settings, SettingsStore
from screen_assistant.vision.base import PermissionProbe, ScreenCapture, VisionAnalysisClient
from screen_assistant.vision.prompts import build_prompt

logger = logging.getLogger(__name__)

ANALYSIS_TIMEOUT_S = 60.0


class PipelineAbandoned(Exception):
    """Raised inside the pipeline when shutdown began mid-attempt."""


def _iso_timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="milliseconds")


class CaptureOrchestrator:
    """
    Runs capture-analyze attempts and the auto-capture timer.

    All collaborators are injected so tests can swap in fakes for the
    screen, the network client, the OS permission check and the timer.

    Example:
        orchestrator = CaptureOrchestrator(
            capture=MssScreenCapture(),
            client=OpenAIVisionClient(),
            settings=SettingsStore(path),
            permissions=SystemPermissionProbe(),
        )
        orchestrator.events.subscribe("capture-complete", print)
        session = await orchestrator.request_immediate_capture()
    """

    def __init__(
        self,
        capture: ScreenCapture,
        client: VisionAnalysisClient,
        settings: SettingsStore,
        permissions: PermissionProbe,
        timer: Optional[IntervalTimer] = None,
        events: Optional[EventEmitter] = None,
        clock: Callable[[], float] = time.time,
        analysis_timeout: float = ANALYSIS_TIMEOUT_S,
    ):
        self.capture = capture
        self.client = client
        self.settings = settings
        self.permissions = permissions
        self.timer = timer or AsyncioIntervalTimer()
        self.events = events or EventEmitter()
        self.clock = clock
        self.analysis_timeout = analysis_timeout

        # State
        self._busy = False
        self._active_session: Optional[CaptureSession] = None
        self._pipeline_task: Optional[asyncio.Task] = None
        self._closed = False

    # ==================== State ====================

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def active_session(self) -> Optional[CaptureSession]:
        return self._active_session

    @property
    def auto_capture_running(self) -> bool:
        return self.timer.running

    @property
    def auto_capture_interval_ms(self) -> Optional[int]:
        return self.timer.interval_ms if self.timer.running else None

    @property
    def closed(self) -> bool:
        return self._closed

    # ==================== Capture ====================

    def check_permission(self) -> bool:
        return self.permissions.is_granted()

    async def request_immediate_capture(self) -> Optional[CaptureSession]:
        """
        Run one capture-analyze attempt.

        Returns:
            The terminal CaptureSession, or None when another attempt is
            already in flight or the orchestrator is shut down
        """
        if self._closed:
            logger.debug("Capture requested after shutdown, ignoring")
            return None
        # check-and-set with no await in between
        if self._busy:
            logger.debug("Capture already in progress, skipping request")
            return None
        self._busy = True

        session = CaptureSession(started_at=self.clock())
        self._active_session = session
        self._pipeline_task = asyncio.current_task()
        try:
            await self._run_pipeline(session)
        except asyncio.CancelledError:
            if not session.is_terminal:
                session.fail(ErrorClass.UNKNOWN, "cancelled", now=self.clock())
            logger.info("Capture cancelled")
            raise
        finally:
            session.release_image()
            self._active_session = None
            self._pipeline_task = None
            self._busy = False
        return session

    def _ensure_open(self):
        if self._closed:
            raise PipelineAbandoned()

    async def _run_pipeline(self, session: CaptureSession):
        session.state = SessionState.CAPTURING
        logger.info("Performing screen capture...")
        self._emit(CAPTURE_STARTED)

        try:
            if not self.check_permission():
                raise CaptureError(
                    ErrorClass.PERMISSION_DENIED,
                    "Screen capture permission not granted"
                )

            try:
                session.image = await self.capture.capture()
            except AssistantError:
                raise
            except Exception as e:
                logger.exception(f"Screen capture via {self.capture.name} failed")
                raise CaptureError(ErrorClass.CAPTURE_FAILED, repr(e)) from e
            self._ensure_open()
            logger.info("Screenshot captured successfully")

            settings = self.settings.snapshot()
            if not settings.api_key:
                raise AnalysisError(ErrorClass.NO_API_KEY, "OpenAI API key not configured")

            session.state = SessionState.ANALYZING
            self._emit(ANALYZING)

            analysis = await asyncio.wait_for(
                self.client.analyze(
                    session.image,
                    build_prompt(settings.custom_prompt),
                    api_key=settings.api_key,
                    timeout=self.analysis_timeout,
                    model=settings.model or None,
                ),
                timeout=self.analysis_timeout
            )
            self._ensure_open()

        except PipelineAbandoned:
            session.fail(ErrorClass.UNKNOWN, "abandoned during shutdown", now=self.clock())
            logger.info("Capture abandoned during shutdown")
            return
        except AssistantError as e:
            self._fail(session, e.error_class, e.detail)
            return
        except asyncio.TimeoutError:
            self._fail(session, ErrorClass.TIMEOUT,
                       f"no answer within {self.analysis_timeout:g}s")
            return
        except Exception as e:
            logger.exception("Unexpected capture/analysis error")
            self._fail(session, ErrorClass.UNKNOWN, repr(e))
            return

        now = self.clock()
        session.succeed(analysis, now=now)
        logger.info("Analysis complete")
        self._emit(CAPTURE_COMPLETE, {
            "success": True,
            "analysis": analysis,
            "timestamp": _iso_timestamp(now),
        })

    def _fail(self, session: CaptureSession, error_class: ErrorClass, detail: Optional[str]):
        now = self.clock()
        session.fail(error_class, detail, now=now)
        logger.error(f"Capture/analysis error [{error_class.value}]: {detail}")
        self._emit(CAPTURE_COMPLETE, {
            "success": False,
            "error": human_message(error_class),
            "timestamp": _iso_timestamp(now),
        })

    def _emit(self, event: str, payload: Optional[dict] = None):
        if self._closed:
            return
        self.events.emit(event, payload)

    # ==================== Auto-capture ====================

    def start_auto_capture(self, interval_ms: Optional[int] = None):
        """
        (Re)arm the repeating capture trigger.

        Args:
            interval_ms: Tick interval; defaults to the stored capture_interval_ms
        """
        if self._closed:
            logger.warning("Cannot start auto-capture after shutdown")
            return
        if interval_ms is None:
            interval_ms = self.settings.get("capture_interval_ms")
        if isinstance(interval_ms, bool) or not isinstance(interval_ms, int) or interval_ms <= 0:
            raise ValueError(f"interval_ms must be a positive integer, got {interval_ms!r}")

        self.settings.set("auto_capture_enabled", True)

        self.timer.cancel()
        self.timer.start(interval_ms, self._on_tick)
        logger.info(f"Starting auto-capture with interval: {interval_ms}ms")
        self._emit(AUTO_CAPTURE_STATUS, {"enabled": True})

    def stop_auto_capture(self):
        """Cancel the timer. Safe to call repeatedly."""
        self.timer.cancel()
        logger.info("Stopped auto-capture")

        self.settings.set("auto_capture_enabled", False)
        self._emit(AUTO_CAPTURE_STATUS, {"enabled": False})

    def restore_auto_capture(self) -> bool:
        """Start the timer on launch if it was left enabled."""
        if not self.settings.get("auto_capture_enabled"):
            return False
        if not self.check_permission():
            logger.warning("Auto-capture was enabled but permission is missing, not restoring")
            return False
        self.start_auto_capture()
        return True

    async def _on_tick(self):
        if self._busy:
            logger.debug("Auto-capture tick skipped, capture in progress")
            return
        await self.request_immediate_capture()

    # ==================== Settings ====================

    def update_settings(self, partial: dict) -> Settings:
        """
        Overwrite the given settings fields.

        A changed capture_interval_ms restarts a running timer with the
        new interval right away. Auto-capture itself is toggled through
        start_auto_capture()/stop_auto_capture(), not through here.
        """
        if "auto_capture_enabled" in partial:
            raise ValueError("auto_capture_enabled is controlled by start/stop auto-capture")

        previous = self.settings.snapshot()
        updated = self.settings.update(partial)
        logger.info("Settings updated")

        interval_changed = updated.capture_interval_ms != previous.capture_interval_ms
        if interval_changed and self.timer.running:
            self.start_auto_capture(updated.capture_interval_ms)
        return updated

    # ==================== Lifecycle ====================

    async def shutdown(self):
        """
        Stop the timer, then abandon any in-flight attempt.

        auto_capture_enabled stays as stored so the next launch can
        restore it.
        """
        if self._closed:
            return
        self.timer.cancel()
        self._closed = True
        self.timer.close()

        task = self._pipeline_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.wait({task}, timeout=5)
        logger.info("Orchestrator shut down")
