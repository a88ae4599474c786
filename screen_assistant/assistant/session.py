"""
Capture session - one attempt of the capture → analyze pipeline.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from screen_assistant.assistant.errors import ErrorClass, human_message
from screen_assistant.vision.base import CaptureResult


class SessionState(Enum):
    """Lifecycle of a capture session."""
    IDLE = "idle"
    CAPTURING = "capturing"
    ANALYZING = "analyzing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.SUCCEEDED, SessionState.FAILED})


@dataclass
class CaptureSession:
    """
    Ephemeral record of a single capture-analyze attempt.

    The captured image is owned by the session and dropped with
    release_image() once the attempt ends, whatever the outcome.

    Attributes:
        started_at: Unix timestamp when the attempt began
        state: Current lifecycle state
        image: Captured frame while the attempt is running
        result_text: Analysis text on success
        error_class: Failure category on failure
        error_detail: Underlying failure message (logs only)
        finished_at: Unix timestamp when a terminal state was reached
    """
    started_at: float
    state: SessionState = SessionState.IDLE
    image: Optional[CaptureResult] = None
    result_text: Optional[str] = None
    error_class: Optional[ErrorClass] = None
    error_detail: Optional[str] = None
    finished_at: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def succeeded(self) -> bool:
        return self.state is SessionState.SUCCEEDED

    @property
    def error_message(self) -> Optional[str]:
        if self.error_class is None:
            return None
        return human_message(self.error_class)

    def succeed(self, text: str, now: Optional[float] = None):
        self.state = SessionState.SUCCEEDED
        self.result_text = text
        self.finished_at = now if now is not None else time.time()

    def fail(self, error_class: ErrorClass, detail: Optional[str] = None,
             now: Optional[float] = None):
        self.state = SessionState.FAILED
        self.error_class = error_class
        self.error_detail = detail
        self.finished_at = now if now is not None else time.time()

    def release_image(self):
        """Drop the captured frame."""
        self.image = None
