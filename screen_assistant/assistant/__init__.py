"""
Assistant Module - The capture → analyze cycle.

- CaptureOrchestrator: timer, single-flight guard, pipeline
- CaptureSession: one attempt and its outcome
- ErrorClass: failure taxonomy and user-facing messages
- EventEmitter: events for the presentation layer
"""

from .errors import (
    AnalysisError,
    AssistantError,
    CaptureError,
    ErrorClass,
    HUMAN_MESSAGES,
    human_message,
)
from .events import (
    ANALYZING,
    AUTO_CAPTURE_STATUS,
    CAPTURE_COMPLETE,
    CAPTURE_STARTED,
    EventEmitter,
)
from .session import CaptureSession, SessionState
from .timer import AsyncioIntervalTimer, IntervalTimer
from .orchestrator import CaptureOrchestrator

__all__ = [
    "AnalysisError",
    "AssistantError",
    "CaptureError",
    "ErrorClass",
    "HUMAN_MESSAGES",
    "human_message",
    "ANALYZING",
    "AUTO_CAPTURE_STATUS",
    "CAPTURE_COMPLETE",
    "CAPTURE_STARTED",
    "EventEmitter",
    "CaptureSession",
    "SessionState",
    "AsyncioIntervalTimer",
    "IntervalTimer",
    "CaptureOrchestrator",
]
