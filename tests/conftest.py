"""Shared fakes for orchestrator tests."""

import asyncio
from typing import Optional

import pytest

from screen_assistant.assistant import (
    ANALYZING,
    AUTO_CAPTURE_STATUS,
    CAPTURE_COMPLETE,
    CAPTURE_STARTED,
    CaptureOrchestrator,
    EventEmitter,
    IntervalTimer,
)
from screen_assistant.utils import SettingsStore
from screen_assistant.vision import (
    CaptureResult,
    PermissionProbe,
    ScreenCapture,
    VisionAnalysisClient,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


class FakeCapture(ScreenCapture):
    def __init__(self, data: bytes = PNG_BYTES, error: Optional[Exception] = None):
        self.data = data
        self.error = error
        self.calls = 0
        self.gate: Optional[asyncio.Event] = None
        self.results: list[CaptureResult] = []

    @property
    def name(self) -> str:
        return "fake"

    async def capture(self) -> CaptureResult:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        result = CaptureResult(image_data=self.data, width=2, height=2, timestamp=1.0)
        self.results.append(result)
        return result


class FakeClient(VisionAnalysisClient):
    def __init__(self, answer: str = "Screen shows a code editor.",
                 error: Optional[Exception] = None, delay: float = 0.0):
        self.answer = answer
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []

    async def analyze(self, image, prompt, *, api_key, timeout=60.0, model=None):
        self.calls.append({
            "image": image,
            "prompt": prompt,
            "api_key": api_key,
            "timeout": timeout,
            "model": model,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.answer


class FakePermissions(PermissionProbe):
    def __init__(self, granted: bool = True):
        self.granted = granted
        self.checks = 0

    def is_granted(self) -> bool:
        self.checks += 1
        return self.granted


class FakeTimer(IntervalTimer):
    """Timer that only fires when the test says so."""

    def __init__(self):
        self.callback = None
        self._interval_ms = None
        self.starts: list[int] = []
        self.cancels = 0
        self.closed = False

    def start(self, interval_ms, callback):
        self.callback = callback
        self._interval_ms = interval_ms
        self.starts.append(interval_ms)

    def cancel(self):
        self.cancels += 1
        self.callback = None

    def close(self):
        self.closed = True
        self.cancel()

    @property
    def running(self) -> bool:
        return self.callback is not None

    @property
    def interval_ms(self):
        return self._interval_ms

    async def fire(self):
        """Simulate one tick; a cancelled timer does nothing."""
        if self.callback is not None:
            await self.callback()


class EventRecorder:
    def __init__(self, emitter: EventEmitter):
        self.events: list[tuple[str, Optional[dict]]] = []
        for name in (CAPTURE_STARTED, ANALYZING, CAPTURE_COMPLETE, AUTO_CAPTURE_STATUS):
            emitter.subscribe(name, lambda payload, name=name: self.events.append((name, payload)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads(self, name: str) -> list[Optional[dict]]:
        return [payload for event, payload in self.events if event == name]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def permissions():
    return FakePermissions()


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def settings():
    store = SettingsStore()
    store.set("api_key", "sk-test")
    return store


@pytest.fixture
def orchestrator(capture, client, settings, permissions, timer):
    return CaptureOrchestrator(
        capture=capture,
        client=client,
        settings=settings,
        permissions=permissions,
        timer=timer,
        clock=FakeClock(),
    )


@pytest.fixture
def recorder(orchestrator):
    return EventRecorder(orchestrator.events)
