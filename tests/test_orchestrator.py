import asyncio

import pytest

from screen_assistant.assistant import (
    ANALYZING,
    AUTO_CAPTURE_STATUS,
    CAPTURE_COMPLETE,
    CAPTURE_STARTED,
    AnalysisError,
    CaptureError,
    CaptureOrchestrator,
    ErrorClass,
    SessionState,
    human_message,
)
from screen_assistant.vision.prompts import DEFAULT_PROMPT

from .conftest import EventRecorder, FakeCapture, FakeClient, FakeClock


# ==================== Pipeline ====================

@pytest.mark.asyncio
async def test_successful_capture_emits_complete_once(orchestrator, recorder, capture, client):
    session = await orchestrator.request_immediate_capture()

    assert session.state is SessionState.SUCCEEDED
    assert session.result_text == "Screen shows a code editor."
    assert recorder.names() == [CAPTURE_STARTED, ANALYZING, CAPTURE_COMPLETE]
    assert recorder.payloads(CAPTURE_COMPLETE) == [{
        "success": True,
        "analysis": "Screen shows a code editor.",
        "timestamp": "2023-11-14T22:13:20.000+00:00",
    }]
    assert not orchestrator.is_busy
    assert orchestrator.active_session is None

    assert capture.calls == 1
    assert len(client.calls) == 1
    call = client.calls[0]
    assert call["api_key"] == "sk-test"
    assert call["prompt"] == DEFAULT_PROMPT
    assert call["image"].image_data == capture.data
    assert call["timeout"] == 60.0
    assert call["model"] == "gpt-4o"


@pytest.mark.asyncio
async def test_permission_denied_skips_capture_and_analysis(orchestrator, recorder, capture,
                                                           client, permissions):
    permissions.granted = False

    session = await orchestrator.request_immediate_capture()

    assert session.state is SessionState.FAILED
    assert session.error_class is ErrorClass.PERMISSION_DENIED
    assert capture.calls == 0
    assert client.calls == []
    assert recorder.names() == [CAPTURE_STARTED, CAPTURE_COMPLETE]
    payload = recorder.payloads(CAPTURE_COMPLETE)[0]
    assert payload["success"] is False
    assert payload["error"] == human_message(ErrorClass.PERMISSION_DENIED)


@pytest.mark.asyncio
async def test_missing_api_key_captures_but_never_calls_api(orchestrator, recorder, capture,
                                                           client, settings):
    settings.set("api_key", "")

    session = await orchestrator.request_immediate_capture()

    assert session.error_class is ErrorClass.NO_API_KEY
    assert capture.calls == 1
    assert client.calls == []
    assert ANALYZING not in recorder.names()
    assert recorder.payloads(CAPTURE_COMPLETE)[0]["error"] == (
        "OpenAI API key not configured. Please add your API key in Settings."
    )


@pytest.mark.asyncio
async def test_rate_limit_message_is_verbatim(orchestrator, recorder, client):
    client.error = AnalysisError(ErrorClass.RATE_LIMITED, "Rate limit reached for gpt-4o")

    session = await orchestrator.request_immediate_capture()

    assert session.error_class is ErrorClass.RATE_LIMITED
    assert session.error_detail == "Rate limit reached for gpt-4o"
    assert recorder.payloads(CAPTURE_COMPLETE)[0]["error"] == (
        "Rate limit exceeded. Please wait a moment before trying again."
    )


@pytest.mark.asyncio
async def test_capture_failure_keeps_underlying_message(orchestrator, recorder, capture, client):
    capture.error = CaptureError(ErrorClass.CAPTURE_FAILED, "XGetImage() failed")

    session = await orchestrator.request_immediate_capture()

    assert session.error_class is ErrorClass.CAPTURE_FAILED
    assert session.error_detail == "XGetImage() failed"
    assert client.calls == []
    payload = recorder.payloads(CAPTURE_COMPLETE)[0]
    assert payload["error"] == human_message(ErrorClass.CAPTURE_FAILED)
    assert "XGetImage" not in payload["error"]


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    RuntimeError("display server went away"),
    KeyError("JPG"),
    MemoryError(),
])
async def test_any_capture_exception_is_capture_failed(orchestrator, recorder, capture, client,
                                                       error):
    capture.error = error

    session = await orchestrator.request_immediate_capture()

    assert session.error_class is ErrorClass.CAPTURE_FAILED
    assert session.error_detail == repr(error)
    assert client.calls == []
    assert recorder.payloads(CAPTURE_COMPLETE)[0]["error"] == (
        "Failed to capture screenshot. Please try again."
    )
    assert not orchestrator.is_busy


@pytest.mark.asyncio
async def test_unexpected_exception_is_classified_unknown(orchestrator, recorder, client):
    client.error = RuntimeError("boom")

    session = await orchestrator.request_immediate_capture()

    assert session.error_class is ErrorClass.UNKNOWN
    assert "boom" in session.error_detail
    assert recorder.payloads(CAPTURE_COMPLETE)[0]["success"] is False
    assert not orchestrator.is_busy


@pytest.mark.asyncio
async def test_slow_analysis_times_out(capture, settings, permissions, timer):
    orchestrator = CaptureOrchestrator(
        capture=capture,
        client=FakeClient(delay=5),
        settings=settings,
        permissions=permissions,
        timer=timer,
        analysis_timeout=0.05,
    )
    recorder = EventRecorder(orchestrator.events)

    session = await orchestrator.request_immediate_capture()

    assert session.error_class is ErrorClass.TIMEOUT
    assert recorder.payloads(CAPTURE_COMPLETE)[0]["error"] == "Request timed out. Please try again."


@pytest.mark.asyncio
async def test_image_released_on_success_and_failure(orchestrator, capture, client):
    session = await orchestrator.request_immediate_capture()
    assert session.image is None
    assert len(capture.results) == 1

    client.error = AnalysisError(ErrorClass.SERVICE_UNAVAILABLE, "Bad gateway")
    session = await orchestrator.request_immediate_capture()
    assert session.state is SessionState.FAILED
    assert session.image is None


@pytest.mark.asyncio
async def test_custom_prompt_and_model_come_from_settings(orchestrator, client, settings):
    settings.update({"custom_prompt": "What error is shown?", "model": "gpt-4o-mini"})

    await orchestrator.request_immediate_capture()

    call = client.calls[0]
    assert call["prompt"].user == "What error is shown?"
    assert call["prompt"].system == DEFAULT_PROMPT.system
    assert call["model"] == "gpt-4o-mini"


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_pipeline(orchestrator, recorder):
    def broken(_payload):
        raise RuntimeError("listener bug")

    orchestrator.events.subscribe(CAPTURE_STARTED, broken)

    session = await orchestrator.request_immediate_capture()

    assert session.succeeded
    assert recorder.names() == [CAPTURE_STARTED, ANALYZING, CAPTURE_COMPLETE]


# ==================== Single-flight ====================

@pytest.mark.asyncio
async def test_request_while_busy_is_a_silent_noop(orchestrator, recorder, capture):
    capture.gate = asyncio.Event()

    first = asyncio.create_task(orchestrator.request_immediate_capture())
    await asyncio.sleep(0)
    assert orchestrator.is_busy
    assert orchestrator.active_session.state is SessionState.CAPTURING

    assert await orchestrator.request_immediate_capture() is None
    assert await orchestrator.request_immediate_capture() is None
    assert capture.calls == 1
    assert recorder.names() == [CAPTURE_STARTED]

    capture.gate.set()
    session = await first
    assert session.succeeded
    assert not orchestrator.is_busy

    # Nothing was queued
    assert recorder.names().count(CAPTURE_COMPLETE) == 1


@pytest.mark.asyncio
async def test_at_most_one_session_in_flight(orchestrator, capture):
    capture.gate = asyncio.Event()
    in_flight = []

    def on_started(_payload):
        in_flight.append(orchestrator.active_session)

    orchestrator.events.subscribe(CAPTURE_STARTED, on_started)

    tasks = [asyncio.create_task(orchestrator.request_immediate_capture()) for _ in range(5)]
    await asyncio.sleep(0)
    capture.gate.set()
    results = await asyncio.gather(*tasks)

    sessions = [s for s in results if s is not None]
    assert len(sessions) == 1
    assert len(in_flight) == 1
    assert results.count(None) == 4


@pytest.mark.asyncio
async def test_sequential_sessions_do_not_interleave_events(orchestrator, recorder):
    await orchestrator.request_immediate_capture()
    await orchestrator.request_immediate_capture()

    assert recorder.names() == [
        CAPTURE_STARTED, ANALYZING, CAPTURE_COMPLETE,
        CAPTURE_STARTED, ANALYZING, CAPTURE_COMPLETE,
    ]


# ==================== Auto-capture ====================

@pytest.mark.asyncio
async def test_start_auto_capture_arms_timer_and_persists(orchestrator, recorder, timer, settings):
    orchestrator.start_auto_capture(10000)

    assert timer.starts == [10000]
    assert orchestrator.auto_capture_running
    assert orchestrator.auto_capture_interval_ms == 10000
    assert settings.get("auto_capture_enabled") is True
    assert recorder.payloads(AUTO_CAPTURE_STATUS) == [{"enabled": True}]

    await timer.fire()
    assert recorder.names().count(CAPTURE_COMPLETE) == 1


def test_start_auto_capture_write_failure_leaves_timer_idle(orchestrator, recorder, timer,
                                                           settings, monkeypatch):
    def read_only(key, value):
        raise OSError("read-only file system")

    monkeypatch.setattr(settings, "set", read_only)

    with pytest.raises(OSError):
        orchestrator.start_auto_capture(10000)

    assert timer.starts == []
    assert not orchestrator.auto_capture_running
    assert recorder.events == []


def test_start_auto_capture_defaults_to_stored_interval(orchestrator, timer, settings):
    settings.set("capture_interval_ms", 15000)
    orchestrator.start_auto_capture()
    assert timer.starts == [15000]


@pytest.mark.parametrize("interval", [0, -1000, True, 1.5, "10000"])
def test_start_auto_capture_rejects_bad_interval(orchestrator, timer, interval):
    with pytest.raises(ValueError):
        orchestrator.start_auto_capture(interval)
    assert timer.starts == []


@pytest.mark.asyncio
async def test_stop_auto_capture_is_idempotent(orchestrator, recorder, timer, capture, settings):
    orchestrator.start_auto_capture(10000)

    orchestrator.stop_auto_capture()
    orchestrator.stop_auto_capture()
    orchestrator.stop_auto_capture()

    assert not orchestrator.auto_capture_running
    assert settings.get("auto_capture_enabled") is False
    await timer.fire()
    assert capture.calls == 0
    assert recorder.payloads(AUTO_CAPTURE_STATUS)[1:] == [{"enabled": False}] * 3


def test_stop_without_start_is_harmless(orchestrator, settings):
    orchestrator.stop_auto_capture()
    assert settings.get("auto_capture_enabled") is False


@pytest.mark.asyncio
async def test_tick_while_busy_is_skipped(orchestrator, timer, capture):
    orchestrator.start_auto_capture(10000)
    capture.gate = asyncio.Event()

    manual = asyncio.create_task(orchestrator.request_immediate_capture())
    await asyncio.sleep(0)

    await timer.fire()
    assert capture.calls == 1

    capture.gate.set()
    await manual


def test_interval_change_restarts_running_timer(orchestrator, timer, settings):
    orchestrator.start_auto_capture(10000)

    orchestrator.update_settings({"capture_interval_ms": 30000})

    assert timer.starts == [10000, 30000]
    assert orchestrator.auto_capture_interval_ms == 30000
    assert settings.get("capture_interval_ms") == 30000


def test_interval_change_while_stopped_does_not_start_timer(orchestrator, timer, settings):
    orchestrator.update_settings({"capture_interval_ms": 30000})

    assert timer.starts == []
    assert settings.get("capture_interval_ms") == 30000


def test_same_interval_does_not_restart(orchestrator, timer):
    orchestrator.start_auto_capture(10000)
    orchestrator.update_settings({"capture_interval_ms": 10000, "show_notifications": False})
    assert timer.starts == [10000]


def test_update_settings_rejects_auto_capture_flag(orchestrator, settings):
    with pytest.raises(ValueError):
        orchestrator.update_settings({"auto_capture_enabled": True})
    assert settings.get("auto_capture_enabled") is False


def test_invalid_update_leaves_settings_untouched(orchestrator, settings):
    with pytest.raises(ValueError):
        orchestrator.update_settings({"api_key": "sk-new", "capture_interval_ms": -5})
    assert settings.get("api_key") == "sk-test"
    assert settings.get("capture_interval_ms") == 10000


def test_restore_auto_capture(orchestrator, timer, settings, permissions):
    assert orchestrator.restore_auto_capture() is False

    settings.set("auto_capture_enabled", True)
    permissions.granted = False
    assert orchestrator.restore_auto_capture() is False
    assert timer.starts == []

    permissions.granted = True
    assert orchestrator.restore_auto_capture() is True
    assert timer.starts == [10000]


# ==================== Shutdown ====================

@pytest.mark.asyncio
async def test_shutdown_cancels_timer_and_in_flight_capture(orchestrator, recorder, timer,
                                                            capture, settings):
    orchestrator.start_auto_capture(10000)
    capture.gate = asyncio.Event()
    in_flight = asyncio.create_task(orchestrator.request_immediate_capture())
    await asyncio.sleep(0)

    await orchestrator.shutdown()

    assert timer.closed
    assert not orchestrator.auto_capture_running
    with pytest.raises(asyncio.CancelledError):
        await in_flight
    assert not orchestrator.is_busy
    assert CAPTURE_COMPLETE not in recorder.names()
    # Left enabled so the next launch restores it
    assert settings.get("auto_capture_enabled") is True


@pytest.mark.asyncio
async def test_no_activity_after_shutdown(orchestrator, recorder, timer, capture):
    await orchestrator.shutdown()
    await orchestrator.shutdown()

    assert await orchestrator.request_immediate_capture() is None
    orchestrator.start_auto_capture(10000)
    assert timer.starts == []
    assert capture.calls == 0
    assert recorder.events == []


class ShutdownDuringCapture(FakeCapture):
    orchestrator = None

    async def capture(self):
        result = await super().capture()
        await self.orchestrator.shutdown()
        return result


@pytest.mark.asyncio
async def test_pipeline_abandons_after_shutdown_signal(client, settings, permissions, timer):
    capture = ShutdownDuringCapture()
    orchestrator = CaptureOrchestrator(
        capture=capture,
        client=client,
        settings=settings,
        permissions=permissions,
        timer=timer,
        clock=FakeClock(),
    )
    capture.orchestrator = orchestrator
    recorder = EventRecorder(orchestrator.events)

    session = await orchestrator.request_immediate_capture()

    assert session.state is SessionState.FAILED
    assert session.image is None
    assert client.calls == []
    assert recorder.names() == [CAPTURE_STARTED]
    assert not orchestrator.is_busy
