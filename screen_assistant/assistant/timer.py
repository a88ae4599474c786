"""
Auto-capture timer.

A repeating trigger owned by the orchestrator. The asyncio version
spawns one task per tick, so the cadence does not stretch while a
capture is in flight; the orchestrator decides whether a tick is
skipped.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[object]]


class IntervalTimer(ABC):
    """Repeating trigger with idempotent cancellation."""

    @abstractmethod
    def start(self, interval_ms: int, callback: TickCallback):
        """Arm the timer; any previous schedule is replaced."""
        pass

    @abstractmethod
    def cancel(self):
        """Stop firing. Safe to call when not running."""
        pass

    def close(self):
        """Cancel for good, including any work a tick already started."""
        self.cancel()

    @property
    @abstractmethod
    def running(self) -> bool:
        pass

    @property
    @abstractmethod
    def interval_ms(self) -> Optional[int]:
        pass


class AsyncioIntervalTimer(IntervalTimer):
    """
    IntervalTimer on the running asyncio event loop.

    Must be started from within the loop it should run on.
    """

    def __init__(self):
        self._task: Optional[asyncio.Task] = None
        self._interval_ms: Optional[int] = None
        self._ticks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval_ms(self) -> Optional[int]:
        return self._interval_ms

    def start(self, interval_ms: int, callback: TickCallback):
        if isinstance(interval_ms, bool) or not isinstance(interval_ms, int) or interval_ms <= 0:
            raise ValueError(f"interval_ms must be a positive integer, got {interval_ms!r}")

        self.cancel()
        self._interval_ms = interval_ms
        self._task = asyncio.get_running_loop().create_task(
            self._run(interval_ms / 1000, callback),
            name="auto-capture-timer"
        )

    def cancel(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def close(self):
        self.cancel()
        for tick in list(self._ticks):
            tick.cancel()

    async def _run(self, interval_s: float, callback: TickCallback):
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(interval_s)
            tick = loop.create_task(self._fire(callback))
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)

    async def _fire(self, callback: TickCallback):
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Auto-capture tick failed")
