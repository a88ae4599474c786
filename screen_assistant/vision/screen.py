"""
Screen Capture Provider - Local screen capture with mss.

Uses:
- mss (cross-platform screen capture, fast)
- PIL for conversion, resizing and encoding

The blocking grab runs in a worker thread so the event loop stays free.
"""

import asyncio
import time
from io import BytesIO
from typing import Optional
import logging

import mss
import mss.exception
from PIL import Image

from screen_assistant.assistant.errors import CaptureError, ErrorClass
from .base import ScreenCapture, CaptureResult

logger = logging.getLogger(__name__)


class MssScreenCapture(ScreenCapture):
    """
    Screen capture provider using mss (cross-platform).

    Example:
        capture = MssScreenCapture(monitor=1)
        result = await capture.capture()
    """

    def __init__(
        self,
        monitor: int = 1,
        image_format: str = "png",
        image_quality: int = 85,
        max_dimension: Optional[int] = None,
    ):
        """
        Initialize screen capture provider.

        Args:
            monitor: Monitor index (0 = all monitors, 1+ = specific)
            image_format: Output format (png, jpeg, webp)
            image_quality: JPEG/WebP quality (1-100)
            max_dimension: Max width/height (resize if larger), None keeps full size
        """
        self.monitor = monitor
        # Pillow only knows the "jpeg" spelling
        image_format = image_format.lower()
        self.image_format = "jpeg" if image_format == "jpg" else image_format
        self.image_quality = image_quality
        self.max_dimension = max_dimension

    @property
    def name(self) -> str:
        return "mss"

    async def capture(self) -> CaptureResult:
        logger.info("Initiating screen capture...")
        try:
            result = await asyncio.to_thread(self._grab)
        except (mss.exception.ScreenShotError, OSError, ValueError) as e:
            logger.error(f"Screenshot capture failed: {e}")
            if "permission" in str(e).lower():
                raise CaptureError(ErrorClass.PERMISSION_DENIED, str(e)) from e
            raise CaptureError(ErrorClass.CAPTURE_FAILED, str(e)) from e

        logger.info(f"Screenshot captured: {result.size_kb}KB")
        return result

    def _grab(self) -> CaptureResult:
        timestamp = time.time()

        # mss handles are thread-bound on some platforms, open one per grab
        with mss.mss() as sct:
            monitors = sct.monitors
            if 0 < self.monitor < len(monitors):
                target = monitors[self.monitor]
            else:
                target = monitors[0]
            shot = sct.grab(target)

        img = Image.frombytes("RGB", shot.size, shot.bgra, "raw", "BGRX")

        if self.max_dimension and max(img.size) > self.max_dimension:
            ratio = self.max_dimension / max(img.size)
            new_size = (int(img.width * ratio), int(img.height * ratio))
            img = img.resize(new_size, Image.Resampling.LANCZOS)
            logger.debug(f"Resized image to {new_size}")

        buffer = BytesIO()
        save_kwargs = {}
        if self.image_format in ("jpeg", "webp"):
            save_kwargs["quality"] = self.image_quality
        img.save(buffer, format=self.image_format.upper(), **save_kwargs)

        return CaptureResult(
            image_data=buffer.getvalue(),
            width=img.width,
            height=img.height,
            format=self.image_format,
            timestamp=timestamp,
            metadata={
                "monitor": self.monitor,
                "original_size": tuple(shot.size),
            }
        )

    def list_monitors(self) -> list[dict]:
        """
        List available monitors.

        Returns:
            List of monitor info dicts with index, x, y, width, height
        """
        try:
            with mss.mss() as sct:
                monitors = list(sct.monitors)
        except mss.exception.ScreenShotError as e:
            logger.error(f"Failed to list displays: {e}")
            return []

        logger.info(f"Found {len(monitors) - 1} display(s)")
        return [
            {
                "index": i,
                "x": m["left"],
                "y": m["top"],
                "width": m["width"],
                "height": m["height"],
            }
            for i, m in enumerate(monitors)
        ]
