"""
Vision Base Classes - Abstract interfaces for screen capture and analysis.

Following the project's architecture patterns:
- Abstract Base Class (ABC) for each collaborator
- Dataclass for structured results
- Async methods so the orchestrator never blocks its event loop
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional
import base64


@dataclass
class CaptureResult:
    """
    Result from a screen capture.

    Attributes:
        image_data: Encoded image bytes (PNG/JPEG)
        width: Image width in pixels
        height: Image height in pixels
        format: Image format (png, jpeg, webp)
        timestamp: Unix timestamp of capture
        base64_data: Base64 encoded image for the vision API
        metadata: Additional capture metadata
    """
    image_data: bytes
    width: int
    height: int
    format: str = "png"
    timestamp: float = 0.0
    base64_data: str = ""
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        """Generate base64 data if not provided."""
        if not self.base64_data and self.image_data:
            self.base64_data = base64.b64encode(self.image_data).decode('utf-8')

    @property
    def size_kb(self) -> int:
        return round(len(self.image_data) / 1024)

    def to_data_url(self) -> str:
        """Convert to data URL for HTML/API use."""
        mime_type = f"image/{self.format}"
        return f"data:{mime_type};base64,{self.base64_data}"


@dataclass(frozen=True)
class VisionPrompt:
    """System + user prompt pair sent with every image."""
    system: str
    user: str


class ScreenCapture(ABC):
    """
    Produces a still image of the display on demand.

    Implementations raise CaptureError on failure.
    """

    @abstractmethod
    async def capture(self) -> CaptureResult:
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging."""
        pass


class VisionAnalysisClient(ABC):
    """
    Sends an image plus a prompt to a remote vision model.

    Implementations raise AnalysisError with a classified ErrorClass.
    """

    @abstractmethod
    async def analyze(
        self,
        image: CaptureResult,
        prompt: VisionPrompt,
        *,
        api_key: str,
        timeout: float = 60.0,
        model: Optional[str] = None
    ) -> str:
        """
        Analyze a captured image.

        Args:
            image: CaptureResult from ScreenCapture.capture()
            prompt: System/user prompt pair
            api_key: Credential for this request
            timeout: Request timeout in seconds
            model: Optional model override

        Returns:
            The model's text answer
        """
        pass

    async def aclose(self):
        """Release network resources."""
        pass


class PermissionProbe(ABC):
    """Reports whether the OS lets this process capture the screen."""

    @abstractmethod
    def is_granted(self) -> bool:
        pass

    def request(self) -> bool:
        """Ask the OS for permission; returns the resulting state."""
        return self.is_granted()
