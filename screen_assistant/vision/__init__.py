"""
Vision Module - Screen capture and visual analysis.

This module provides:
- Screen capture (mss)
- Screen capture permission checks
- Image analysis via the OpenAI vision API

Each collaborator has an abstract base class so the orchestrator
can run against fakes in tests.
"""

from .base import (
    CaptureResult,
    PermissionProbe,
    ScreenCapture,
    VisionAnalysisClient,
    VisionPrompt,
)
from .openai_client import OpenAIVisionClient
from .permissions import SystemPermissionProbe
from .prompts import DEFAULT_PROMPT, build_prompt
from .screen import MssScreenCapture

__all__ = [
    "CaptureResult",
    "PermissionProbe",
    "ScreenCapture",
    "VisionAnalysisClient",
    "VisionPrompt",
    "OpenAIVisionClient",
    "SystemPermissionProbe",
    "DEFAULT_PROMPT",
    "build_prompt",
    "MssScreenCapture",
]
