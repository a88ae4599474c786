"""
Error taxonomy for the capture → analyze cycle.

Every failure the pipeline can hit is reduced to one ErrorClass.
The class decides the message the user sees; the original provider
or OS message travels alongside as `detail` and only reaches the log.
"""

from enum import Enum
from typing import Optional


class ErrorClass(Enum):
    """Closed set of failure categories."""
    PERMISSION_DENIED = "permission_denied"
    NO_API_KEY = "no_api_key"
    INVALID_API_KEY = "invalid_api_key"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    NETWORK_UNREACHABLE = "network_unreachable"
    TIMEOUT = "timeout"
    CAPTURE_FAILED = "capture_failed"
    UNKNOWN = "unknown"


HUMAN_MESSAGES: dict[ErrorClass, str] = {
    ErrorClass.PERMISSION_DENIED: (
        "Screen capture permission denied. Please grant permission in system settings."
    ),
    ErrorClass.NO_API_KEY: (
        "OpenAI API key not configured. Please add your API key in Settings."
    ),
    ErrorClass.INVALID_API_KEY: (
        "Invalid API key. Please check your OpenAI API key in Settings."
    ),
    ErrorClass.RATE_LIMITED: (
        "Rate limit exceeded. Please wait a moment before trying again."
    ),
    ErrorClass.SERVICE_UNAVAILABLE: (
        "OpenAI service is temporarily unavailable. Please try again later."
    ),
    ErrorClass.NETWORK_UNREACHABLE: (
        "Network error. Please check your internet connection."
    ),
    ErrorClass.TIMEOUT: "Request timed out. Please try again.",
    ErrorClass.CAPTURE_FAILED: "Failed to capture screenshot. Please try again.",
    ErrorClass.UNKNOWN: (
        "Something went wrong while analyzing the screen. Check the log for details."
    ),
}


def human_message(error_class: ErrorClass) -> str:
    """User-facing text for an error class."""
    return HUMAN_MESSAGES[error_class]


class AssistantError(Exception):
    """
    Base exception carrying a classified failure.

    Attributes:
        error_class: Category used to pick the user-facing message
        detail: Underlying message for operator diagnostics
    """

    def __init__(self, error_class: ErrorClass, detail: Optional[str] = None):
        self.error_class = error_class
        self.detail = detail
        super().__init__(detail or human_message(error_class))

    @property
    def user_message(self) -> str:
        return human_message(self.error_class)


class CaptureError(AssistantError):
    """Screen capture failed."""


class AnalysisError(AssistantError):
    """Vision API call failed."""
