"""
OpenAI Vision client.

Sends a captured screen plus the analysis prompt to the
OpenAI chat completions endpoint and classifies every failure
into an ErrorClass. The provider's own message is kept in
AnalysisError.detail for the log; users only ever see the
mapped category text.
"""

import logging
from typing import Optional

import httpx

from screen_assistant.assistant.errors import AnalysisError, ErrorClass
from .base import CaptureResult, VisionAnalysisClient, VisionPrompt

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"  # Vision-capable model
DEFAULT_TIMEOUT = 60.0
CONNECTION_TEST_TIMEOUT = 10.0


def classify_status(status_code: int) -> ErrorClass:
    """Map a non-2xx HTTP status to an error class."""
    if status_code == 401:
        return ErrorClass.INVALID_API_KEY
    if status_code == 429:
        return ErrorClass.RATE_LIMITED
    if 500 <= status_code < 600:
        return ErrorClass.SERVICE_UNAVAILABLE
    return ErrorClass.UNKNOWN


def classify_transport_error(error: httpx.TransportError) -> ErrorClass:
    """Map an httpx transport failure to an error class."""
    # ConnectTimeout is a TimeoutException, check it before NetworkError
    if isinstance(error, httpx.TimeoutException):
        return ErrorClass.TIMEOUT
    if isinstance(error, (httpx.NetworkError, httpx.ProxyError)):
        return ErrorClass.NETWORK_UNREACHABLE
    return ErrorClass.UNKNOWN


def provider_message(response: httpx.Response) -> str:
    """Extract `error.message` from an OpenAI error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or "Unknown API error"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return "Unknown API error"


def mask_key(api_key: str) -> str:
    """Shorten an API key for log output."""
    if not api_key:
        return "None"
    if len(api_key) <= 10:
        return "***"
    return api_key[:5] + "..." + api_key[-4:]


class OpenAIVisionClient(VisionAnalysisClient):
    """
    Vision analysis through the OpenAI chat completions API.

    Example:
        client = OpenAIVisionClient()
        text = await client.analyze(capture, DEFAULT_PROMPT, api_key="sk-...")
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 1000,
        image_detail: str = "high",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: API root, without trailing slash
            model: Default model for analysis requests
            max_tokens: Completion budget per request
            image_detail: OpenAI image detail level (low, high, auto)
            http_client: Pre-built client (tests inject a MockTransport here)
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.image_detail = image_detail
        self._client = http_client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    def _build_payload(self, image: CaptureResult, prompt: VisionPrompt,
                       model: Optional[str]) -> dict:
        return {
            "model": model or self.model,
            "messages": [
                {
                    "role": "system",
                    "content": prompt.system
                },
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "text",
                            "text": prompt.user
                        },
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": image.to_data_url(),
                                "detail": self.image_detail
                            }
                        }
                    ]
                }
            ],
            "max_tokens": self.max_tokens,
        }

    async def _request(self, method: str, path: str, api_key: str,
                       timeout: float, **kwargs) -> httpx.Response:
        if not api_key:
            raise AnalysisError(ErrorClass.NO_API_KEY, "API key not configured")

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                timeout=timeout,
                **kwargs
            )
        except httpx.TransportError as e:
            error_class = classify_transport_error(e)
            logger.error(f"OpenAI request failed ({error_class.value}): {e!r}")
            raise AnalysisError(error_class, str(e) or type(e).__name__) from e

        if response.is_success:
            return response

        message = provider_message(response)
        logger.error(f"API error {response.status_code}: {message}")
        raise AnalysisError(classify_status(response.status_code), message)

    async def analyze(
        self,
        image: CaptureResult,
        prompt: VisionPrompt,
        *,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        model: Optional[str] = None
    ) -> str:
        logger.info("Sending image to OpenAI Vision API...")
        logger.debug(f"   Model: {model or self.model}, key: {mask_key(api_key)}, "
                     f"image: {image.size_kb}KB")

        response = await self._request(
            "POST", "/chat/completions", api_key, timeout,
            json=self._build_payload(image, prompt, model),
        )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Malformed API response: {e!r}")
            raise AnalysisError(ErrorClass.UNKNOWN, f"Malformed API response: {e!r}") from e

        if not content:
            raise AnalysisError(ErrorClass.UNKNOWN, "No response content from API")

        logger.info(f"Analysis received successfully ({len(content)} characters)")
        return content

    async def test_connection(self, api_key: str) -> bool:
        """
        Check the key against the models endpoint.

        Returns:
            True when the key is accepted

        Raises:
            AnalysisError: classified the same way as analyze()
        """
        await self._request("GET", "/models", api_key, CONNECTION_TEST_TIMEOUT)
        logger.info("API key verified")
        return True

    async def aclose(self):
        """Close the HTTP client connection."""
        await self._client.aclose()
