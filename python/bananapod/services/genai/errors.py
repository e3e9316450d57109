"""Upstream error classification and normalization.

- Classifies Gemini/Veo HTTP and transport failures into normalized classes
- Called by GeminiMediaClient after catching httpx exceptions
- Provider declines (no image in the payload) are NOT errors; they are
  Declined outcomes (see types.py)

Error classes:
- E_UPSTREAM_INVALID_KEY: Authentication failure (401/403, API_KEY_INVALID)
- E_UPSTREAM_RATE_LIMIT: Rate limit exceeded (429, RESOURCE_EXHAUSTED)
- E_UPSTREAM_TIMEOUT: Request timed out
- E_UPSTREAM_PROVIDER_DOWN: Provider unavailable (5xx, network error)
- E_UPSTREAM_BAD_RESPONSE: Provider answered with something we can't use
"""

from enum import Enum

from bananapod.logging import get_logger

logger = get_logger(__name__)


class UpstreamErrorClass(str, Enum):
    """Normalized upstream error classifications."""

    INVALID_KEY = "E_UPSTREAM_INVALID_KEY"
    RATE_LIMIT = "E_UPSTREAM_RATE_LIMIT"
    TIMEOUT = "E_UPSTREAM_TIMEOUT"
    PROVIDER_DOWN = "E_UPSTREAM_PROVIDER_DOWN"
    BAD_RESPONSE = "E_UPSTREAM_BAD_RESPONSE"


class UpstreamError(Exception):
    """Exception for provider failures.

    Attributes:
        error_class: The normalized error classification
        message: Human-readable error message (never contains the API key)
        status_code: Provider HTTP status, if the provider answered at all
    """

    def __init__(
        self,
        error_class: UpstreamErrorClass,
        message: str,
        status_code: int | None = None,
    ):
        self.error_class = error_class
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def classify_provider_error(
    status_code: int | None,
    json_body: dict | None,
    exception: Exception | None,
) -> UpstreamErrorClass:
    """Classify a provider failure into a normalized error class.

    Args:
        status_code: HTTP status code (if available)
        json_body: Parsed JSON error response (if available)
        exception: The exception that was raised (if any)
    """
    # Transport-level failures carry no status code
    if exception is not None:
        exception_type = type(exception).__name__
        if "Timeout" in exception_type or "timeout" in str(exception).lower():
            return UpstreamErrorClass.TIMEOUT
        if "Network" in exception_type or "Connect" in exception_type:
            return UpstreamErrorClass.PROVIDER_DOWN

    if status_code is None:
        return UpstreamErrorClass.PROVIDER_DOWN

    body_str = str(json_body).lower() if json_body else ""

    if "api_key_invalid" in body_str:
        return UpstreamErrorClass.INVALID_KEY

    if status_code in (401, 403):
        return UpstreamErrorClass.INVALID_KEY

    if status_code == 429 or "resource_exhausted" in body_str:
        return UpstreamErrorClass.RATE_LIMIT

    if status_code in (408, 504):
        return UpstreamErrorClass.TIMEOUT

    if status_code >= 500:
        return UpstreamErrorClass.PROVIDER_DOWN

    return UpstreamErrorClass.BAD_RESPONSE


def error_message_for(error_class: UpstreamErrorClass) -> str:
    """User-safe message for an error class."""
    messages = {
        UpstreamErrorClass.INVALID_KEY: "The generation provider rejected the gateway credentials.",
        UpstreamErrorClass.RATE_LIMIT: (
            "The generation provider is rate limiting requests. Try again shortly."
        ),
        UpstreamErrorClass.TIMEOUT: "The generation provider timed out.",
        UpstreamErrorClass.PROVIDER_DOWN: "The generation provider is unavailable.",
        UpstreamErrorClass.BAD_RESPONSE: "The generation provider returned an unusable response.",
    }
    return messages[error_class]
