"""Upstream generation client (Gemini image models, Veo video models)."""

from bananapod.services.genai.client import GeminiMediaClient
from bananapod.services.genai.errors import (
    UpstreamError,
    UpstreamErrorClass,
    classify_provider_error,
)
from bananapod.services.genai.types import (
    Declined,
    GenOutcome,
    ImageConfig,
    ImageInput,
    Produced,
    VideoPoll,
)

__all__ = [
    "GeminiMediaClient",
    "UpstreamError",
    "UpstreamErrorClass",
    "classify_provider_error",
    "Declined",
    "GenOutcome",
    "ImageConfig",
    "ImageInput",
    "Produced",
    "VideoPoll",
]
