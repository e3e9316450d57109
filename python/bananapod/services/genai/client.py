"""Gemini / Veo media generation client.

Endpoints (base URL configurable, default https://generativelanguage.googleapis.com):
- Image: POST {base}/v1beta/models/{image_model}:generateContent
- Video start: POST {base}/v1beta/models/{video_model}:predictLongRunning
- Video status: GET {base}/v1beta/{operation_name}
- Video download: GET {output_uri}

Auth:
- Header: x-goog-api-key: <key>
- NEVER put key in query param
- NEVER log URLs or headers

Image request body:
{
  "contents": [{"parts": [...]}],
  "generationConfig": {
    "responseModalities": ["IMAGE"],
    "imageConfig": {"aspectRatio": "16:9", "imageSize": "2K"}   # only set fields
  }
}

Part ordering for edits:
- with a mask:    [text, *images, mask]
- without a mask: [*images, text]

Response (image):
- The last inlineData part is the produced image; the last text part is the note
- No candidates/content → Declined("The AI response was blocked ..." + reason)
- Content without inlineData → Declined(text part or default note)

No retries: every failure surfaces once as UpstreamError.
"""

import base64
import binascii

import httpx

from bananapod.logging import get_logger
from bananapod.services.genai.errors import (
    UpstreamError,
    UpstreamErrorClass,
    classify_provider_error,
    error_message_for,
)
from bananapod.services.genai.types import (
    Declined,
    GenOutcome,
    ImageConfig,
    ImageInput,
    Produced,
    VideoAspectRatio,
    VideoPoll,
)

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_IMAGE_MODEL = "gemini-3-pro-image-preview"
DEFAULT_VIDEO_MODEL = "veo-3.1-generate-preview"
DEFAULT_VIDEO_MIME = "video/mp4"

BLOCKED_NOTE = "The AI response was blocked or did not contain content."
NO_IMAGE_NOTE = "The AI did not generate an image. Please try a different prompt."


class GeminiMediaClient:
    """Adapter over the Gemini image and Veo video endpoints.

    Constructed once in the app lifespan with the shared httpx.AsyncClient
    and stored on app.state.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        image_model: str = DEFAULT_IMAGE_MODEL,
        video_model: str = DEFAULT_VIDEO_MODEL,
        timeout_s: float = 120,
    ):
        self._client = client
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._image_model = image_model
        self._video_model = video_model
        self._timeout = httpx.Timeout(timeout_s, connect=10.0)

    async def generate_from_text(
        self, prompt: str, image_config: ImageConfig | None = None
    ) -> GenOutcome:
        """Text-to-image generation."""
        body = self._build_image_body([{"text": prompt}], image_config)
        data = await self._post_json(self._image_url(), body)
        return parse_image_response(data)

    async def edit_image(
        self,
        prompt: str,
        images: list[ImageInput],
        mask: ImageInput | None = None,
        image_config: ImageConfig | None = None,
    ) -> GenOutcome:
        """Image editing with one or more source images and an optional mask."""
        body = self._build_image_body(build_edit_parts(prompt, images, mask), image_config)
        data = await self._post_json(self._image_url(), body)
        return parse_image_response(data)

    async def start_video(
        self,
        prompt: str,
        aspect_ratio: VideoAspectRatio,
        image: ImageInput | None = None,
    ) -> str:
        """Start a long-running video generation and return its operation name."""
        instance: dict = {"prompt": prompt}
        if image is not None:
            instance["image"] = {
                "bytesBase64Encoded": _b64encode(image.data),
                "mimeType": image.mime_type,
            }
        body = {
            "instances": [instance],
            "parameters": {"aspectRatio": aspect_ratio, "sampleCount": 1},
        }
        url = f"{self._base_url}/v1beta/models/{self._video_model}:predictLongRunning"
        data = await self._post_json(url, body)

        operation_name = data.get("name")
        if not operation_name:
            raise UpstreamError(
                UpstreamErrorClass.BAD_RESPONSE,
                "Failed to get operation name from video generation request.",
            )
        logger.info("video_operation_started", operation_name=operation_name)
        return operation_name

    async def poll_video(self, operation_name: str) -> VideoPoll:
        """Check a video operation once."""
        url = f"{self._base_url}/v1beta/{operation_name}"
        response = await self._send("GET", url)
        return parse_video_operation(_json_or_raise(response))

    async def download_video(self, uri: str) -> tuple[bytes, str]:
        """Download a finished video. Returns (bytes, mime_type)."""
        response = await self._send("GET", uri, follow_redirects=True)
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        return response.content, content_type or DEFAULT_VIDEO_MIME

    def _image_url(self) -> str:
        return f"{self._base_url}/v1beta/models/{self._image_model}:generateContent"

    def _build_headers(self) -> dict[str, str]:
        """Build request headers. The API key goes in a header, never the query."""
        return {
            "x-goog-api-key": self._api_key,
            "Content-Type": "application/json",
        }

    def _build_image_body(self, parts: list[dict], image_config: ImageConfig | None) -> dict:
        generation_config: dict = {"responseModalities": ["IMAGE"]}
        if image_config is not None:
            generation_config["imageConfig"] = image_config.to_wire()
        return {"contents": [{"parts": parts}], "generationConfig": generation_config}

    async def _post_json(self, url: str, body: dict) -> dict:
        response = await self._send("POST", url, json=body)
        return _json_or_raise(response)

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, normalizing every failure into UpstreamError."""
        try:
            response = await self._client.request(
                method,
                url,
                headers=self._build_headers(),
                timeout=self._timeout,
                **kwargs,
            )
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            json_body = _safe_json(e.response)
            error_class = classify_provider_error(status_code, json_body, None)
            logger.warning(
                "upstream_http_error",
                status_code=status_code,
                error_class=error_class.value,
            )
            raise UpstreamError(
                error_class, error_message_for(error_class), status_code=status_code
            ) from e
        except httpx.RequestError as e:
            error_class = classify_provider_error(None, None, e)
            logger.warning(
                "upstream_transport_error",
                error_class=error_class.value,
                exception_type=type(e).__name__,
            )
            raise UpstreamError(error_class, error_message_for(error_class)) from e


def build_edit_parts(
    prompt: str, images: list[ImageInput], mask: ImageInput | None
) -> list[dict]:
    """Order request parts for an edit call."""
    image_parts = [_inline_part(image) for image in images]
    text_part = {"text": prompt}
    if mask is not None:
        return [text_part, *image_parts, _inline_part(mask)]
    return [*image_parts, text_part]


def parse_image_response(data: dict) -> GenOutcome:
    """Normalize a generateContent response into Produced or Declined."""
    image_b64: str | None = None
    image_mime: str | None = None
    text_note: str | None = None

    candidates = data.get("candidates") or []
    content = candidates[0].get("content") if candidates else None

    if content:
        for part in content.get("parts") or []:
            inline = part.get("inlineData")
            if inline:
                image_b64 = inline.get("data")
                image_mime = inline.get("mimeType")
            elif part.get("text"):
                text_note = part["text"]
    else:
        text_note = BLOCKED_NOTE
        finish_reason = candidates[0].get("finishReason") if candidates else None
        if finish_reason:
            text_note += f" (Reason: {finish_reason})"

    if not image_b64:
        return Declined(text_note=text_note or NO_IMAGE_NOTE)

    try:
        image_bytes = base64.b64decode(image_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise UpstreamError(
            UpstreamErrorClass.BAD_RESPONSE, "Provider returned undecodable image data."
        ) from e

    return Produced(data=image_bytes, mime_type=image_mime or "image/png", text_note=text_note)


def parse_video_operation(data: dict) -> VideoPoll:
    """Normalize an operation resource into a VideoPoll."""
    if not data.get("done"):
        return VideoPoll(done=False)

    error = data.get("error")
    if error:
        return VideoPoll(done=True, error=error.get("message") or "Video generation failed.")

    samples = ((data.get("response") or {}).get("generateVideoResponse") or {}).get(
        "generatedSamples"
    ) or []
    uri = ((samples[0] or {}).get("video") or {}).get("uri") if samples else None
    return VideoPoll(done=True, output_uri=uri)


def _inline_part(image: ImageInput) -> dict:
    return {"inlineData": {"mimeType": image.mime_type, "data": _b64encode(image.data)}}


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _safe_json(response: httpx.Response) -> dict | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _json_or_raise(response: httpx.Response) -> dict:
    body = _safe_json(response)
    if body is None:
        raise UpstreamError(
            UpstreamErrorClass.BAD_RESPONSE, "Provider returned a non-JSON response."
        )
    return body
