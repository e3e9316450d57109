"""Tests for the Gemini / Veo media client.

They use respx to mock the provider and exercise request construction,
response normalization and error classification.
"""

import base64
import json

import httpx
import pytest
import respx

from bananapod.services.genai.client import (
    BLOCKED_NOTE,
    NO_IMAGE_NOTE,
    GeminiMediaClient,
    build_edit_parts,
    parse_image_response,
    parse_video_operation,
)
from bananapod.services.genai.errors import (
    UpstreamError,
    UpstreamErrorClass,
    classify_provider_error,
)
from bananapod.services.genai.types import Declined, ImageConfig, ImageInput, Produced

BASE = "https://gemini.test"
IMAGE_URL = f"{BASE}/v1beta/models/img-model:generateContent"
VIDEO_URL = f"{BASE}/v1beta/models/vid-model:predictLongRunning"
PNG = b"\x89PNG\r\n\x1a\nfake"


def image_response(data: bytes = PNG, mime: str = "image/png", text: str | None = None) -> dict:
    parts = []
    if text:
        parts.append({"text": text})
    parts.append({"inlineData": {"mimeType": mime, "data": base64.b64encode(data).decode()}})
    return {"candidates": [{"content": {"parts": parts}}]}


@pytest.fixture
def httpx_client():
    """Create an httpx AsyncClient for testing."""
    return httpx.AsyncClient()


@pytest.fixture
def gemini(httpx_client) -> GeminiMediaClient:
    return GeminiMediaClient(
        httpx_client,
        "test-key",
        base_url=BASE,
        image_model="img-model",
        video_model="vid-model",
    )


def sent_json(route) -> dict:
    return json.loads(route.calls.last.request.content)


# =============================================================================
# Image generation
# =============================================================================


class TestGenerateFromText:
    @pytest.mark.asyncio
    @respx.mock
    async def test_produced(self, gemini):
        route = respx.post(IMAGE_URL).respond(200, json=image_response(text="Here it is"))

        outcome = await gemini.generate_from_text("a banana")

        assert outcome == Produced(data=PNG, mime_type="image/png", text_note="Here it is")
        request = route.calls.last.request
        assert request.headers["x-goog-api-key"] == "test-key"
        assert "key=" not in str(request.url)
        assert sent_json(route) == {
            "contents": [{"parts": [{"text": "a banana"}]}],
            "generationConfig": {"responseModalities": ["IMAGE"]},
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_image_config_only_includes_set_fields(self, gemini):
        route = respx.post(IMAGE_URL).respond(200, json=image_response())

        await gemini.generate_from_text("x", image_config=ImageConfig(aspect_ratio="16:9"))

        assert sent_json(route)["generationConfig"]["imageConfig"] == {"aspectRatio": "16:9"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_blocked_response_is_declined_with_reason(self, gemini):
        respx.post(IMAGE_URL).respond(200, json={"candidates": [{"finishReason": "SAFETY"}]})

        outcome = await gemini.generate_from_text("x")

        assert outcome == Declined(text_note=f"{BLOCKED_NOTE} (Reason: SAFETY)")

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_candidates_is_declined(self, gemini):
        respx.post(IMAGE_URL).respond(200, json={"promptFeedback": {"blockReason": "OTHER"}})

        outcome = await gemini.generate_from_text("x")

        assert outcome == Declined(text_note=BLOCKED_NOTE)

    @pytest.mark.asyncio
    @respx.mock
    async def test_text_only_response_is_declined_with_text(self, gemini):
        body = {"candidates": [{"content": {"parts": [{"text": "I can't draw that."}]}}]}
        respx.post(IMAGE_URL).respond(200, json=body)

        outcome = await gemini.generate_from_text("x")

        assert outcome == Declined(text_note="I can't draw that.")


class TestEditImage:
    @pytest.mark.asyncio
    @respx.mock
    async def test_parts_without_mask_put_text_last(self, gemini):
        route = respx.post(IMAGE_URL).respond(200, json=image_response())
        images = [ImageInput(b"one", "image/png"), ImageInput(b"two", "image/jpeg")]

        await gemini.edit_image("make it blue", images)

        parts = sent_json(route)["contents"][0]["parts"]
        assert parts == [
            {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(b"one").decode()}},
            {"inlineData": {"mimeType": "image/jpeg", "data": base64.b64encode(b"two").decode()}},
            {"text": "make it blue"},
        ]

    def test_parts_with_mask_put_text_first(self):
        parts = build_edit_parts(
            "fill", [ImageInput(b"src", "image/png")], ImageInput(b"mask", "image/png")
        )

        assert parts[0] == {"text": "fill"}
        assert parts[1]["inlineData"]["data"] == base64.b64encode(b"src").decode()
        assert parts[2]["inlineData"]["data"] == base64.b64encode(b"mask").decode()


class TestParseImageResponse:
    @staticmethod
    def _inline(data: bytes, mime: str) -> dict:
        return {"inlineData": {"mimeType": mime, "data": base64.b64encode(data).decode()}}

    def test_last_image_and_last_text_win(self):
        body = {
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {"text": "first"},
                            self._inline(b"a", "image/png"),
                            {"text": "second"},
                            self._inline(b"b", "image/webp"),
                        ]
                    }
                }
            ]
        }

        assert parse_image_response(body) == Produced(b"b", "image/webp", "second")

    def test_missing_mime_defaults_to_png(self):
        body = {"candidates": [{"content": {"parts": [{"inlineData": {"data": "YQ=="}}]}}]}
        assert parse_image_response(body) == Produced(b"a", "image/png", None)

    def test_empty_parts_use_default_note(self):
        body = {"candidates": [{"content": {"parts": []}}]}
        assert parse_image_response(body) == Declined(NO_IMAGE_NOTE)

    def test_undecodable_image_is_bad_response(self):
        body = {"candidates": [{"content": {"parts": [{"inlineData": {"data": "@@@"}}]}}]}
        with pytest.raises(UpstreamError) as exc_info:
            parse_image_response(body)
        assert exc_info.value.error_class == UpstreamErrorClass.BAD_RESPONSE


# =============================================================================
# Error classification
# =============================================================================


class TestErrorClassification:
    @pytest.mark.parametrize(
        "status,body,expected",
        [
            (
                400,
                {"error": {"details": [{"reason": "API_KEY_INVALID"}]}},
                UpstreamErrorClass.INVALID_KEY,
            ),
            (401, None, UpstreamErrorClass.INVALID_KEY),
            (403, None, UpstreamErrorClass.INVALID_KEY),
            (429, None, UpstreamErrorClass.RATE_LIMIT),
            (400, {"error": {"status": "RESOURCE_EXHAUSTED"}}, UpstreamErrorClass.RATE_LIMIT),
            (408, None, UpstreamErrorClass.TIMEOUT),
            (504, None, UpstreamErrorClass.TIMEOUT),
            (500, None, UpstreamErrorClass.PROVIDER_DOWN),
            (503, None, UpstreamErrorClass.PROVIDER_DOWN),
            (400, {"error": {"status": "INVALID_ARGUMENT"}}, UpstreamErrorClass.BAD_RESPONSE),
        ],
    )
    def test_classify_status(self, status, body, expected):
        assert classify_provider_error(status, body, None) == expected

    def test_classify_exceptions(self):
        assert (
            classify_provider_error(None, None, httpx.ReadTimeout("slow"))
            == UpstreamErrorClass.TIMEOUT
        )
        assert (
            classify_provider_error(None, None, httpx.ConnectError("refused"))
            == UpstreamErrorClass.PROVIDER_DOWN
        )
        assert classify_provider_error(None, None, None) == UpstreamErrorClass.PROVIDER_DOWN

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_becomes_upstream_error(self, gemini):
        respx.post(IMAGE_URL).respond(429, json={"error": {"status": "RESOURCE_EXHAUSTED"}})

        with pytest.raises(UpstreamError) as exc_info:
            await gemini.generate_from_text("x")

        assert exc_info.value.error_class == UpstreamErrorClass.RATE_LIMIT
        assert exc_info.value.status_code == 429
        assert "test-key" not in exc_info.value.message

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_becomes_upstream_error(self, gemini):
        respx.post(IMAGE_URL).mock(side_effect=httpx.ReadTimeout("timed out"))

        with pytest.raises(UpstreamError) as exc_info:
            await gemini.generate_from_text("x")

        assert exc_info.value.error_class == UpstreamErrorClass.TIMEOUT

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_body_is_bad_response(self, gemini):
        respx.post(IMAGE_URL).respond(200, content=b"<html>oops</html>")

        with pytest.raises(UpstreamError) as exc_info:
            await gemini.generate_from_text("x")

        assert exc_info.value.error_class == UpstreamErrorClass.BAD_RESPONSE


# =============================================================================
# Video
# =============================================================================


class TestVideo:
    @pytest.mark.asyncio
    @respx.mock
    async def test_start_returns_operation_name(self, gemini):
        route = respx.post(VIDEO_URL).respond(200, json={"name": "models/vid-model/operations/abc"})

        name = await gemini.start_video("a sunset", "9:16", ImageInput(b"still", "image/png"))

        assert name == "models/vid-model/operations/abc"
        body = sent_json(route)
        assert body["parameters"] == {"aspectRatio": "9:16", "sampleCount": 1}
        assert body["instances"][0]["prompt"] == "a sunset"
        assert body["instances"][0]["image"] == {
            "bytesBase64Encoded": base64.b64encode(b"still").decode(),
            "mimeType": "image/png",
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_start_without_name_is_bad_response(self, gemini):
        respx.post(VIDEO_URL).respond(200, json={})

        with pytest.raises(UpstreamError) as exc_info:
            await gemini.start_video("a sunset", "16:9")

        assert exc_info.value.error_class == UpstreamErrorClass.BAD_RESPONSE
        assert exc_info.value.message == (
            "Failed to get operation name from video generation request."
        )

    @pytest.mark.asyncio
    @respx.mock
    async def test_poll_done_with_uri(self, gemini):
        respx.get(f"{BASE}/v1beta/models/vid-model/operations/abc").respond(
            200,
            json={
                "done": True,
                "response": {
                    "generateVideoResponse": {
                        "generatedSamples": [{"video": {"uri": f"{BASE}/files/v.mp4"}}]
                    }
                },
            },
        )

        poll = await gemini.poll_video("models/vid-model/operations/abc")

        assert poll.done is True
        assert poll.error is None
        assert poll.output_uri == f"{BASE}/files/v.mp4"

    @pytest.mark.asyncio
    @respx.mock
    async def test_download_video(self, gemini):
        respx.get(f"{BASE}/files/v.mp4").respond(
            200, content=b"mp4-bytes", headers={"content-type": "video/mp4; codecs=avc1"}
        )

        data, mime = await gemini.download_video(f"{BASE}/files/v.mp4")

        assert data == b"mp4-bytes"
        assert mime == "video/mp4"

    @pytest.mark.asyncio
    @respx.mock
    async def test_download_defaults_mime(self, gemini):
        respx.get(f"{BASE}/files/v.mp4").respond(200, content=b"mp4-bytes")

        _, mime = await gemini.download_video(f"{BASE}/files/v.mp4")

        assert mime == "video/mp4"

    @pytest.mark.parametrize(
        "body,done,error,uri",
        [
            ({}, False, None, None),
            ({"done": False}, False, None, None),
            ({"done": True, "error": {"message": "quota"}}, True, "quota", None),
            ({"done": True, "error": {"code": 13}}, True, "Video generation failed.", None),
            ({"done": True, "response": {}}, True, None, None),
        ],
    )
    def test_parse_video_operation(self, body, done, error, uri):
        poll = parse_video_operation(body)
        assert (poll.done, poll.error, poll.output_uri) == (done, error, uri)
