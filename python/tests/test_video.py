"""Tests for video start, status polling and finalization."""

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from bananapod.db.models import HistoryRecord
from bananapod.kv.video_ops import VideoOperationHandle
from bananapod.services.genai.types import VideoPoll
from bananapod.services.video import VideoService
from bananapod.storage.client import StorageError
from tests.helpers import ALICE, ScriptedGenaiClient, make_png, to_data_url

OP = "models/veo/operations/op-1"


def status(client: TestClient, name: str = OP):
    return client.get("/api/video/status", params={"name": name})


class TestStart:
    def test_start_returns_operation_name(self, alice_client: TestClient, genai_client):
        response = alice_client.post(
            "/api/video/start", json={"prompt": "a sunrise", "aspectRatio": "9:16"}
        )

        assert response.status_code == 200
        assert response.json() == {"data": {"ok": True, "operationName": OP}}
        assert genai_client.calls[0] == {
            "op": "start_video",
            "prompt": "a sunrise",
            "aspect_ratio": "9:16",
            "image": None,
        }

    def test_start_stores_handle(self, alice_client: TestClient, genai_client):
        alice_client.post("/api/video/start", json={"prompt": "a sunrise"})

        assert status(alice_client).status_code == 200
        assert genai_client.calls[-1] == {"op": "poll_video", "operation_name": OP}

    def test_start_with_image(self, alice_client: TestClient, genai_client):
        still = make_png()
        alice_client.post(
            "/api/video/start",
            json={
                "prompt": "animate",
                "image": {
                    "kind": "dataUrl",
                    "dataUrl": to_data_url(still),
                    "mimeType": "image/png",
                },
            },
        )

        assert genai_client.calls[0]["image"].data == still
        assert genai_client.calls[0]["aspect_ratio"] == "16:9"

    def test_missing_prompt(self, alice_client: TestClient, genai_client):
        response = alice_client.post("/api/video/start", json={"prompt": " "})

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Missing prompt"
        assert genai_client.calls == []

    def test_missing_prompt_checked_before_image(self, alice_client: TestClient, genai_client):
        response = alice_client.post(
            "/api/video/start",
            json={"prompt": "", "image": {"kind": "mediaId", "mediaId": "someone-elses"}},
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Missing prompt"
        assert genai_client.calls == []

    def test_unknown_image_reference(self, alice_client: TestClient, genai_client):
        response = alice_client.post(
            "/api/video/start",
            json={"prompt": "animate", "image": {"kind": "mediaId", "mediaId": "nope"}},
        )

        assert response.status_code == 404
        assert genai_client.calls == []

    def test_invalid_aspect_ratio(self, alice_client: TestClient):
        response = alice_client.post("/api/video/start", json={"prompt": "x", "aspectRatio": "1:1"})
        assert response.status_code == 400


class TestStatus:
    @pytest.fixture
    def started(self, alice_client: TestClient) -> TestClient:
        alice_client.post("/api/video/start", json={"prompt": "a sunrise"})
        return alice_client

    def test_not_done(self, started: TestClient):
        response = status(started)

        assert response.status_code == 200
        assert response.json() == {"data": {"ok": True, "done": False, "pollAfterSeconds": 10}}

    def test_missing_name(self, alice_client: TestClient):
        response = alice_client.get("/api/video/status")

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Missing name"

    def test_unknown_operation(self, alice_client: TestClient):
        response = status(alice_client, "models/veo/operations/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_NOT_FOUND"

    def test_foreign_operation(self, started: TestClient, bob_client: TestClient, genai_client):
        response = status(bob_client)

        assert response.status_code == 404
        assert not any(c["op"] == "poll_video" for c in genai_client.calls)

    def test_finalize_creates_record(self, started: TestClient, genai_client, media_store):
        genai_client.polls.append(VideoPoll(done=True, output_uri="https://files.test/v.mp4"))

        response = status(started)

        data = response.json()["data"]
        assert data["done"] is True
        assert data["mimeType"] == "video/mp4"
        assert data["mediaUrl"] == f"/api/media/{data['mediaId']}"
        assert "error" not in data

        history = started.get("/api/history").json()["data"]["items"]
        assert history[0]["id"] == data["mediaId"]
        assert history[0]["kind"] == "video"
        assert history[0]["prompt"] == "a sunrise"

        assert media_store.keys() == [f"{ALICE}/{data['mediaId']}.mp4"]

        media = started.get(data["mediaUrl"])
        assert media.content == genai_client.video_bytes

    def test_finalized_operation_is_gone(self, started: TestClient, genai_client):
        genai_client.polls.append(VideoPoll(done=True, output_uri="https://files.test/v.mp4"))
        status(started)

        assert status(started).status_code == 404

    def test_failed_operation(self, started: TestClient, genai_client):
        genai_client.polls.append(VideoPoll(done=True, error="Safety filter triggered"))

        response = status(started)

        assert response.status_code == 200
        assert response.json()["data"] == {
            "ok": True,
            "done": True,
            "error": "Safety filter triggered",
        }
        assert started.get("/api/history").json()["data"]["items"] == []
        # The handle is kept until it expires.
        assert status(started).json()["data"]["done"] is False

    def test_done_without_uri(self, started: TestClient, genai_client):
        genai_client.polls.append(VideoPoll(done=True))

        response = status(started)

        assert response.status_code == 502
        assert started.get("/api/history").json()["data"]["items"] == []


class GatedGenaiClient(ScriptedGenaiClient):
    """Provider double whose video download waits until released."""

    def __init__(self) -> None:
        super().__init__()
        self.downloading = asyncio.Event()
        self.release = asyncio.Event()

    async def download_video(self, uri: str) -> tuple[bytes, str]:
        self.downloading.set()
        await self.release.wait()
        return await super().download_video(uri)


class TestFinalizeOnce:
    async def start(self, operation_store) -> None:
        await operation_store.put(VideoOperationHandle(OP, ALICE, "a sunrise"), 60)

    @pytest.mark.asyncio
    async def test_concurrent_polls_finalize_once(
        self, operation_store, media_store, session_factory
    ):
        genai = GatedGenaiClient()
        genai.polls.extend([VideoPoll(done=True, output_uri="https://files.test/v.mp4")] * 2)
        service = VideoService(genai, media_store, operation_store, session_factory)
        await self.start(operation_store)

        first = asyncio.create_task(service.status(ALICE, OP))
        await genai.downloading.wait()
        second = await service.status(ALICE, OP)
        genai.release.set()
        finalized = await first

        assert second.done is False
        assert second.poll_after_seconds == 10
        assert finalized.done is True
        assert sum(c["op"] == "download_video" for c in genai.calls) == 1
        assert len(media_store.keys()) == 1
        with session_factory() as db:
            assert db.scalar(select(func.count()).select_from(HistoryRecord)) == 1
        assert await operation_store.get(OP) is None

    @pytest.mark.asyncio
    async def test_failed_finalize_releases_claim(
        self, operation_store, media_store, session_factory, monkeypatch
    ):
        genai = ScriptedGenaiClient()
        genai.polls.extend([VideoPoll(done=True, output_uri="https://files.test/v.mp4")] * 2)
        service = VideoService(genai, media_store, operation_store, session_factory)
        await self.start(operation_store)

        async def failing_put(key, data, *, content_type):
            raise StorageError("bucket unavailable")

        monkeypatch.setattr(media_store, "put_object", failing_put)
        with pytest.raises(StorageError):
            await service.status(ALICE, OP)

        monkeypatch.undo()
        result = await service.status(ALICE, OP)

        assert result.done is True
        assert result.media_id is not None
