"""HTTP surface: request validation, response shapes, and error mapping."""

import httpx
import pytest
import pytest_asyncio

from conftest import make_oversized_header_png
from main import create_app
from models.errors import PersistenceUnavailable
from utils.settings import AppSettings


@pytest.fixture
def settings(tmp_path):
    return AppSettings(media_dir=tmp_path / "media", max_audio_bytes=1024)


@pytest_asyncio.fixture
async def client(manager, settings):
    app = create_app(settings=settings, session_manager=manager)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


async def _start(client, session_id="s-1", image_url="https://media.test/images/dog.png"):
    response = await client.post("/api/startConversation", json={"sessionId": session_id, "imageUrl": image_url})
    assert response.status_code == 200, response.text
    return response


def _failure(response, status_code):
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body["success"] is False
    assert body["error"]
    return body["error"]


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["session_manager_ready"] is True
    assert response.json()["db_initialized"] is False


async def test_unknown_route_uses_error_shape(client):
    _failure(await client.get("/api/nothingHere"), 404)


class TestAnalyzeImage:
    async def test_success(self, client, png_bytes):
        response = await client.post("/api/analyzeImage", files={"image": ("pic.png", png_bytes, "image/png")})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["conversationStarter"] == "What's that?"
        assert body["data"]["suggestedTopics"] == ["dogs", "parks", "playing"]

    async def test_missing_file(self, client):
        assert _failure(await client.post("/api/analyzeImage"), 400) == "No image file provided"

    async def test_non_image_upload(self, client):
        response = await client.post("/api/analyzeImage", files={"image": ("notes.txt", b"hello", "text/plain")})

        _failure(response, 400)

    async def test_undecodable_image(self, client, analyzer):
        response = await client.post("/api/analyzeImage", files={"image": ("pic.png", b"garbage", "image/png")})

        _failure(response, 400)
        assert analyzer.calls == []

    async def test_huge_declared_dimensions_are_invalid(self, client, analyzer):
        image = make_oversized_header_png(60000, 60000)

        response = await client.post("/api/analyzeImage", files={"image": ("bomb.png", image, "image/png")})

        _failure(response, 400)
        assert analyzer.calls == []

    async def test_too_large(self, client, manager, png_bytes):
        manager.max_image_bytes = 16

        response = await client.post("/api/analyzeImage", files={"image": ("pic.png", png_bytes, "image/png")})

        _failure(response, 413)

    async def test_analyzer_failure(self, client, analyzer, png_bytes):
        analyzer.error = RuntimeError("upstream exploded with secrets")

        response = await client.post("/api/analyzeImage", files={"image": ("pic.png", png_bytes, "image/png")})

        message = _failure(response, 502)
        assert "secrets" not in message


class TestUploadImage:
    async def test_returns_public_url(self, client, png_bytes):
        response = await client.post("/api/uploadImage", files={"image": ("pic.png", png_bytes, "image/png")})

        assert response.status_code == 200
        assert response.json()["data"]["imageUrl"].startswith("https://media.test/images/")

    async def test_storage_failure(self, client, media_store, png_bytes):
        media_store.fail_image = True

        response = await client.post("/api/uploadImage", files={"image": ("pic.png", png_bytes, "image/png")})

        assert _failure(response, 503) == "Failed to upload image"


class TestConversationLifecycle:
    async def test_start(self, client):
        response = await _start(client)

        assert response.json() == {"success": True, "data": {"sessionId": "s-1"}}

    async def test_start_requires_fields(self, client):
        response = await client.post("/api/startConversation", json={"sessionId": "s-1"})

        _failure(response, 400)

    async def test_start_rejects_malformed_body(self, client):
        response = await client.post(
            "/api/startConversation", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert _failure(response, 400).startswith("Validation error")

    async def test_duplicate_start(self, client):
        await _start(client)

        _failure(await client.post("/api/startConversation", json={"sessionId": "s-1", "imageUrl": "x"}), 409)

    async def test_voice_turn(self, client):
        await _start(client)

        response = await client.post(
            "/api/sendVoiceInput",
            data={"sessionId": "s-1", "transcription": "a dog"},
            files={"audio": ("recording.webm", b"\x1a\x45\xdf\xa3", "audio/webm")},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert "a dog" in data["message"]
        assert data["audioUrl"].startswith("https://media.test/audio/s-1/")

    async def test_voice_turn_without_audio_url(self, client, synthesizer):
        await _start(client)
        synthesizer.fail = True

        response = await client.post("/api/sendVoiceInput", data={"sessionId": "s-1", "transcription": "a dog"})

        assert response.status_code == 200
        assert "audioUrl" not in response.json()["data"]

    @pytest.mark.parametrize("form", [{"sessionId": "s-1"}, {"sessionId": "s-1", "transcription": "   "}, {"transcription": "hi"}])
    async def test_voice_turn_requires_fields(self, client, store, form):
        await _start(client)

        _failure(await client.post("/api/sendVoiceInput", data=form), 400)
        assert await store.list_turns("s-1") == []

    async def test_voice_turn_rejects_large_audio(self, client):
        await _start(client)

        response = await client.post(
            "/api/sendVoiceInput",
            data={"sessionId": "s-1", "transcription": "a dog"},
            files={"audio": ("recording.webm", b"x" * 2048, "audio/webm")},
        )

        _failure(response, 413)

    async def test_voice_turn_rejects_non_audio(self, client):
        await _start(client)

        response = await client.post(
            "/api/sendVoiceInput",
            data={"sessionId": "s-1", "transcription": "a dog"},
            files={"audio": ("notes.txt", b"hello", "text/plain")},
        )

        _failure(response, 400)

    async def test_voice_turn_unknown_session(self, client):
        response = await client.post("/api/sendVoiceInput", data={"sessionId": "nope", "transcription": "hi"})

        _failure(response, 404)

    async def test_generation_failure(self, client, dialogue, store):
        await _start(client)
        dialogue.error = RuntimeError("model overloaded")

        response = await client.post("/api/sendVoiceInput", data={"sessionId": "s-1", "transcription": "a dog"})

        _failure(response, 502)
        assert await store.list_turns("s-1") == []

    async def test_store_outage(self, client, store):
        await _start(client)

        async def unavailable(session_id):
            raise PersistenceUnavailable()

        store.get_session = unavailable

        response = await client.post("/api/sendVoiceInput", data={"sessionId": "s-1", "transcription": "a dog"})

        assert _failure(response, 503) == PersistenceUnavailable.public_message

    async def test_end_and_end_again(self, client):
        await _start(client)

        first = await client.post("/api/endConversation", json={"sessionId": "s-1"})
        second = await client.post("/api/endConversation", json={"sessionId": "s-1"})

        assert first.json()["data"] == {"sessionId": "s-1", "status": "completed"}
        _failure(second, 409)

    async def test_turn_after_end(self, client):
        await _start(client)
        await client.post("/api/endConversation", json={"sessionId": "s-1"})

        response = await client.post("/api/sendVoiceInput", data={"sessionId": "s-1", "transcription": "a dog"})

        _failure(response, 409)

    async def test_history(self, client):
        await _start(client)
        for message in ("a dog", "it is brown"):
            await client.post("/api/sendVoiceInput", data={"sessionId": "s-1", "transcription": message})

        response = await client.get("/api/conversation/s-1")

        data = response.json()["data"]
        assert data["status"] == "active"
        assert [t["role"] for t in data["turns"]] == ["user", "assistant", "user", "assistant"]
        assert [t["content"] for t in data["turns"][::2]] == ["a dog", "it is brown"]

    async def test_history_unknown_session(self, client):
        _failure(await client.get("/api/conversation/missing"), 404)
