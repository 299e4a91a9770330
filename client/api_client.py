"""HTTP client for the conversation API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type

import httpx

from models.errors import (
    AnalysisUnavailable,
    Conflict,
    ConversationError,
    GenerationUnavailable,
    InvalidRequest,
    InvalidTransition,
    PayloadTooLarge,
    PersistenceUnavailable,
    SessionNotFound,
)
from models.image_analysis import ImageAnalysis
from models.session_models import TurnReply

LOGGER = logging.getLogger(__name__)

_STATUS_ERRORS: Dict[int, Type[ConversationError]] = {
    400: InvalidRequest,
    404: SessionNotFound,
    409: InvalidTransition,
    413: PayloadTooLarge,
    502: GenerationUnavailable,
    503: PersistenceUnavailable,
}


def error_for_status(status_code: int, message: Optional[str], overrides: Optional[Dict[int, Type[ConversationError]]] = None) -> ConversationError:
    """Rebuild the server's error class from a `{success: false}` response."""
    mapping = dict(_STATUS_ERRORS)
    if overrides:
        mapping.update(overrides)
    error_cls = mapping.get(status_code, ConversationError)
    return error_cls(message or None)


class ConversationApiClient:
    """Thin async wrapper over the `/api` endpoints.

    Args:
        base_url: Server root, e.g. ``http://localhost:8000``.
        client: Optional preconfigured `httpx.AsyncClient` (tests pass one bound to the app).
        timeout: Request timeout in seconds when the client is created here.
    """

    def __init__(self, base_url: str = "http://localhost:8000", client: Optional[httpx.AsyncClient] = None, timeout: float = 60.0) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def analyze_image(self, image_bytes: bytes, filename: str = "image.jpg", mime_type: str = "image/jpeg") -> ImageAnalysis:
        data = await self._post(
            "/api/analyzeImage",
            files={"image": (filename, image_bytes, mime_type)},
            overrides={502: AnalysisUnavailable},
        )
        return ImageAnalysis.from_untrusted(data)

    async def upload_image(self, image_bytes: bytes, filename: str = "image.jpg", mime_type: str = "image/jpeg") -> str:
        data = await self._post("/api/uploadImage", files={"image": (filename, image_bytes, mime_type)})
        return data["imageUrl"]

    async def start_conversation(self, session_id: str, image_url: str, description: Optional[str] = None) -> None:
        payload = {"sessionId": session_id, "imageUrl": image_url}
        if description:
            payload["description"] = description
        await self._post("/api/startConversation", json=payload, overrides={409: Conflict})

    async def send_voice_input(
        self,
        session_id: str,
        audio: Optional[bytes],
        transcription: str,
        mime_type: str = "audio/webm",
    ) -> TurnReply:
        files = {"audio": ("recording", audio, mime_type)} if audio else None
        data = await self._post(
            "/api/sendVoiceInput",
            data={"sessionId": session_id, "transcription": transcription},
            files=files,
        )
        return TurnReply(reply_text=data["message"], reply_audio_url=data.get("audioUrl"))

    async def end_conversation(self, session_id: str) -> str:
        data = await self._post("/api/endConversation", json={"sessionId": session_id})
        return data.get("status", "")

    async def _post(self, path: str, *, overrides: Optional[Dict[int, Type[ConversationError]]] = None, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self.client.post(path, **kwargs)
        except httpx.HTTPError as exc:
            LOGGER.error("Request to %s failed: %s", path, exc)
            raise ConversationError("Could not reach the conversation service.") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_success and body.get("success"):
            return body.get("data") or {}
        raise error_for_status(response.status_code, body.get("error"), overrides)
