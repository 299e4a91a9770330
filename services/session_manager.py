"""Conversation session lifecycle and the turn protocol.

The manager mediates between the image analyzer, the dialogue model, the
speech synthesizer, the media store, and the session store. Analysis and
generation failures abort an operation before anything is written; speech
synthesis and audio upload are a best-effort side path whose failures only
cost the reply its audio URL.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from models.errors import (
    AnalysisUnavailable,
    GenerationUnavailable,
    InvalidRequest,
    InvalidTransition,
    PersistenceUnavailable,
)
from models.image_analysis import ImageAnalysis
from models.session_models import Session, SessionStatus, Turn, TurnReply, TurnRole
from services.media_store import MediaStore
from services.openai.image_prompts import build_conversation_system_prompt
from services.session_store import SessionStore
from utils.media_validation import ensure_decodable_image

LOGGER = logging.getLogger(__name__)

# Prior turns sent to the dialogue model with each new message.
MAX_CONTEXT_TURNS = 6


class Analyzer(Protocol):
    async def analyze(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> ImageAnalysis: ...


class DialogueModel(Protocol):
    async def reply(self, context: Sequence[Mapping[str, str]]) -> str: ...


class Synthesizer(Protocol):
    mime_type: str

    async def synthesize(self, text: str) -> bytes: ...


def build_dialogue_context(
    prior_turns: Sequence[Turn], message: str, image_description: Optional[str] = None
) -> List[Dict[str, str]]:
    """Return system framing, the last `MAX_CONTEXT_TURNS` prior turns, and the new message."""
    context = [{"role": "system", "content": build_conversation_system_prompt(image_description)}]
    recent = list(prior_turns)[-MAX_CONTEXT_TURNS:] if MAX_CONTEXT_TURNS else []
    context.extend({"role": turn.role.value, "content": turn.content} for turn in recent)
    context.append({"role": TurnRole.USER.value, "content": message})
    return context


class ConversationSessionManager:
    """Own session lifecycle, the time budget, and partial-failure isolation.

    All collaborators are passed in; the manager keeps no per-session state
    of its own, so any number of requests may use one instance concurrently.
    """

    def __init__(
        self,
        store: SessionStore,
        analyzer: Analyzer,
        dialogue: DialogueModel,
        synthesizer: Synthesizer,
        media_store: MediaStore,
        *,
        adapter_timeout: float = 30.0,
        session_duration: float = 60.0,
        session_grace: float = 15.0,
        max_image_bytes: int = 10 * 1024 * 1024,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self.dialogue = dialogue
        self.synthesizer = synthesizer
        self.media_store = media_store
        self.adapter_timeout = adapter_timeout
        self.session_duration = session_duration
        self.session_grace = session_grace
        self.max_image_bytes = max_image_bytes
        self.clock = clock

    async def analyze_image(self, image_bytes: bytes) -> ImageAnalysis:
        """Describe an image and propose a conversation starter.

        Raises:
            InvalidRequest: If the bytes are not a decodable image.
            PayloadTooLarge: If the image exceeds the size ceiling.
            AnalysisUnavailable: If the analyzer fails, times out, or returns malformed output.
        """
        mime_type = await asyncio.to_thread(ensure_decodable_image, image_bytes, self.max_image_bytes)
        try:
            return await self._bounded(self.analyzer.analyze(image_bytes, mime_type))
        except AnalysisUnavailable:
            raise
        except Exception as exc:
            LOGGER.error("Image analysis failed: %r", exc)
            raise AnalysisUnavailable() from exc

    async def store_image(self, image_bytes: bytes, mime_type: Optional[str], filename: Optional[str] = None) -> str:
        """Save an uploaded image and return its public URL."""
        detected = await asyncio.to_thread(ensure_decodable_image, image_bytes, self.max_image_bytes)
        try:
            return await self._bounded(self.media_store.save_image(image_bytes, mime_type or detected, filename))
        except Exception as exc:
            LOGGER.error("Image upload failed: %r", exc)
            raise PersistenceUnavailable("Failed to upload image") from exc

    async def start_session(self, session_id: str, image_url: str, description: Optional[str] = None) -> Session:
        """Create an active session for a caller-supplied id.

        Raises:
            InvalidRequest: If the id or image URL is empty.
            Conflict: If the id is already taken.
            PersistenceUnavailable: If the store rejects the write.
        """
        session_id = (session_id or "").strip()
        image_url = (image_url or "").strip()
        if not session_id or not image_url:
            raise InvalidRequest("Session ID and image URL are required")

        session = Session(
            id=session_id,
            image_url=image_url,
            start_time=self.clock(),
            image_description=(description or "").strip() or None,
        )
        await self.store.create(session)
        LOGGER.info("Conversation %s started", session_id)
        return session

    async def submit_turn(self, session_id: str, transcription: str) -> TurnReply:
        """Answer one user message and persist the user/assistant pair.

        The user turn is committed before the assistant turn is written.
        Nothing is written when validation, loading, or generation fails.

        Raises:
            InvalidRequest: If the session id or transcription is empty.
            SessionNotFound: If the session does not exist.
            InvalidTransition: If the session is no longer active.
            GenerationUnavailable: If the dialogue model fails or times out.
            PersistenceUnavailable: If the store fails.
        """
        message = (transcription or "").strip()
        session_id = (session_id or "").strip()
        if not session_id or not message:
            raise InvalidRequest("Session ID and transcription are required")

        session = await self.store.get_session(session_id)
        await self._ensure_accepting_turns(session)
        prior_turns = await self.store.list_turns(session_id)
        context = build_dialogue_context(prior_turns, message, session.image_description)

        reply_text = await self._generate_reply(context)
        audio_url = await self._synthesize_best_effort(session_id, reply_text)

        user_turn = Turn(session_id=session_id, role=TurnRole.USER, content=message)
        assistant_turn = Turn(
            session_id=session_id,
            role=TurnRole.ASSISTANT,
            content=reply_text,
            audio_url=audio_url,
        )
        await self.store.append_turns(user_turn, assistant_turn)
        return TurnReply(reply_text=reply_text, reply_audio_url=audio_url)

    async def end_session(self, session_id: str) -> Session:
        """Mark an active session completed.

        Raises:
            InvalidTransition: If the session is already terminal; `end_time` is left as is.
        """
        return await self._transition(session_id, SessionStatus.COMPLETED)

    async def expire_session(self, session_id: str) -> Session:
        """Mark an active session expired because its time budget ran out."""
        return await self._transition(session_id, SessionStatus.EXPIRED)

    async def get_history(self, session_id: str) -> Session:
        """Return the session with its turns in creation order."""
        session = await self.store.get_session(session_id)
        session.turns = await self.store.list_turns(session_id)
        return session

    async def _ensure_accepting_turns(self, session: Session) -> None:
        if session.status.is_terminal:
            raise InvalidTransition(f"Conversation is {session.status.value}")
        if self.clock() - session.start_time > self.session_duration + self.session_grace:
            try:
                await self.expire_session(session.id)
            except InvalidTransition:
                pass  # another request got there first
            raise InvalidTransition("Conversation time is up")

    async def _transition(self, session_id: str, status: SessionStatus) -> Session:
        session_id = (session_id or "").strip()
        if not session_id:
            raise InvalidRequest("Session ID is required")
        changed = await self.store.update_status(
            session_id, status, self.clock(), expected=SessionStatus.ACTIVE
        )
        if not changed:
            current = await self.store.get_session(session_id)
            raise InvalidTransition(f"Conversation is already {current.status.value}")
        LOGGER.info("Conversation %s %s", session_id, status.value)
        return await self.store.get_session(session_id)

    async def _generate_reply(self, context: List[Dict[str, str]]) -> str:
        try:
            reply = await self._bounded(self.dialogue.reply(context))
        except GenerationUnavailable:
            raise
        except Exception as exc:
            LOGGER.error("Reply generation failed: %r", exc)
            raise GenerationUnavailable() from exc
        if not isinstance(reply, str) or not reply.strip():
            LOGGER.error("Dialogue model returned an empty reply")
            raise GenerationUnavailable()
        return reply.strip()

    async def _synthesize_best_effort(self, session_id: str, text: str) -> Optional[str]:
        """Return an audio URL for `text`, or None if synthesis or upload fails."""
        try:
            audio = await self._bounded(self.synthesizer.synthesize(text))
            mime_type = getattr(self.synthesizer, "mime_type", "audio/mpeg")
            return await self._bounded(self.media_store.save_audio(session_id, audio, mime_type))
        except Exception as exc:
            LOGGER.warning("Continuing without reply audio for %s: %r", session_id, exc)
            return None

    async def _bounded(self, awaitable: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(awaitable, timeout=self.adapter_timeout)
