"""Client-side state machine for one timed voice conversation.

A single `ControllerState` value describes where the client is, so
combinations such as "recording while expired" cannot be represented. The
countdown runs as one asyncio task; recording and reply processing are the
only other asynchronous activity. Everything runs on one event loop, so no
locks are needed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol, Set
from uuid import uuid4

from client.speech import LocalSpeaker, Transcriber
from models.errors import ConversationError, InvalidRequest, InvalidTransition
from models.image_analysis import ImageAnalysis
from models.session_models import TurnReply, TurnRole

LOGGER = logging.getLogger(__name__)


class ControllerState(str, Enum):
    NO_IMAGE = "no_image"
    IMAGE_ANALYZING = "image_analyzing"
    SESSION_ACTIVE = "session_active"
    RECORDING = "recording"
    PROCESSING = "processing"
    SESSION_EXPIRED = "session_expired"
    SESSION_COMPLETED = "session_completed"


# States in which the countdown is running.
LIVE_STATES = frozenset({ControllerState.SESSION_ACTIVE, ControllerState.RECORDING, ControllerState.PROCESSING})


@dataclass
class TranscriptEntry:
    role: TurnRole
    content: str
    audio_url: Optional[str] = None
    created_at: float = field(default_factory=time.time)


class ConversationApi(Protocol):
    async def analyze_image(self, image_bytes: bytes, filename: str = ..., mime_type: str = ...) -> ImageAnalysis: ...

    async def upload_image(self, image_bytes: bytes, filename: str = ..., mime_type: str = ...) -> str: ...

    async def start_conversation(self, session_id: str, image_url: str, description: Optional[str] = None) -> None: ...

    async def send_voice_input(self, session_id: str, audio: Optional[bytes], transcription: str, mime_type: str = ...) -> TurnReply: ...

    async def end_conversation(self, session_id: str) -> str: ...


class ClientTurnController:
    """Drive image selection, the countdown, and recording/processing turns.

    Args:
        api: Conversation API (HTTP client or a test double).
        transcriber: Turns recordings into text.
        speaker: Voices replies locally when the server returned no audio.
        session_seconds: Length of the countdown.
        tick_interval: Seconds between countdown ticks.
        run_timer: Start the background countdown; tests disable it and call `tick()`.
        id_factory: Produces new session ids.
    """

    def __init__(
        self,
        api: ConversationApi,
        transcriber: Transcriber,
        speaker: LocalSpeaker,
        *,
        session_seconds: int = 60,
        tick_interval: float = 1.0,
        run_timer: bool = True,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self.api = api
        self.transcriber = transcriber
        self.speaker = speaker
        self.session_seconds = session_seconds
        self.tick_interval = tick_interval
        self.run_timer = run_timer
        self.id_factory = id_factory

        self.state = ControllerState.NO_IMAGE
        self.session_id: Optional[str] = None
        self.image_url: Optional[str] = None
        self.analysis: Optional[ImageAnalysis] = None
        self.time_remaining = session_seconds
        self.transcript: List[TranscriptEntry] = []
        self.last_error: Optional[str] = None

        self._epoch = 0
        self._timer_task: Optional[asyncio.Task] = None
        self._inflight_session: Optional[str] = None
        self._close_pending = False
        self._background: Set[asyncio.Task] = set()

    @property
    def is_live(self) -> bool:
        return self.state in LIVE_STATES

    async def load_image(self, image_bytes: bytes, filename: str = "image.jpg", mime_type: str = "image/jpeg") -> ImageAnalysis:
        """Analyze and upload an image, then start a conversation about it.

        The analyzer's conversation starter becomes the first transcript entry
        and is voiced locally.
        """
        if self.state is not ControllerState.NO_IMAGE:
            raise InvalidRequest("A conversation is already in progress.")
        epoch = self._epoch
        self._set_state(ControllerState.IMAGE_ANALYZING)
        try:
            analysis = await self.api.analyze_image(image_bytes, filename=filename, mime_type=mime_type)
            image_url = await self.api.upload_image(image_bytes, filename=filename, mime_type=mime_type)
            session_id = self.id_factory()
            await self.api.start_conversation(session_id, image_url, analysis.description)
        except Exception as exc:
            if epoch == self._epoch:
                self.last_error = getattr(exc, "message", str(exc))
                self._set_state(ControllerState.NO_IMAGE)
            raise

        if epoch != self._epoch:
            # Reset while analyzing: the new conversation is not wanted.
            LOGGER.info("Discarding conversation %s started before a reset", session_id)
            self._spawn(self._end_remote(session_id))
            return analysis

        self.analysis = analysis
        self.image_url = image_url
        self.session_id = session_id
        self.transcript = [TranscriptEntry(role=TurnRole.ASSISTANT, content=analysis.conversation_starter)]
        self.time_remaining = self.session_seconds
        self._set_state(ControllerState.SESSION_ACTIVE)
        self._start_timer()
        await self._say(analysis.conversation_starter, None)
        return analysis

    def start_recording(self) -> None:
        """Begin capturing a voice turn. Only one recording may be in flight."""
        if self.state is ControllerState.PROCESSING:
            raise InvalidRequest("Still answering the previous message.")
        if self.state is ControllerState.RECORDING:
            raise InvalidRequest("Already recording.")
        if self.state is not ControllerState.SESSION_ACTIVE:
            raise InvalidTransition("There is no active conversation.")
        self._set_state(ControllerState.RECORDING)

    async def stop_recording(self, audio: bytes, mime_type: str = "audio/webm") -> Optional[TurnReply]:
        """Finish the recording, transcribe it, and send it as the next turn.

        Returns:
            The reply, or None when the conversation was reset before it arrived.

        Raises:
            InvalidRequest: If nothing was said; no request is sent.
            InvalidTransition: If no recording is in progress (for example after expiry).
        """
        if self.state is ControllerState.PROCESSING:
            raise InvalidRequest("Still answering the previous message.")
        if self.state is not ControllerState.RECORDING:
            raise InvalidTransition("Not recording.")

        session_id = self.session_id
        self._set_state(ControllerState.PROCESSING)
        self._inflight_session = session_id
        try:
            return await self._process_turn(session_id, audio, mime_type)
        finally:
            self._inflight_session = None
            if self.session_id == session_id:
                if self.state is ControllerState.PROCESSING:
                    self._set_state(ControllerState.SESSION_ACTIVE)
                if self._close_pending:
                    self._close_pending = False
                    await self._end_remote(session_id)

    async def tick(self) -> None:
        """Advance the countdown by one second, expiring the session at zero."""
        if not self.is_live:
            return
        self.time_remaining = max(0, self.time_remaining - 1)
        if self.time_remaining == 0:
            self._close(ControllerState.SESSION_EXPIRED)

    async def finish(self) -> None:
        """End the conversation early but keep the transcript on screen."""
        if not self.is_live:
            raise InvalidTransition("There is no active conversation.")
        self._close(ControllerState.SESSION_COMPLETED)

    async def reset(self) -> None:
        """Return to a fresh NoImage state, dropping local transcript memory.

        Server-side history is kept. Replies still in flight are ignored
        when they arrive.
        """
        session_id = self.session_id
        was_live = self.is_live
        self._cancel_timer()
        self._epoch += 1
        self.state = ControllerState.NO_IMAGE
        self.session_id = None
        self.image_url = None
        self.analysis = None
        self.transcript = []
        self.time_remaining = self.session_seconds
        self.last_error = None
        self._close_pending = False
        if was_live and session_id:
            await self._end_remote(session_id)

    async def wait_idle(self) -> None:
        """Wait for background work such as deferred session closing."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _process_turn(self, session_id: Optional[str], audio: bytes, mime_type: str) -> Optional[TurnReply]:
        transcription = (await self.transcriber.transcribe(audio, mime_type) or "").strip()
        if not transcription:
            raise InvalidRequest("No speech was detected. Please try again.")
        if self.session_id != session_id:
            return None

        self.transcript.append(TranscriptEntry(role=TurnRole.USER, content=transcription))
        try:
            reply = await self.api.send_voice_input(session_id, audio, transcription, mime_type)
        except ConversationError as exc:
            if self.session_id == session_id:
                self.last_error = exc.message
            raise

        if self.session_id != session_id:
            LOGGER.info("Ignoring reply for conversation %s after reset", session_id)
            return None

        # Appended even if the countdown expired while we waited.
        self.transcript.append(
            TranscriptEntry(role=TurnRole.ASSISTANT, content=reply.reply_text, audio_url=reply.reply_audio_url)
        )
        if self.state is ControllerState.PROCESSING:
            self._set_state(ControllerState.SESSION_ACTIVE)
        await self._say(reply.reply_text, reply.reply_audio_url)
        return reply

    def _close(self, terminal: ControllerState) -> None:
        """Move a live session to a terminal state and close it on the server."""
        self._cancel_timer()
        self._set_state(terminal)
        if self._inflight_session is not None and self._inflight_session == self.session_id:
            # Closing now would reject the turn already on its way; close after it lands.
            self._close_pending = True
        elif self.session_id:
            self._spawn(self._end_remote(self.session_id))

    def _start_timer(self) -> None:
        self._cancel_timer()
        if self.run_timer:
            self._timer_task = asyncio.create_task(self._run_countdown())

    def _cancel_timer(self) -> None:
        task, self._timer_task = self._timer_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _run_countdown(self) -> None:
        while self.is_live and self.time_remaining > 0:
            await asyncio.sleep(self.tick_interval)
            await self.tick()

    async def _end_remote(self, session_id: str) -> None:
        try:
            await self.api.end_conversation(session_id)
        except Exception as exc:
            LOGGER.warning("Could not close conversation %s on the server: %s", session_id, exc)

    async def _say(self, text: str, audio_url: Optional[str]) -> None:
        try:
            if audio_url:
                await self.speaker.play(audio_url)
            else:
                await self.speaker.speak(text)
        except Exception as exc:
            LOGGER.warning("Local speech output failed: %s", exc)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _set_state(self, state: ControllerState) -> None:
        if state is not self.state:
            LOGGER.debug("Controller %s -> %s", self.state.value, state.value)
        self.state = state
