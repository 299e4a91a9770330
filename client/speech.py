"""Speech capabilities the turn controller depends on.

`Transcriber` turns a recording into text; `LocalSpeaker` voices a reply on
the client when the server did not return audio. Both are swapped for test
doubles in tests.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Protocol

from openai import AsyncOpenAI

LOGGER = logging.getLogger(__name__)


class Transcriber(Protocol):
    async def transcribe(self, audio: bytes, mime_type: str = "audio/webm") -> str: ...


class LocalSpeaker(Protocol):
    async def speak(self, text: str) -> None: ...

    async def play(self, audio_url: str) -> None: ...


# Recording MIME types the transcription endpoint accepts, by file suffix.
_RECORDING_SUFFIXES = {
    "audio/webm": ".webm",
    "video/webm": ".webm",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/wave": ".wav",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".mp4",
    "audio/x-m4a": ".m4a",
    "audio/m4a": ".m4a",
    "audio/aac": ".m4a",
    "audio/ogg": ".ogg",
    "audio/flac": ".flac",
}


def recording_suffix(mime_type: str) -> str:
    """Return the file suffix for a recording's MIME type, ignoring parameters.

    Raises:
        ValueError: If the transcription endpoint would not accept the format.
    """
    base = (mime_type or "").lower().split(";", 1)[0].strip()
    try:
        return _RECORDING_SUFFIXES[base]
    except KeyError:
        raise ValueError(f"Unsupported recording format: {mime_type!r}") from None


class WhisperTranscriber:
    """Transcribe recordings with OpenAI's transcription endpoint."""

    def __init__(self, client: AsyncOpenAI, model: str = "whisper-1", language: str = "en") -> None:
        if client is None:
            raise ValueError("AsyncOpenAI client is required.")
        self.client = client
        self.model = model
        self.language = language

    async def transcribe(self, audio: bytes, mime_type: str = "audio/webm") -> str:
        """Return a whitespace-trimmed transcript; empty when no speech was heard.

        Raises:
            ValueError: If the recording format is not supported.
            RuntimeError: If the transcription request fails.
        """
        if not audio:
            return ""
        suffix = recording_suffix(mime_type)

        # The client library infers the upload content type from the file name.
        with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tf:
            tf.write(audio)
            recording_path = tf.name
        try:
            with open(recording_path, "rb") as fh:
                transcript = await self.client.audio.transcriptions.create(
                    model=self.model,
                    file=fh,
                    language=self.language,
                    response_format="text",
                )
        except Exception as exc:
            LOGGER.error("Transcription request failed: %s", exc)
            raise RuntimeError(f"Transcription failed: {exc}") from exc
        finally:
            try:
                os.remove(recording_path)
            except OSError:
                LOGGER.debug("Could not remove temporary recording %s", recording_path)

        if not isinstance(transcript, str):
            transcript = getattr(transcript, "text", "") or ""
        return transcript.strip()


class LoggingSpeaker:
    """Speaker for headless clients: records what would have been voiced."""

    def __init__(self) -> None:
        self.spoken: list = []

    async def speak(self, text: str) -> None:
        LOGGER.info("Speaking locally: %s", text)
        self.spoken.append(("speak", text))

    async def play(self, audio_url: str) -> None:
        LOGGER.info("Playing reply audio: %s", audio_url)
        self.spoken.append(("play", audio_url))
