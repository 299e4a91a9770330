"""Text-to-speech helper built on OpenAI's speech models."""

import logging

from openai import AsyncOpenAI

from models.errors import SynthesisFailed

LOGGER = logging.getLogger(__name__)


class SpeechSynthesizer:
    """Turn reply text into MP3 audio bytes."""

    mime_type = "audio/mpeg"

    def __init__(self, client: AsyncOpenAI, model: str = "tts-1", voice: str = "nova", speed: float = 0.9) -> None:
        """Initialize the service with a shared OpenAI client."""
        if client is None:
            raise ValueError("OpenAI client is required for speech synthesis.")
        self.client = client
        self.model = model
        self.voice = voice
        self.speed = speed

    async def synthesize(self, text: str) -> bytes:
        """Return MP3 bytes for `text`, or raise SynthesisFailed."""
        if not text or not text.strip():
            raise SynthesisFailed("Nothing to synthesize.")

        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=text,
                speed=self.speed,
                response_format="mp3",
            )
            audio = response.content
        except Exception as exc:
            LOGGER.error("OpenAI TTS request failed: %s", exc)
            raise SynthesisFailed() from exc

        if not audio:
            raise SynthesisFailed("Speech response did not include audio.")
        return audio
