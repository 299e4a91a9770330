"""Conversation replies built on the OpenAI Responses API."""

import logging
import time
from typing import Mapping, Sequence

from openai import AsyncOpenAI

from models.errors import GenerationUnavailable
from services.openai.media_inputs import build_dialogue_inputs
from services.openai.response_parser import extract_text

LOGGER = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm excited to talk more about this! What else do you notice?"


class DialogueGenerator:
    """Generate the assistant's next line from a bounded conversation context."""

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o-mini", max_tokens: int = 100) -> None:
        if client is None:
            raise ValueError("OpenAI AsyncOpenAI client is required.")
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    async def reply(self, context: Sequence[Mapping[str, str]]) -> str:
        """Return the reply text for `context`.

        Args:
            context: `{role, content}` entries: system framing, prior turns, new message.

        Raises:
            GenerationUnavailable: If the API call fails.
        """
        start = time.time()
        try:
            response = await self.client.responses.create(
                model=self.model,
                input=build_dialogue_inputs(context),
                max_output_tokens=self.max_tokens,
                temperature=0.8,
            )
        except Exception as exc:
            LOGGER.error("OpenAI Responses API error: %s", exc)
            raise GenerationUnavailable() from exc

        text = extract_text(response).strip()
        LOGGER.info("Conversation reply latency: %.3fs", time.time() - start)
        return text or FALLBACK_REPLY
