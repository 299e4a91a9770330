"""Description: Image analysis for conversations using OpenAI's Responses API."""

import logging
import time
from typing import Any, List, Dict

from openai import AsyncOpenAI

from models.errors import AnalysisParseError, AnalysisUnavailable
from models.image_analysis import ImageAnalysis
from services.openai.image_prompts import build_analysis_system_prompt, build_analysis_user_prompt
from services.openai.image_schema import FUNCTION_DEFINITION, FUNCTION_NAME
from services.openai.media_inputs import build_analysis_inputs
from services.openai.response_parser import extract_usage, parse_function_call

LOGGER = logging.getLogger(__name__)


class ImageAnalyzer:
    """Produce a description, conversation starter, and topics for an image."""

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o") -> None:
        """Initialize the analyzer with an OpenAI async client."""
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model
        self.system_prompt = build_analysis_system_prompt()

    async def analyze(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> ImageAnalysis:
        """Analyze raw image bytes.

        Raises:
            AnalysisUnavailable: If the API call fails.
            AnalysisParseError: If the tool output is missing or malformed.
        """
        start_time = time.time()
        inputs = build_analysis_inputs(
            self.system_prompt,
            build_analysis_user_prompt(),
            image_bytes=image_bytes,
            mime_type=mime_type,
        )
        response = await self._create_response(inputs)
        analysis = self._parse_response(response)
        usage = extract_usage(response)
        LOGGER.info(
            "Image analysis latency %.3fs (input_tokens=%s output_tokens=%s)",
            time.time() - start_time,
            usage["input_tokens"],
            usage["output_tokens"],
        )
        return analysis

    async def _create_response(self, inputs: List[Dict[str, Any]]) -> Any:
        """Send the multimodal request to the OpenAI Responses API."""
        try:
            return await self.client.responses.create(
                model=self.model,
                input=inputs,
                tools=[FUNCTION_DEFINITION],
                tool_choice={"type": "function", "name": FUNCTION_NAME},
                max_output_tokens=500,
                temperature=0.7,
            )
        except Exception as exc:
            LOGGER.error("Error during OpenAI Responses API call: %s", exc)
            raise AnalysisUnavailable() from exc

    def _parse_response(self, response: Any) -> ImageAnalysis:
        """Validate the tool output into a typed analysis."""
        try:
            return ImageAnalysis.from_untrusted(parse_function_call(response, tool_name=FUNCTION_NAME))
        except AnalysisParseError as exc:
            LOGGER.error("Error parsing OpenAI response: %s", exc)
            LOGGER.debug("Full response object: %r", response)
            raise
