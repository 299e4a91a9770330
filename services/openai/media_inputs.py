"""Utilities to build input payloads for the Responses API."""

import base64
from typing import Any, Dict, List, Mapping, Sequence


def to_image_data_url(image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
    """Convert raw image bytes into a data URL suitable for vision input."""
    if not image_bytes:
        raise ValueError("Image bytes are required.")
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def text_message(role: str, text: str) -> Dict[str, Any]:
    """Wrap text as a single Responses API message."""
    content_type = "output_text" if role == "assistant" else "input_text"
    return {"type": "message", "role": role, "content": [{"type": content_type, "text": text}]}


def build_analysis_inputs(
    system_prompt: str, user_prompt: str, *, image_bytes: bytes, mime_type: str
) -> List[Dict[str, Any]]:
    """Build the analyzer input array: system, instruction, then the image."""
    image_url = to_image_data_url(image_bytes, mime_type)
    return [
        text_message("system", system_prompt),
        text_message("user", user_prompt),
        {"type": "message", "role": "user", "content": [{"type": "input_image", "image_url": image_url}]},
    ]


def build_dialogue_inputs(context: Sequence[Mapping[str, str]]) -> List[Dict[str, Any]]:
    """Convert `{role, content}` context entries into Responses API messages."""
    return [text_message(entry["role"], entry["content"]) for entry in context]
