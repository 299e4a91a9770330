"""Schema definition for the image analysis tool call."""

from typing import Any, Dict

FUNCTION_NAME = "describe_image_for_conversation"

FUNCTION_DEFINITION: Dict[str, Any] = {
    "type": "function",
    "name": FUNCTION_NAME,
    "description": (
        "Return a child-friendly description, a conversation starter, and suggested topics for the image."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "description": {
                "type": "string",
                "description": "A simple, engaging description of the image.",
            },
            "conversationStarter": {
                "type": "string",
                "description": "A question that starts a conversation about the image.",
            },
            "suggestedTopics": {
                "type": "array",
                "description": "Three to five short topics to talk about.",
                "items": {"type": "string"},
            },
        },
        "required": ["description", "conversationStarter", "suggestedTopics"],
        "additionalProperties": False,
    },
    "strict": True,
}
