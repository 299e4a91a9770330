"""Prompt builders for image analysis and conversation replies."""

from typing import Optional


def build_analysis_system_prompt() -> str:
    """Return the system prompt for the image analyzer."""
    return (
        "You are a friendly AI assistant for children. "
        "Analyze the image and provide a simple, engaging description, "
        "a question that starts a conversation about it, "
        "and three to five topics worth talking about."
    )


def build_analysis_user_prompt() -> str:
    """Return the user prompt that accompanies the image."""
    return "Analyze this image for a conversation with a child:"


def build_conversation_system_prompt(image_description: Optional[str]) -> str:
    """Return the system framing for a conversation reply.

    Args:
        image_description: Description produced when the image was analyzed, if known.
    """
    subject = f"The image shows: {image_description.strip()}\n" if image_description and image_description.strip() else ""
    return (
        "You are a friendly AI assistant having a conversation with a child about an image.\n"
        f"{subject}"
        "Keep responses:\n"
        "- Child-friendly and age-appropriate\n"
        "- Engaging and encouraging\n"
        "- 1-2 sentences long\n"
        "- Ending with a follow-up question to keep the conversation going\n"
        "Be warm, enthusiastic, and educational."
    )
