from typing import Any, Dict, Optional

from fastapi import Request, UploadFile

from controllers.conversation_controller import get_session_manager
from utils.media_validation import read_image_upload


async def analyze_image(request: Request, image: Optional[UploadFile]) -> Dict[str, Any]:
    """Describe an uploaded image and propose a conversation starter.

    Args:
        request: FastAPI Request object (used to access app.state for shared services).
        image: Uploaded `image` multipart field.

    Returns:
        `{"success": True, "data": {description, conversationStarter, suggestedTopics}}`
    """
    manager = get_session_manager(request)
    image_bytes = await read_image_upload(image, manager.max_image_bytes)
    analysis = await manager.analyze_image(image_bytes)
    return {"success": True, "data": analysis.to_dict()}


async def upload_image(request: Request, image: Optional[UploadFile]) -> Dict[str, Any]:
    """Store an uploaded image and return its durable public URL."""
    manager = get_session_manager(request)
    image_bytes = await read_image_upload(image, manager.max_image_bytes)
    image_url = await manager.store_image(image_bytes, image.content_type, image.filename)
    return {"success": True, "data": {"imageUrl": image_url}}
