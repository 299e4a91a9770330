import logging
from typing import Optional

from fastapi import APIRouter, File, Request, UploadFile

from controllers.image_controller import analyze_image, upload_image
from models.errors import ConversationError

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["images"])


@router.post("/analyzeImage")
async def analyze_image_route(request: Request, image: Optional[UploadFile] = File(None)):
    """Return a description, conversation starter, and topics for the uploaded image."""
    try:
        return await analyze_image(request, image)
    except ConversationError:
        raise
    except Exception as exc:
        LOGGER.exception("Error analyzing image")
        raise ConversationError("Failed to analyze image") from exc


@router.post("/uploadImage")
async def upload_image_route(request: Request, image: Optional[UploadFile] = File(None)):
    """Store the uploaded image and return its public URL."""
    try:
        return await upload_image(request, image)
    except ConversationError:
        raise
    except Exception as exc:
        LOGGER.exception("Error uploading image")
        raise ConversationError("Failed to upload image") from exc
