"""Validation helpers for uploaded images and voice recordings."""

import io
from typing import Optional

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from models.errors import InvalidRequest, PayloadTooLarge

AUDIO_EXTENSIONS = (".wav", ".webm", ".mp3", ".mp4", ".m4a", ".ogg", ".flac")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp")


def _base_content_type(content_type: Optional[str]) -> str:
    return (content_type or "").lower().split(";", 1)[0].strip()


def _check_media_type(upload: UploadFile, kind: str, extensions: tuple) -> None:
    """Accept `<kind>/*` content types, or a known extension when the type is missing."""
    content_type = _base_content_type(upload.content_type)
    if content_type:
        if not content_type.startswith(f"{kind}/"):
            raise InvalidRequest(f"Only {kind} files are allowed.")
        return
    filename = (upload.filename or "").lower()
    if not filename.endswith(extensions):
        raise InvalidRequest(f"Only {kind} files are allowed.")


async def read_limited(upload: UploadFile, max_bytes: int, kind: str) -> bytes:
    """Read at most `max_bytes` from the upload, failing if there is more."""
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise PayloadTooLarge(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
    if not data:
        raise InvalidRequest(f"Uploaded {kind} file is empty.")
    return data


async def read_image_upload(upload: Optional[UploadFile], max_bytes: int) -> bytes:
    """Validate and read the multipart `image` field."""
    if upload is None:
        raise InvalidRequest("No image file provided")
    _check_media_type(upload, "image", IMAGE_EXTENSIONS)
    return await read_limited(upload, max_bytes, "image")


async def read_audio_upload(upload: Optional[UploadFile], max_bytes: int) -> Optional[bytes]:
    """Validate and read the optional multipart `audio` field."""
    if upload is None:
        return None
    _check_media_type(upload, "audio", AUDIO_EXTENSIONS)
    return await read_limited(upload, max_bytes, "audio")


def ensure_decodable_image(image_bytes: bytes, max_bytes: int) -> str:
    """Check that bytes hold a decodable image within the size ceiling.

    Returns:
        The image MIME type detected by Pillow, e.g. ``image/png``.

    Raises:
        InvalidRequest: If the bytes are empty or not an image Pillow can read.
        PayloadTooLarge: If the image exceeds `max_bytes`.
    """
    if not image_bytes:
        raise InvalidRequest("No image data provided.")
    if len(image_bytes) > max_bytes:
        raise PayloadTooLarge(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.verify()
            image_format = img.format or "JPEG"
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as exc:
        raise InvalidRequest("Uploaded file is not a supported image.") from exc
    return Image.MIME.get(image_format.upper(), "image/jpeg")
