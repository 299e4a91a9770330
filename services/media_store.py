"""Store uploaded images and synthesized speech on disk behind public URLs.

Blobs are written under `media_dir` (served by the `/media` static mount)
and addressed by `base_url` plus their relative path.
"""

from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import Optional, Protocol

import aiofiles

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/bmp": "bmp",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/webm": "webm",
}


class MediaStore(Protocol):
    async def save_image(self, image_bytes: bytes, mime_type: str, filename: Optional[str] = None) -> str: ...

    async def save_audio(self, session_id: str, audio_bytes: bytes, mime_type: str = "audio/mpeg") -> str: ...


def extension_for(mime_type: Optional[str], filename: Optional[str] = None, default: str = "bin") -> str:
    """Pick a file extension from the MIME type, then the original filename."""
    mime = (mime_type or "").lower().split(";", 1)[0].strip()
    if mime in _EXTENSIONS:
        return _EXTENSIONS[mime]
    if filename and "." in filename:
        candidate = filename.rsplit(".", 1)[-1].lower()
        if candidate.isalnum() and len(candidate) <= 5:
            return candidate
    return default


class LocalMediaStore:
    """Save blobs to a directory and return durable public URLs."""

    def __init__(self, media_dir: Path | str, base_url: str) -> None:
        if media_dir is None:
            raise RuntimeError("MEDIA_DIR (or DATABASE_DIR) must be set to store media files.")
        self.media_dir = Path(media_dir).expanduser()
        self.base_url = base_url.rstrip("/")
        self.media_dir.mkdir(parents=True, exist_ok=True)

    async def save_image(self, image_bytes: bytes, mime_type: str, filename: Optional[str] = None) -> str:
        """Save an uploaded image and return its public URL.

        Raises:
            ValueError: If image bytes are missing.
        """
        if not image_bytes:
            raise ValueError("Image bytes are required for saving.")
        ext = extension_for(mime_type, filename, default="jpg")
        relative = f"images/{uuid.uuid4()}-{int(time.time() * 1000)}.{ext}"
        await self._write(relative, image_bytes)
        return self.public_url(relative)

    async def save_audio(self, session_id: str, audio_bytes: bytes, mime_type: str = "audio/mpeg") -> str:
        """Save synthesized speech for a session and return its public URL."""
        if not audio_bytes:
            raise ValueError("Audio bytes are required for saving.")
        if not session_id or "/" in session_id or "\\" in session_id or session_id in {".", ".."}:
            raise ValueError(f"Invalid session id for audio path: {session_id!r}")
        ext = extension_for(mime_type, default="mp3")
        relative = f"audio/{session_id}/{uuid.uuid4()}.{ext}"
        await self._write(relative, audio_bytes)
        return self.public_url(relative)

    def public_url(self, relative: str) -> str:
        return f"{self.base_url}/{relative}"

    async def _write(self, relative: str, data: bytes) -> Path:
        target = self.media_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(target, "wb") as f:
            await f.write(data)
        return target
