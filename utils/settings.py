"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

MIB = 1024 * 1024


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class AppSettings:
    """Settings shared by the app lifespan and the session manager.

    Attributes:
        database_dir: Directory holding the SQLite file (``app.db``).
        database_reset: Wipe the database file on startup.
        session_store: ``sqlite`` (default) or ``memory``.
        media_dir: Directory blobs are written to and served from.
        media_base_url: Public URL prefix for ``media_dir``.
        session_duration_seconds: Conversation time budget.
        session_grace_seconds: Extra time allowed for turns already in flight.
        adapter_timeout_seconds: Per-call timeout for AI and storage adapters.
    """

    database_dir: Optional[Path] = None
    database_reset: bool = False
    session_store: str = "sqlite"
    media_dir: Optional[Path] = None
    media_base_url: str = "http://localhost:8000/media"
    vision_model: str = "gpt-4o"
    dialogue_model: str = "gpt-4o-mini"
    tts_model: str = "tts-1"
    tts_voice: str = "nova"
    adapter_timeout_seconds: float = 30.0
    session_duration_seconds: int = 60
    session_grace_seconds: int = 15
    max_image_bytes: int = 10 * MIB
    max_audio_bytes: int = 5 * MIB
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppSettings":
        database_dir = os.getenv("DATABASE_DIR")
        media_dir = os.getenv("MEDIA_DIR")
        db_path = Path(database_dir).expanduser() if database_dir and database_dir.strip() else None
        if media_dir and media_dir.strip():
            media_path: Optional[Path] = Path(media_dir).expanduser()
        else:
            media_path = db_path / "media" if db_path else None
        return cls(
            database_dir=db_path,
            database_reset=_env_bool("DATABASE_RESET", False),
            session_store=(os.getenv("SESSION_STORE") or "sqlite").strip().lower(),
            media_dir=media_path,
            media_base_url=os.getenv("MEDIA_BASE_URL", cls.media_base_url),
            vision_model=os.getenv("OPENAI_VISION_MODEL", cls.vision_model),
            dialogue_model=os.getenv("OPENAI_DIALOGUE_MODEL", cls.dialogue_model),
            tts_model=os.getenv("OPENAI_TTS_MODEL", cls.tts_model),
            tts_voice=os.getenv("OPENAI_TTS_VOICE", cls.tts_voice),
            adapter_timeout_seconds=_env_float("ADAPTER_TIMEOUT_SECONDS", cls.adapter_timeout_seconds),
            session_duration_seconds=_env_int("SESSION_DURATION_SECONDS", cls.session_duration_seconds),
            session_grace_seconds=_env_int("SESSION_GRACE_SECONDS", cls.session_grace_seconds),
            max_image_bytes=_env_int("MAX_IMAGE_BYTES", cls.max_image_bytes),
            max_audio_bytes=_env_int("MAX_AUDIO_BYTES", cls.max_audio_bytes),
            log_level=(os.getenv("LOG_LEVEL") or cls.log_level).upper(),
        )
