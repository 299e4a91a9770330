"""
Shared fixtures and adapter test doubles.

The session manager is always wired to fakes here: no test talks to OpenAI
or writes outside its temporary directory.
"""

import asyncio
import io
import os
import struct
import zlib
from typing import List, Optional

import pytest
import pytest_asyncio
from PIL import Image

from dal.session_dal import SessionDAL
from models.errors import SynthesisFailed
from models.image_analysis import ImageAnalysis
from services.session_manager import ConversationSessionManager
from services.session_store import InMemorySessionStore
from utils.database_init import AsyncDatabaseInitializer


# ============================================================================
# Image helpers
# ============================================================================

def make_png(size=(8, 8), color=(200, 40, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_noise_png(approx_bytes: int) -> bytes:
    """Incompressible PNG of roughly `approx_bytes` bytes."""
    side = int((approx_bytes / 3) ** 0.5)
    img = Image.frombytes("RGB", (side, side), os.urandom(side * side * 3))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def make_oversized_header_png(width: int = 60000, height: int = 60000) -> bytes:
    """Tiny PNG whose header declares far more pixels than Pillow will open."""
    def chunk(kind: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IDAT", zlib.compress(b"")) + chunk(b"IEND", b"")


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


# ============================================================================
# Adapter doubles
# ============================================================================

class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAnalyzer:
    def __init__(self) -> None:
        self.result = ImageAnalysis(
            description="A brown dog playing in a park.",
            conversation_starter="What's that?",
            suggested_topics=["dogs", "parks", "playing"],
        )
        self.error: Optional[Exception] = None
        self.calls: List[tuple] = []

    async def analyze(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> ImageAnalysis:
        self.calls.append((len(image_bytes), mime_type))
        if self.error is not None:
            raise self.error
        return self.result


class FakeDialogue:
    def __init__(self) -> None:
        self.contexts: List[list] = []
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.reply_text: Optional[str] = None

    async def reply(self, context) -> str:
        self.contexts.append([dict(entry) for entry in context])
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.reply_text is not None:
            return self.reply_text
        return f"Wow, {context[-1]['content']}! What else can you see?"


class FakeSynthesizer:
    mime_type = "audio/mpeg"

    def __init__(self) -> None:
        self.fail = False
        self.calls: List[str] = []

    async def synthesize(self, text: str) -> bytes:
        self.calls.append(text)
        if self.fail:
            raise SynthesisFailed("speech service down")
        return b"ID3-fake-mp3"


class FakeMediaStore:
    def __init__(self) -> None:
        self.fail_audio = False
        self.fail_image = False
        self.saved: List[str] = []

    async def save_image(self, image_bytes: bytes, mime_type: str, filename: Optional[str] = None) -> str:
        if self.fail_image:
            raise OSError("disk full")
        url = f"https://media.test/images/{len(self.saved)}.png"
        self.saved.append(url)
        return url

    async def save_audio(self, session_id: str, audio_bytes: bytes, mime_type: str = "audio/mpeg") -> str:
        if self.fail_audio:
            raise OSError("bucket unavailable")
        url = f"https://media.test/audio/{session_id}/{len(self.saved)}.mp3"
        self.saved.append(url)
        return url


# ============================================================================
# Store and manager fixtures
# ============================================================================

@pytest.fixture
def memory_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest_asyncio.fixture
async def sqlite_store(tmp_path) -> SessionDAL:
    db_initializer = AsyncDatabaseInitializer(tmp_path / "db")
    await db_initializer.ensure_database()
    return SessionDAL(db_initializer)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    """Each store implementation in turn."""
    if request.param == "memory":
        return InMemorySessionStore()
    db_initializer = AsyncDatabaseInitializer(tmp_path / "db")
    await db_initializer.ensure_database()
    return SessionDAL(db_initializer)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def dialogue() -> FakeDialogue:
    return FakeDialogue()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def media_store() -> FakeMediaStore:
    return FakeMediaStore()


@pytest.fixture
def manager(store, analyzer, dialogue, synthesizer, media_store, clock) -> ConversationSessionManager:
    return ConversationSessionManager(
        store=store,
        analyzer=analyzer,
        dialogue=dialogue,
        synthesizer=synthesizer,
        media_store=media_store,
        adapter_timeout=1.0,
        session_duration=60,
        session_grace=15,
        clock=clock,
    )
