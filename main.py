import inspect
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from openai import AsyncOpenAI
from starlette.exceptions import HTTPException as StarletteHTTPException

from dal.session_dal import SessionDAL
from models.errors import ConversationError
from routes.conversation_route import router as conversation_router
from routes.image_route import router as image_router
from services.media_store import LocalMediaStore
from services.openai.dialogue_generator import DialogueGenerator
from services.openai.image_analyzer import ImageAnalyzer
from services.openai.speech_synthesizer import SpeechSynthesizer
from services.session_manager import ConversationSessionManager
from services.session_store import InMemorySessionStore
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import AppSettings

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


async def _build_session_manager(app: FastAPI, settings: AppSettings) -> ConversationSessionManager:
    """Construct the store, adapters, and manager from settings."""
    if settings.session_store == "memory":
        store = InMemorySessionStore()
    else:
        db_initializer = AsyncDatabaseInitializer(settings.database_dir, reset=settings.database_reset)
        await db_initializer.ensure_database()
        app.state.db_initializer = db_initializer
        store = SessionDAL(db_initializer)

    openai_api_key = os.getenv("OPENAI_API_KEY")
    if not openai_api_key:
        raise RuntimeError("OPENAI_API_KEY environment variable is not set")

    try:
        openai_client = AsyncOpenAI(timeout=settings.adapter_timeout_seconds)
    except Exception as exc:
        raise RuntimeError("Failed to initialize OpenAI Async client") from exc
    app.state.openai_client = openai_client

    return ConversationSessionManager(
        store=store,
        analyzer=ImageAnalyzer(openai_client, model=settings.vision_model),
        dialogue=DialogueGenerator(openai_client, model=settings.dialogue_model),
        synthesizer=SpeechSynthesizer(openai_client, model=settings.tts_model, voice=settings.tts_voice),
        media_store=LocalMediaStore(settings.media_dir, settings.media_base_url),
        adapter_timeout=settings.adapter_timeout_seconds,
        session_duration=settings.session_duration_seconds,
        session_grace=settings.session_grace_seconds,
        max_image_bytes=settings.max_image_bytes,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the session store (SQLite at DATABASE_DIR/app.db, or in memory)
      - the OpenAI async client and the adapters built on it
      - the conversation session manager
    and attach them to `app.state`. A manager injected through `create_app`
    is used as is.
    """
    if getattr(app.state, "session_manager", None) is None:
        app.state.session_manager = await _build_session_manager(app, app.state.settings)

    try:
        yield
    finally:
        # Gracefully close the OpenAI client if it exposes a close/aclose method.
        client = getattr(app.state, "openai_client", None)
        if client is not None:
            aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
            if aclose is not None:
                try:
                    if inspect.iscoroutinefunction(aclose):
                        await aclose()
                    else:
                        result = aclose()
                        if inspect.isawaitable(result):
                            await result
                except Exception:
                    LOGGER.warning("Failed to close OpenAI client", exc_info=True)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def register_exception_handlers(app: FastAPI) -> None:
    """Translate every failure into the `{success: false, error}` shape."""

    @app.exception_handler(ConversationError)
    async def conversation_error_handler(request: Request, exc: ConversationError):
        if exc.status_code >= 500:
            LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg", "invalid input") if errors else "invalid input"
        return _error(400, f"Validation error: {detail}")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, ConversationError.public_message)


def create_app(
    settings: Optional[AppSettings] = None,
    session_manager: Optional[ConversationSessionManager] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        settings: Explicit settings; read from the environment when omitted.
        session_manager: Prebuilt manager, e.g. one wired to test doubles.
    """
    settings = settings or AppSettings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.session_manager = session_manager

    # Serve stored images and reply audio from the media directory.
    if settings.media_dir is not None:
        settings.media_dir.mkdir(parents=True, exist_ok=True)
        app.mount("/media", StaticFiles(directory=settings.media_dir), name="media")

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports whether the session manager and database are ready.
        """
        has_db = getattr(request.app.state, "db_initializer", None) is not None
        has_manager = getattr(request.app.state, "session_manager", None) is not None
        has_openai = getattr(request.app.state, "openai_client", None) is not None
        return {
            "ok": True,
            "session_manager_ready": has_manager,
            "db_initialized": has_db,
            "openai_available": has_openai,
        }

    register_exception_handlers(app)

    # Register application routers
    app.include_router(image_router)
    app.include_router(conversation_router)

    return app


app = create_app()
