"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .routers.lesson_audio import router as lesson_audio_router
from .routers.lessons import router as lessons_router
from .services.lesson_generator import LessonGenerator
from .services.tts.audio_cache import ParagraphAudioCache
from .services.tts.progressive import ProgressiveAudioSession
from .services.tts.synthesizer import ParagraphSynthesizer
from .services.tts_service import TTSService


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # Always add console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    logging.getLogger("lesson_audio").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Quiet down noisy third-party libraries unless debugging
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("hpack").setLevel(logging.WARNING)


def create_app() -> FastAPI:
    # Configure logging first thing
    _configure_logging()

    settings = get_settings()

    tts_service = TTSService(settings)
    synthesizer = ParagraphSynthesizer(
        tts_service,
        sample_rate=settings.tts_sample_rate,
        precision=settings.tts_precision,
    )
    audio_session = ProgressiveAudioSession(synthesizer, ParagraphAudioCache())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            # Add timeout to prevent hanging during shutdown (especially in tests)
            try:
                await asyncio.wait_for(audio_session.aclose(), timeout=10.0)
            except asyncio.TimeoutError:
                logging.warning("Audio session shutdown timed out after 10s")
            await TTSService.close_http_client()
            await LessonGenerator.close_http_clients()

    app = FastAPI(
        title="Guided Lesson Audio Backend",
        version="0.1.0",
        description="Lesson plans, lesson scripts and progressive paragraph audio.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.tts_service = tts_service
    app.state.audio_session = audio_session

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(lessons_router)
    app.include_router(lesson_audio_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, object]:
        return {
            "status": "ok",
            "tts_configured": settings.tts_configured,
            "llm_model": settings.openai_model,
            "audio_session_active": audio_session.active,
        }

    return app


__all__ = ["create_app"]
