"""Application factory for the narration service."""

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
from .logging_settings import parse_logging_settings
from .routers.narration import router as narration_router
from .services.document_views import DocumentViewRegistry, build_view_factory
from .services.narration_session import NarrationConnectionManager
from .services.synthesis_client import SpeechSynthesisClient

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _configure_logging(settings_path: Path) -> None:
    """Configure logging from the logging settings file and LOG_* variables."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    logging_settings = parse_logging_settings(settings_path)

    override = os.getenv("LOG_LEVEL")
    terminal_level = logging_settings.terminal_level
    if override:
        terminal_level = getattr(logging, override.upper(), logging.INFO)

    handlers: list[logging.Handler] = []
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT)

    log_file = os.getenv("LOG_FILE") or logging_settings.log_file
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if terminal_level is not None:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        console_handler.setLevel(terminal_level)
        handlers.append(console_handler)

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=terminal_level or logging.INFO,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    narration_logger = logging.getLogger("narration")
    if logging_settings.narration_level is None:
        narration_logger.disabled = True
    else:
        narration_logger.setLevel(logging_settings.narration_level)

    http_level = logging_settings.http_level
    for name in ("httpx", "httpcore"):
        if http_level is None:
            logging.getLogger(name).disabled = True
        else:
            logging.getLogger(name).setLevel(http_level)

    logging.getLogger("uvicorn").setLevel(terminal_level or logging.INFO)


def create_app() -> FastAPI:
    settings = get_settings()

    # Configure logging first thing
    _configure_logging(settings.logging_settings_path)

    synthesizer = SpeechSynthesisClient(settings)
    connections = NarrationConnectionManager()
    document_views = DocumentViewRegistry(
        build_view_factory(settings, synthesizer, connections),
        connections,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            # Navigating away everywhere at once: stop every session
            try:
                await asyncio.wait_for(document_views.close_all(), timeout=10.0)
            except asyncio.TimeoutError:
                logging.warning("Closing document views timed out after 10s")
            await SpeechSynthesisClient.close_http_client()

    app = FastAPI(
        title="Article Narration Service",
        version="0.1.0",
        description="Paragraph-by-paragraph spoken narration for rendered articles.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.synthesizer = synthesizer
    app.state.narration_connections = connections
    app.state.document_views = document_views

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(narration_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | int | bool]:
        return {
            "status": "ok",
            "synthesis_available": synthesizer.available,
            "player": settings.player_backend,
            "open_views": len(document_views),
        }

    return app


__all__ = ["create_app"]
