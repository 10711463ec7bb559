"""
FastAPI application entry point
"""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from loguru import logger

from transcribe_api.config import settings
from transcribe_api.database import close_db, init_db
from transcribe_api.exceptions import TranscribeServiceError
from transcribe_api.logging_config import setup_logging
from transcribe_api.services.stream_relay import USAGE_ID_HEADER


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    setup_logging(settings)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    if settings.mock_api:
        logger.warning("MOCK_API is enabled, the Gemini API will not be called")

    await init_db()
    logger.info("Database initialized")

    if settings.upload_temp_dir:
        Path(settings.upload_temp_dir).mkdir(parents=True, exist_ok=True)

    yield

    logger.info("Shutting down...")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Media upload and streamed transcription backed by Google Gemini",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    openapi_url=f"{settings.api_prefix}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[USAGE_ID_HEADER],
)


# ==================== Routers ====================
from transcribe_api.api import (  # noqa: E402
    health_router,
    monitoring_router,
    rate_router,
    transcripts_router,
    upload_router,
)

app.include_router(upload_router, prefix=settings.api_prefix)
app.include_router(rate_router, prefix=settings.api_prefix)
app.include_router(monitoring_router, prefix=settings.api_prefix)
app.include_router(transcripts_router, prefix=settings.api_prefix)
app.include_router(health_router)


# ==================== Error handling ====================
@app.exception_handler(TranscribeServiceError)
async def service_error_handler(request: Request, exc: TranscribeServiceError):
    """Short plain-text reason with the mapped status code"""
    return PlainTextResponse(exc.message, status_code=exc.status_code)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unexpected errors: log the traceback, never send it to the client"""
    logger.opt(exception=exc).error(f"Unhandled error: {request.method} {request.url.path}")
    return PlainTextResponse("Internal Server Error", status_code=500)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "transcribe_api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
