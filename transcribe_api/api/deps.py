"""
API dependency providers
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends
from loguru import logger

from transcribe_api.config import Settings, get_settings
from transcribe_api.database import AsyncSessionLocal
from transcribe_api.integrations.gemini import GeminiClient, get_gemini_client
from transcribe_api.services import (
    GeminiTranscriptRepairer,
    RateLimiter,
    TranscriptionService,
    UploadIngestor,
    UsageService,
)
from transcribe_api.utils.ffmpeg import FFmpegHelper


def get_app_settings() -> Settings:
    """Settings (override in tests)"""
    return get_settings()


@lru_cache
def _rate_limiter(limit: int, window_seconds: int) -> RateLimiter:
    return RateLimiter(limit=limit, window_seconds=window_seconds)


def get_rate_limiter(settings: Settings = Depends(get_app_settings)) -> RateLimiter:
    """Process-wide rate limiter (singleton per limit/window pair)"""
    return _rate_limiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)


def get_usage_service() -> UsageService:
    return UsageService(AsyncSessionLocal)


def get_provider(settings: Settings = Depends(get_app_settings)) -> Optional[GeminiClient]:
    """Gemini client, or None in mock mode or when no API key is configured"""
    if settings.mock_api:
        return None
    try:
        return get_gemini_client()
    except ValueError as e:
        logger.error(f"Gemini client unavailable: {e}")
        return None


def get_transcription_service(
    settings: Settings = Depends(get_app_settings),
    provider: Optional[GeminiClient] = Depends(get_provider),
) -> TranscriptionService:
    return TranscriptionService(provider, settings, probe=FFmpegHelper().probe_duration_ms)


def get_upload_ingestor(settings: Settings = Depends(get_app_settings)) -> UploadIngestor:
    return UploadIngestor(
        max_upload_size=settings.max_upload_size,
        max_field_size=settings.max_field_size,
        temp_dir=settings.upload_temp_dir,
    )


def get_repairer(
    settings: Settings = Depends(get_app_settings),
    provider: Optional[GeminiClient] = Depends(get_provider),
) -> GeminiTranscriptRepairer:
    return GeminiTranscriptRepairer(provider, settings.repair_model)
