"""
Monitoring, health checks and usage statistics
"""

from typing import Any

from fastapi import APIRouter, Depends

from transcribe_api.config import settings
from transcribe_api.schemas import MonthlyStatsResponse, UsageReport
from transcribe_api.services import UsageService
from transcribe_api.utils.ffmpeg import FFmpegHelper
from .deps import get_usage_service

router = APIRouter(tags=["monitoring"])

# Mounted without the API prefix
health_router = APIRouter(tags=["monitoring"])


@health_router.get("/health")
async def health_check(usage_service: UsageService = Depends(get_usage_service)) -> dict[str, Any]:
    """
    Health check

    Returns:
        {
            "status": "healthy",
            "services": {
                "database": true,
                "ffprobe": true
            },
            "mock": false,
            "version": "1.0.0"
        }
    """
    services = {
        "ffprobe": FFmpegHelper.check_ffprobe(),
        "database": await usage_service.ping(),
    }

    return {
        "status": "healthy" if all(services.values()) else "unhealthy",
        "services": services,
        "mock": settings.mock_api,
        "version": settings.app_version,
    }


@router.get("/stats", response_model=MonthlyStatsResponse, response_model_by_alias=True)
async def get_stats(usage_service: UsageService = Depends(get_usage_service)):
    """Number of uploads over the last 30 days"""
    count = await usage_service.monthly_upload_count()
    return MonthlyStatsResponse(monthly_upload_count=count)


@router.get("/usage/report", response_model=UsageReport)
async def get_usage_report(usage_service: UsageService = Depends(get_usage_service)):
    """Aggregate statistics over the whole usage ledger"""
    return await usage_service.usage_report()
