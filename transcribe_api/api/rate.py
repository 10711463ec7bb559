"""
Rating API
"""

import json

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from transcribe_api.exceptions import LedgerFailure
from transcribe_api.schemas import RatingRequest, RatingResponse
from transcribe_api.services import UsageService
from .deps import get_usage_service

router = APIRouter(prefix="/rate", tags=["rate"])


def _failure(status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=RatingResponse(success=False).model_dump())


@router.post("", response_model=RatingResponse)
async def rate_transcript(
    request: Request,
    usage_service: UsageService = Depends(get_usage_service),
):
    """
    Attach a thumbs up (1) or thumbs down (-1) to a usage record

    Body: {"usageId": 12, "rating": 1}. Anything else, including an unknown
    usageId, is answered with 400 {"success": false}.
    """
    try:
        payload = RatingRequest.model_validate(await request.json())
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        logger.warning(f"Invalid rating request: {e}")
        return _failure(status.HTTP_400_BAD_REQUEST)

    try:
        saved = await usage_service.save_rating(payload.usage_id, payload.rating)
    except LedgerFailure:
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR)

    if not saved:
        return _failure(status.HTTP_400_BAD_REQUEST)
    return RatingResponse(success=True)
