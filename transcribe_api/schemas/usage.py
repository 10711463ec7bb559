"""
Usage ledger schemas
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator


class QuotaResponse(BaseModel):
    """Remaining admissions for the calling client"""

    remaining: int = Field(..., ge=0)


class RatingRequest(BaseModel):
    """Quality signal attached to a usage record"""

    model_config = ConfigDict(populate_by_name=True)

    usage_id: int = Field(..., alias="usageId", gt=0, le=2**63 - 1, description="Usage record id")
    rating: StrictInt = Field(..., description="1 (thumbs up) or -1 (thumbs down)")

    @field_validator("rating")
    @classmethod
    def _check_rating(cls, value: int) -> int:
        if value not in (1, -1):
            raise ValueError("rating must be 1 or -1")
        return value


class RatingResponse(BaseModel):
    success: bool


class MonthlyStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    monthly_upload_count: int = Field(..., alias="monthlyUploadCount")


class FileSizeStats(BaseModel):
    max_size: Optional[int] = None
    min_size: Optional[int] = None
    avg_size: Optional[float] = None
    total_size: Optional[int] = None


class DurationStats(BaseModel):
    """Duration aggregates over records with a known, non-zero duration"""

    valid_count: int = 0
    max_duration: Optional[int] = None
    min_duration: Optional[int] = None
    avg_duration: Optional[float] = None
    total_duration: Optional[int] = None


class DuplicateGroup(BaseModel):
    file_size_bytes: int
    duration_ms: int
    count: int


class ModelUsage(BaseModel):
    model_used: str
    count: int
    avg_size: Optional[float] = None
    avg_duration: Optional[float] = None


class RatingSummary(BaseModel):
    thumbs_up: int = 0
    thumbs_down: int = 0
    unrated: int = 0


class UsageReport(BaseModel):
    """Aggregate view over the usage ledger"""

    total_records: int
    file_size: FileSizeStats
    duration: DurationStats
    duplicates: list[DuplicateGroup]
    models: list[ModelUsage]
    ratings: RatingSummary
