"""
Pydantic schemas
"""

from .export import ExportRequest
from .segment import RepairRequest, TranscriptSegment
from .usage import (
    MonthlyStatsResponse,
    QuotaResponse,
    RatingRequest,
    RatingResponse,
    UsageReport,
)

__all__ = [
    "ExportRequest",
    "RepairRequest",
    "TranscriptSegment",
    "MonthlyStatsResponse",
    "QuotaResponse",
    "RatingRequest",
    "RatingResponse",
    "UsageReport",
]
