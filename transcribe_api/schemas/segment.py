"""
Transcript segment schemas
"""

from pydantic import BaseModel, ConfigDict, Field


class TranscriptSegment(BaseModel):
    """One speaker turn of the transcript"""

    model_config = ConfigDict(extra="ignore")

    timestamp: str = Field(..., description="Start time in mm:ss format")
    speaker: str = Field(..., description="Speaker label")
    text: str = Field(..., description="Spoken text")


class RepairRequest(BaseModel):
    """Raw, possibly malformed transcript buffer"""

    text: str = Field(..., min_length=1, description="Raw transcript buffer")
