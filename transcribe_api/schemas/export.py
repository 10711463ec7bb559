"""
Export schemas
"""

from typing import Literal

from pydantic import BaseModel, Field

from .segment import TranscriptSegment


class ExportRequest(BaseModel):
    """Segments to serialize into a downloadable file"""

    segments: list[TranscriptSegment] = Field(default_factory=list)
    format: Literal["txt", "srt"] = Field(default="txt", description="txt or srt")
    timestamps: bool = Field(default=True, description="Include timestamps (txt only)")
