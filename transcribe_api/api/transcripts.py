"""
Transcript transforms API
Export to a downloadable file and repair of malformed transcript JSON
"""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from transcribe_api.schemas import ExportRequest, RepairRequest, TranscriptSegment
from transcribe_api.services import GeminiTranscriptRepairer
from transcribe_api.utils.export import to_plain_text, to_srt
from transcribe_api.utils.transcript_parser import TranscriptAssembler
from .deps import get_repairer

router = APIRouter(tags=["transcripts"])

EXPORT_MEDIA_TYPES = {
    "txt": "text/plain; charset=utf-8",
    "srt": "application/x-subrip; charset=utf-8",
}


@router.post("/export", response_class=PlainTextResponse)
async def export_transcript(payload: ExportRequest):
    """
    Render segments as a downloadable file

    - **format**: txt or srt
    - **timestamps**: prefix lines with [mm:ss] (txt only)
    """
    if payload.format == "srt":
        body = to_srt(payload.segments)
    else:
        body = to_plain_text(payload.segments, include_timestamps=payload.timestamps)

    return PlainTextResponse(
        body,
        media_type=EXPORT_MEDIA_TYPES[payload.format],
        headers={"Content-Disposition": f'attachment; filename="transcript.{payload.format}"'},
    )


@router.post("/repair", response_model=list[TranscriptSegment])
async def repair_transcript(
    payload: RepairRequest,
    repairer: GeminiTranscriptRepairer = Depends(get_repairer),
):
    """
    Turn a raw transcript buffer into a segment array

    Text that already parses is returned as is; otherwise it is sent to the
    repair model. Answers 502 when the repair fails.
    """
    assembler = TranscriptAssembler(repairer=repairer)
    assembler.feed(payload.text)
    return await assembler.finalize()
