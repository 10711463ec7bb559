"""
Transcript export
Plain text and SubRip (.srt) renderings of a segment list
"""

from typing import Optional, Sequence

from transcribe_api.schemas.segment import TranscriptSegment

LAST_CUE_SECONDS = 5


def parse_timestamp(value: str) -> Optional[int]:
    """
    Seconds from an mm:ss or hh:mm:ss timestamp

    Returns:
        None if the value is not a timestamp
    """
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        numbers = [int(part) for part in parts]
    except ValueError:
        return None
    if any(n < 0 for n in numbers):
        return None

    seconds = 0
    for n in numbers:
        seconds = seconds * 60 + n
    return seconds


def _srt_time(seconds: int) -> str:
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},000"


def to_plain_text(segments: Sequence[TranscriptSegment], include_timestamps: bool = True) -> str:
    lines = []
    for segment in segments:
        if include_timestamps:
            lines.append(f"[{segment.timestamp}] {segment.speaker}: {segment.text}")
        else:
            lines.append(f"{segment.speaker}: {segment.text}")
    return "\n".join(lines) + ("\n" if lines else "")


def to_srt(segments: Sequence[TranscriptSegment]) -> str:
    """
    SubRip subtitles, one numbered cue per segment

    A cue ends where the next one starts. The last cue, and any cue whose
    successor does not start later, lasts LAST_CUE_SECONDS. A segment with an
    unreadable timestamp starts where the previous cue started.
    """
    starts: list[int] = []
    previous = 0
    for segment in segments:
        start = parse_timestamp(segment.timestamp)
        if start is None:
            start = previous
        starts.append(start)
        previous = start

    cues = []
    for index, segment in enumerate(segments):
        start = starts[index]
        end = start + LAST_CUE_SECONDS
        if index + 1 < len(starts) and starts[index + 1] > start:
            end = starts[index + 1]
        cues.append(
            f"{index + 1}\n"
            f"{_srt_time(start)} --> {_srt_time(end)}\n"
            f"{segment.speaker}: {segment.text}\n"
        )
    return "\n".join(cues)
