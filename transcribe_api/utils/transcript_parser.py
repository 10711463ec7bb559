"""
Incremental transcript reconstruction

The transcript arrives as raw JSON text split at arbitrary points. While it
streams, complete top-level ``{...}`` objects are picked out with a small
scanner that tracks brace depth and string/escape state. When the stream ends
the whole buffer is parsed as one document; only if that fails is the raw
text handed to a repair transform.
"""

import json
from typing import Any, Optional, Protocol

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from transcribe_api.exceptions import DownstreamRepairFailure
from transcribe_api.schemas.segment import TranscriptSegment

_segment_list = TypeAdapter(list[TranscriptSegment])


class TranscriptRepairer(Protocol):
    async def repair(self, raw: str) -> list[TranscriptSegment]: ...


class IncrementalObjectScanner:
    """Finds complete top-level JSON objects in text that is still growing."""

    def __init__(self) -> None:
        self._text = ""
        self._pos = 0
        self._depth = 0
        self._in_string = False
        self._escape = False
        self._start: Optional[int] = None
        self.objects: list[dict[str, Any]] = []

    @property
    def text(self) -> str:
        return self._text

    def feed(self, chunk: str) -> list[dict[str, Any]]:
        """
        Append a chunk and scan only the new characters

        Returns:
            Objects completed by this chunk
        """
        self._text += chunk
        completed: list[dict[str, Any]] = []

        text = self._text
        for index in range(self._pos, len(text)):
            char = text[index]

            if self._in_string:
                if self._escape:
                    self._escape = False
                elif char == "\\":
                    self._escape = True
                elif char == '"':
                    self._in_string = False
                continue

            if char == '"' and self._depth > 0:
                self._in_string = True
            elif char == "{":
                if self._depth == 0:
                    self._start = index
                self._depth += 1
            elif char == "}":
                if self._depth == 0:
                    # Stray closing brace outside any object
                    continue
                self._depth -= 1
                if self._depth == 0 and self._start is not None:
                    candidate = text[self._start : index + 1]
                    self._start = None
                    try:
                        value = json.loads(candidate)
                    except ValueError:
                        continue
                    if isinstance(value, dict):
                        completed.append(value)

        self._pos = len(text)
        self.objects.extend(completed)
        return completed


class TranscriptAssembler:
    """Accumulates deltas and exposes the current best view of the transcript"""

    def __init__(self, repairer: Optional[TranscriptRepairer] = None):
        self.repairer = repairer
        self._scanner = IncrementalObjectScanner()
        self.segments: list[TranscriptSegment] = []

    @property
    def buffer(self) -> str:
        return self._scanner.text

    def feed(self, delta: str) -> list[TranscriptSegment]:
        """
        Add a delta and return the full speculative segment list

        The returned list replaces whatever was shown before.
        """
        if delta:
            self._scanner.feed(delta)
            segments = []
            for obj in self._scanner.objects:
                try:
                    segments.append(TranscriptSegment.model_validate(obj))
                except ValidationError:
                    continue
            self.segments = segments
        return self.segments

    async def finalize(self) -> list[TranscriptSegment]:
        """
        Parse the complete buffer

        Raises:
            DownstreamRepairFailure: the buffer is malformed and repair failed
        """
        segments = parse_transcript(self.buffer)
        if segments is None:
            if self.repairer is None:
                raise DownstreamRepairFailure("Transcript is malformed and no repair is available")
            logger.warning(f"Transcript is malformed, sending {len(self.buffer)} chars for repair")
            segments = await self.repairer.repair(self.buffer)
        self.segments = segments
        return segments


def parse_transcript(text: str) -> Optional[list[TranscriptSegment]]:
    """Strict full-document parse. Returns None if the text is not a segment array."""
    try:
        return _segment_list.validate_json(text)
    except ValidationError:
        return None
