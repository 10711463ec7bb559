"""
Malformed transcript repair
Asks a Gemini model to turn a broken transcript buffer back into a segment array
"""

from typing import Optional, Protocol

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from transcribe_api.exceptions import DownstreamRepairFailure, ProviderError
from transcribe_api.schemas.segment import TranscriptSegment

REPAIR_PROMPT = (
    "The following text was meant to be a JSON array of transcript segments, each an "
    'object with the string fields "timestamp", "speaker" and "text", but it is not '
    "valid JSON. Fix it and respond with only the corrected JSON array. Do not add, "
    "remove or reword any segment.\n\n{raw}"
)

_segment_list = TypeAdapter(list[TranscriptSegment])


class JsonGenerator(Protocol):
    async def generate_json(self, model: str, prompt: str) -> str: ...


class GeminiTranscriptRepairer:
    """Single-shot repair through the configured repair model"""

    def __init__(self, client: Optional[JsonGenerator], model: str):
        self.client = client
        self.model = model

    async def repair(self, raw: str) -> list[TranscriptSegment]:
        """
        Return the corrected segment array

        Raises:
            DownstreamRepairFailure: provider call failed or the answer is not
                a valid segment array
        """
        if self.client is None:
            raise DownstreamRepairFailure("Transcript repair is not configured")

        logger.info(f"Repairing transcript: model={self.model}, chars={len(raw)}")
        try:
            answer = await self.client.generate_json(self.model, REPAIR_PROMPT.format(raw=raw))
        except ProviderError as e:
            logger.error(f"Repair request failed: model={self.model}, error={e}")
            raise DownstreamRepairFailure() from e

        try:
            segments = _segment_list.validate_json(answer)
        except ValidationError as e:
            logger.error(f"Repair answer is not a segment array: {e.error_count()} errors")
            raise DownstreamRepairFailure() from e

        logger.info(f"Transcript repaired: segments={len(segments)}")
        return segments

