"""
Relay of provider text deltas to the HTTP response body

Bytes are forwarded as they arrive, without framing, so the client can
rebuild the JSON document from the raw stream.
"""

from typing import AsyncIterator, Optional

import anyio
from fastapi.responses import StreamingResponse
from loguru import logger

USAGE_ID_HEADER = "X-Usage-Id"


async def relay_text_stream(deltas: AsyncIterator[str]) -> AsyncIterator[bytes]:
    """
    Encode non-empty deltas in arrival order

    When the consumer goes away (client disconnect cancels the response
    task) the upstream iterator is closed instead of being drained.
    """
    forwarded = 0
    try:
        async for delta in deltas:
            if not delta:
                continue
            forwarded += len(delta)
            yield delta.encode("utf-8")
    finally:
        aclose = getattr(deltas, "aclose", None)
        if aclose is not None:
            with anyio.CancelScope(shield=True):
                await aclose()
        logger.info(f"Relay closed after {forwarded} characters")


def build_streaming_response(deltas: AsyncIterator[str], usage_id: Optional[int]) -> StreamingResponse:
    return StreamingResponse(
        relay_text_stream(deltas),
        media_type="text/plain; charset=utf-8",
        headers={
            "X-Content-Type-Options": "nosniff",
            USAGE_ID_HEADER: str(usage_id or 0),
        },
    )
