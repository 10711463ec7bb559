"""
Upload API
Admission probe and the upload -> transcript stream endpoint
"""

from typing import Optional
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import StreamingResponse
from loguru import logger

from transcribe_api.exceptions import (
    AdmissionDenied,
    CrossOriginRejected,
    IngestionFailure,
    ValidationFailure,
)
from transcribe_api.schemas import QuotaResponse
from transcribe_api.services import (
    RateLimiter,
    TranscriptionService,
    UploadIngestor,
    UsageService,
    build_streaming_response,
    resolve_client_id,
)
from .deps import (
    get_rate_limiter,
    get_transcription_service,
    get_upload_ingestor,
    get_usage_service,
)

DEFAULT_LANGUAGE = "English"

router = APIRouter(prefix="/upload", tags=["upload"])


def check_origin(request: Request) -> None:
    """
    Reject browser requests sent from another site

    Only the host part is compared; the scheme is not reliable behind a
    TLS-terminating proxy.

    Raises:
        CrossOriginRejected: Origin is present and names a different host
    """
    origin: Optional[str] = request.headers.get("origin")
    if not origin:
        return
    host = request.headers.get("host", "")
    try:
        origin_host = urlsplit(origin).netloc
    except ValueError:
        origin_host = ""
    if not origin_host or origin_host.lower() != host.lower():
        logger.warning(f"Cross-origin upload rejected: origin={origin}, host={host}")
        raise CrossOriginRejected()


@router.get("", response_model=QuotaResponse)
async def get_quota(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """
    Remaining uploads for the calling client

    Nothing is charged. Returns 429 with an empty body once the quota is used up.
    """
    admission = await limiter.check(resolve_client_id(request))
    if not admission.allowed:
        return Response(status_code=status.HTTP_429_TOO_MANY_REQUESTS)
    return QuotaResponse(remaining=admission.remaining)


@router.post("", response_class=StreamingResponse)
async def upload_and_transcribe(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    ingestor: UploadIngestor = Depends(get_upload_ingestor),
    transcription_service: TranscriptionService = Depends(get_transcription_service),
    usage_service: UsageService = Depends(get_usage_service),
):
    """
    Upload a media file and stream its transcript back

    - **file**: media file (required)
    - **language**: transcript language (optional, default English)

    The response body is the raw JSON transcript as the model produces it.
    The X-Usage-Id header carries the ledger id to rate the result with.
    """
    check_origin(request)

    client_id = resolve_client_id(request)
    admission = await limiter.admit(client_id)
    if not admission.allowed:
        raise AdmissionDenied()

    content_length = request.headers.get("content-length")
    try:
        ingested = await ingestor.ingest(
            request.stream(),
            request.headers.get("content-type"),
            content_length,
        )
        if ingested.artifact is None:
            raise ValidationFailure("No file uploaded")
    except (ValidationFailure, IngestionFailure) as e:
        logger.warning(f"Upload rejected: client={client_id}, status={e.status_code}, reason={e.message}")
        await limiter.refund(client_id, admission)
        raise

    artifact = ingested.artifact
    language = ingested.fields.get("language") or DEFAULT_LANGUAGE
    logger.info(
        f"Upload received: client={client_id}, file={artifact.filename}, "
        f"size={artifact.size}, language={language}"
    )

    try:
        job = await transcription_service.transcribe(artifact, language)
    except ValidationFailure as e:
        logger.warning(f"Upload rejected: client={client_id}, reason={e.message}")
        await limiter.refund(client_id, admission)
        raise
    finally:
        artifact.cleanup()

    file_size = int(content_length) if content_length else ingested.body_size
    try:
        usage_id = await usage_service.record(file_size, job.model_used, job.duration_ms)
    except BaseException:
        # the response never starts, so release the stream and remote file here
        await job.stream.aclose()
        raise

    return build_streaming_response(job.stream, usage_id)
