"""
Service layer
"""

from .rate_limiter import AdmissionResult, RateLimiter, resolve_client_id
from .repair_service import GeminiTranscriptRepairer
from .stream_relay import USAGE_ID_HEADER, build_streaming_response, relay_text_stream
from .transcription_service import TranscriptionJob, TranscriptionService
from .upload_ingestor import IngestResult, UploadArtifact, UploadIngestor
from .usage_service import UsageService

__all__ = [
    "AdmissionResult",
    "RateLimiter",
    "resolve_client_id",
    "GeminiTranscriptRepairer",
    "USAGE_ID_HEADER",
    "build_streaming_response",
    "relay_text_stream",
    "TranscriptionJob",
    "TranscriptionService",
    "IngestResult",
    "UploadArtifact",
    "UploadIngestor",
    "UsageService",
]
