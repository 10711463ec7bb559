"""
Transcription orchestration

UPLOADING -> PENDING_PROCESSING -> {PROCESSING poll} -> READY | FAILED
-> GENERATING -> {STREAMING | MODEL_FALLBACK} -> DONE | ABORTED
"""

import asyncio
import enum
import functools
import json
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol, Union

from loguru import logger

from transcribe_api.config import Settings
from transcribe_api.exceptions import (
    ProviderError,
    ProviderExhausted,
    ProviderFatal,
    UploadFailure,
    ValidationFailure,
)
from transcribe_api.integrations.gemini.client import FileState, ProviderFile
from transcribe_api.services.upload_ingestor import UploadArtifact
from transcribe_api.utils.ffmpeg import describe_duration, format_minutes

MOCK_MODEL = "mock-model-v1"
MOCK_DURATION_MS = 15000
MOCK_CHUNK_SIZE = 10

MOCK_TRANSCRIPT = [
    {
        "timestamp": "00:01",
        "speaker": "Mock Speaker",
        "text": "This is a simulated transcript for local development.",
    },
    {
        "timestamp": "00:05",
        "speaker": "Mock Speaker",
        "text": "It allows you to test the UI, streaming, and database without hitting the Google API.",
    },
    {
        "timestamp": "00:10",
        "speaker": "Mock Speaker",
        "text": "This specific sentence helps test long text wrapping in the frontend component to ensure it looks good.",
    },
    {"timestamp": "00:15", "speaker": "Mock Speaker", "text": "End of simulation."},
]

RETRYABLE_MARKERS = ("429", "503", "rate limit", "resource_exhausted", "overloaded", "unavailable")


class TranscriptionProvider(Protocol):
    async def upload_file(self, path: str, mime_type: str) -> ProviderFile: ...

    async def get_file(self, name: str) -> ProviderFile: ...

    async def delete_file(self, name: str) -> None: ...

    async def stream_transcript(
        self, model: str, file_uri: str, mime_type: str, language: str
    ) -> AsyncIterator[str]: ...


class PollState(str, enum.Enum):
    """Outcome of one readiness poll"""

    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"
    TRANSIENT_ERROR = "transient_error"


@dataclass
class AttemptSuccess:
    model: str
    first: Optional[str]
    stream: AsyncIterator[str]


@dataclass
class AttemptRetryable:
    model: str
    reason: str


@dataclass
class AttemptFatal:
    model: str
    reason: str
    error: Exception


AttemptOutcome = Union[AttemptSuccess, AttemptRetryable, AttemptFatal]


@dataclass
class TranscriptionJob:
    """An established transcript stream plus the facts the ledger needs"""

    stream: AsyncIterator[str]
    model_used: str
    duration_ms: int


def is_retryable_generation_error(error: Exception) -> bool:
    """Rate limiting and temporary unavailability move on to the next model."""
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code in (429, 503)
    message = str(error).lower()
    return any(marker in message for marker in RETRYABLE_MARKERS)


async def mock_transcript_stream(chunk_delay: float) -> AsyncIterator[str]:
    """Deterministic transcript JSON, chopped into fixed-size pieces."""
    full_json = json.dumps(MOCK_TRANSCRIPT, separators=(",", ":"))
    for i in range(0, len(full_json), MOCK_CHUNK_SIZE):
        await asyncio.sleep(chunk_delay)
        yield full_json[i : i + MOCK_CHUNK_SIZE]


class TranscriptStream:
    """
    Provider transcript stream with its first delta already read

    Closing it, or reading it to the end, closes the provider stream and
    runs the release callback exactly once. Closing works before iteration
    has started.
    """

    def __init__(
        self,
        first: Optional[str],
        rest: AsyncIterator[str],
        release: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self._first = first
        self._rest = rest
        self._release = release
        self._closed = False

    def __aiter__(self) -> "TranscriptStream":
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        if self._first is not None:
            first, self._first = self._first, None
            return first
        try:
            return await anext(self._rest)
        except Exception:
            await self.aclose()
            raise

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            aclose = getattr(self._rest, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            if self._release is not None:
                await self._release()


class TranscriptionService:
    """Drives one upload through the provider and returns a live transcript stream"""

    def __init__(
        self,
        provider: Optional[TranscriptionProvider],
        settings: Settings,
        probe: Optional[Callable[[str], Awaitable[Optional[int]]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.settings = settings
        self.probe = probe
        self._sleep = sleep

    async def transcribe(self, artifact: UploadArtifact, language: str) -> TranscriptionJob:
        """
        Run the whole provider pipeline for one artifact

        The artifact is deleted once the provider ingestion attempt concludes,
        whatever its outcome.

        Raises:
            ValidationFailure: media longer than the configured ceiling
            UploadFailure: provider upload failed
            ProviderFatal / ProviderExhausted: terminal provider outcomes
        """
        if self.settings.mock_api:
            return await self._transcribe_mock(artifact)

        if self.provider is None:
            raise ProviderFatal("Transcription provider is not configured")

        try:
            duration_ms = await self._check_duration(artifact)
            uploaded = await self._upload(artifact)
        finally:
            artifact.cleanup()

        try:
            ready = await self._wait_until_ready(uploaded)
            success = await self._generate_with_fallback(ready, artifact.mime_type, language)
        except BaseException:
            await self._delete_remote(uploaded.name)
            raise

        return TranscriptionJob(
            stream=TranscriptStream(
                success.first, success.stream, release=functools.partial(self._delete_remote, uploaded.name)
            ),
            model_used=success.model,
            duration_ms=duration_ms,
        )

    # ---- mock mode ----

    async def _transcribe_mock(self, artifact: UploadArtifact) -> TranscriptionJob:
        logger.info("--- MOCK MODE: Skipping Google API ---")
        try:
            await self._sleep(self.settings.mock_upload_delay_seconds)
        finally:
            artifact.cleanup()
        return TranscriptionJob(
            stream=mock_transcript_stream(self.settings.mock_chunk_delay_seconds),
            model_used=MOCK_MODEL,
            duration_ms=MOCK_DURATION_MS,
        )

    # ---- UPLOADING ----

    async def _check_duration(self, artifact: UploadArtifact) -> int:
        if self.probe is None:
            return 0
        try:
            duration_ms = await self.probe(str(artifact.path))
        except Exception as e:
            logger.warning(f"Duration probe failed, continuing without it: {e}")
            return 0
        if duration_ms is None:
            return 0
        if duration_ms > self.settings.max_media_duration_ms:
            minutes = format_minutes(duration_ms)
            logger.warning(f"Rejecting long media: duration={duration_ms}ms")
            raise ValidationFailure(
                f"File is too long ({minutes} minutes). The model currently only "
                f"supports up to {describe_duration(self.settings.max_media_duration_ms)} of audio per file."
            )
        return duration_ms

    async def _upload(self, artifact: UploadArtifact) -> ProviderFile:
        try:
            return await self.provider.upload_file(str(artifact.path), artifact.mime_type)
        except ProviderError as e:
            logger.error(f"Provider upload failed: {e}")
            raise UploadFailure() from e

    # ---- PENDING_PROCESSING / PROCESSING ----

    async def _poll_once(self, name: str) -> tuple[PollState, Optional[ProviderFile]]:
        try:
            file = await self.provider.get_file(name)
        except ProviderError as e:
            if e.is_server_error:
                return PollState.TRANSIENT_ERROR, None
            logger.error(f"Unhandled error during file polling: {e}")
            raise ProviderFatal() from e

        if file.state == FileState.PROCESSING:
            return PollState.PROCESSING, file
        if file.state == FileState.FAILED:
            return PollState.FAILED, file
        return PollState.READY, file

    async def _wait_until_ready(self, uploaded: ProviderFile) -> ProviderFile:
        """
        Poll until the provider finishes processing the upload

        Only transient errors count against the retry budget; a long run of
        successful "still processing" answers is tolerated.
        """
        retries = 0
        while True:
            state, file = await self._poll_once(uploaded.name)

            if state == PollState.TRANSIENT_ERROR:
                retries += 1
                if retries > self.settings.max_poll_retries:
                    logger.error(
                        f"Transcription API failed after {self.settings.max_poll_retries} retries"
                    )
                    raise ProviderExhausted()
                delay = self.settings.retry_base_delay_seconds * 2 ** (retries - 1)
                logger.warning(
                    f"Transcription API error during polling, retrying in {delay}s "
                    f"(attempt {retries}/{self.settings.max_poll_retries})"
                )
                await self._sleep(delay)
                continue

            retries = 0
            if state == PollState.PROCESSING:
                logger.info(
                    f"File is processing, waiting {self.settings.poll_interval_seconds}s before next poll"
                )
                await self._sleep(self.settings.poll_interval_seconds)
                continue
            break

        if state == PollState.FAILED:
            logger.error(f"File processing failed: name={file.name}")
            raise ProviderFatal(
                "Unfortunately this file couldn't be processed. "
                "The file may be corrupt or in an unsupported format."
            )
        if not file.uri:
            logger.error(f"Uploaded file URI is undefined: name={file.name}")
            raise ProviderFatal("File upload incomplete, URI not available")
        return file

    # ---- GENERATING / MODEL_FALLBACK ----

    async def _attempt(self, model: str, file: ProviderFile, mime_type: str, language: str) -> AttemptOutcome:
        try:
            stream = await self.provider.stream_transcript(model, file.uri, mime_type, language)
            # Errors that only surface on the first read still count as this attempt's
            try:
                first = await anext(stream)
            except StopAsyncIteration:
                first = None
        except ProviderError as e:
            if is_retryable_generation_error(e):
                return AttemptRetryable(model=model, reason=str(e))
            return AttemptFatal(model=model, reason=str(e), error=e)
        return AttemptSuccess(model=model, first=first, stream=stream)

    async def _generate_with_fallback(
        self, file: ProviderFile, mime_type: str, language: str
    ) -> AttemptSuccess:
        models = self.settings.transcription_models
        for model in models:
            logger.info(f"Attempting transcription with {model}")
            outcome = await self._attempt(model, file, mime_type, language)

            if isinstance(outcome, AttemptSuccess):
                logger.info(f"Transcription stream established: model={model}")
                return outcome
            if isinstance(outcome, AttemptRetryable):
                logger.warning(f"Model {model} unavailable or rate limited, trying next model: {outcome.reason}")
                continue

            logger.error(f"Transcription failed with {model}: {outcome.reason}")
            raise ProviderFatal() from outcome.error

        logger.error(f"All transcription models failed: models={models}")
        raise ProviderExhausted("All transcription models are currently unavailable. Please try again later.")

    # ---- STREAMING / DONE ----

    async def _delete_remote(self, file_name: str) -> None:
        try:
            await self.provider.delete_file(file_name)
        except ProviderError as e:
            logger.error(f"Error deleting uploaded file: name={file_name}, error={e}")
