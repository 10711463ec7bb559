"""
Shared fixtures: settings, a temporary usage ledger, a fake Gemini provider
and a multipart body builder.
"""

import asyncio
from pathlib import Path
from typing import AsyncIterator, Optional, Union

import pytest
from sqlalchemy.pool import NullPool

from transcribe_api.config import Settings
from transcribe_api.database import create_engine, create_session_factory, init_db
from transcribe_api.exceptions import ProviderError
from transcribe_api.integrations.gemini.client import FileState, ProviderFile
from transcribe_api.services.usage_service import UsageService

BOUNDARY = "----transcribe-test-boundary"


def build_multipart(
    files: list[tuple[str, str, bytes, str]] = (),
    fields: Optional[dict[str, str]] = None,
    boundary: str = BOUNDARY,
) -> bytes:
    """files: (field name, filename, content, content type)"""
    body = b""
    for name, value in (fields or {}).items():
        body += (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
            f"{value}\r\n"
        ).encode()
    for name, filename, content, content_type in files:
        body += (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n"
        ).encode()
        body += content + b"\r\n"
    body += f"--{boundary}--\r\n".encode()
    return body


def multipart_content_type(boundary: str = BOUNDARY) -> str:
    return f"multipart/form-data; boundary={boundary}"


async def chunked(data: bytes, size: int = 7) -> AsyncIterator[bytes]:
    for i in range(0, len(data), size):
        yield data[i : i + size]


class FakeProvider:
    """
    In-memory stand-in for the Gemini client

    poll_results: consumed in order by get_file; each entry is a file state
        string or an exception to raise. When empty, the file is ACTIVE.
    generation: per model, a list of deltas (an exception inside the list is
        raised when reached) or an exception raised when the stream is opened.
    """

    def __init__(self):
        self.poll_results: list[Union[str, Exception]] = []
        self.generation: dict[str, Union[list, Exception]] = {}
        self.upload_error: Optional[Exception] = None
        self.uri: Optional[str] = "https://files.example/abc"
        self.uploads: list[tuple[str, str]] = []
        self.uploaded_bytes: list[bytes] = []
        self.polls = 0
        self.attempted_models: list[str] = []
        self.deleted: list[str] = []
        self.closed_streams = 0

    async def upload_file(self, path: str, mime_type: str) -> ProviderFile:
        self.uploads.append((path, mime_type))
        self.uploaded_bytes.append(Path(path).read_bytes())
        if self.upload_error is not None:
            raise self.upload_error
        return ProviderFile(name="files/abc", state=FileState.PROCESSING)

    async def get_file(self, name: str) -> ProviderFile:
        self.polls += 1
        state = self.poll_results.pop(0) if self.poll_results else FileState.ACTIVE
        if isinstance(state, Exception):
            raise state
        return ProviderFile(name=name, state=state, uri=self.uri if state == FileState.ACTIVE else None)

    async def delete_file(self, name: str) -> None:
        self.deleted.append(name)

    async def stream_transcript(self, model, file_uri, mime_type, language) -> AsyncIterator[str]:
        self.attempted_models.append(model)
        outcome = self.generation.get(model, ['[{"timestamp":"00:00","speaker":"A","text":"hi"}]'])
        if isinstance(outcome, Exception):
            raise outcome
        return self._iter(outcome)

    async def _iter(self, deltas: list) -> AsyncIterator[str]:
        try:
            for delta in deltas:
                if isinstance(delta, Exception):
                    raise delta
                yield delta
        finally:
            self.closed_streams += 1


def run_sync(coro):
    """Run a coroutine on a private loop, leaving the current event loop alone"""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class SleepRecorder:
    """Replaces asyncio.sleep and records the requested delays"""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def upload_dir(tmp_path) -> Path:
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def test_settings(upload_dir) -> Settings:
    return Settings(
        _env_file=None,
        GOOGLE_API_KEY="test-key",
        MOCK_API=False,
        TRANSCRIPTION_MODELS=["model-a", "model-b", "model-c"],
        MOCK_UPLOAD_DELAY_SECONDS=0,
        MOCK_CHUNK_DELAY_SECONDS=0,
        UPLOAD_TEMP_DIR=str(upload_dir),
        LOG_FILE=None,
    )


@pytest.fixture
def mock_settings(test_settings) -> Settings:
    return test_settings.model_copy(update={"mock_api": True})


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'usage.db'}", poolclass=NullPool)
    run_sync(init_db(engine))
    yield create_session_factory(engine)
    run_sync(engine.dispose())


@pytest.fixture
def usage_service(session_factory) -> UsageService:
    return UsageService(session_factory)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


def server_error(message: str = "500 Internal Server Error") -> ProviderError:
    return ProviderError(message, status_code=500)
