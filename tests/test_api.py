"""
End-to-end tests for the HTTP API.

Runs the FastAPI app with a temporary ledger, an isolated rate limiter and
either mock mode or a fake Gemini provider.
"""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from conftest import build_multipart, multipart_content_type
from transcribe_api.api.deps import (
    get_app_settings,
    get_rate_limiter,
    get_repairer,
    get_transcription_service,
    get_usage_service,
)
from transcribe_api.exceptions import ProviderError
from transcribe_api.main import app
from transcribe_api.services import GeminiTranscriptRepairer, RateLimiter, TranscriptionService, UsageService

MEDIA = b"ID3fake-mp3-content" * 20


def upload_body(**fields) -> bytes:
    return build_multipart(files=[("file", "talk.mp3", MEDIA, "audio/mpeg")], fields=fields)


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(limit=5, window_seconds=86400)


@pytest.fixture
def client(mock_settings, session_factory, limiter):
    app.dependency_overrides[get_app_settings] = lambda: mock_settings
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_usage_service] = lambda: UsageService(session_factory)
    yield TestClient(app)
    app.dependency_overrides.clear()


def post_upload(client: TestClient, body: bytes, **headers):
    return client.post(
        "/api/upload",
        content=body,
        headers={"content-type": multipart_content_type(), **headers},
    )


class TestUploadMockMode:
    """Test the upload endpoint end to end in mock mode."""

    def test_streams_mock_transcript(self, client, session_factory, upload_dir):
        body = upload_body(language="Spanish")

        response = post_upload(client, body)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-usage-id"] == "1"

        segments = json.loads(response.text)
        assert len(segments) == 4
        assert segments[-1] == {
            "timestamp": "00:15",
            "speaker": "Mock Speaker",
            "text": "End of simulation.",
        }
        assert list(upload_dir.iterdir()) == []

    def test_usage_recorded(self, client, session_factory):
        body = upload_body()
        post_upload(client, body)

        report = client.get("/api/usage/report").json()
        assert report["total_records"] == 1
        assert report["models"][0]["model_used"] == "mock-model-v1"
        assert report["file_size"]["total_size"] == len(body)
        assert report["duration"]["total_duration"] == 15000

    def test_same_origin_allowed(self, client):
        response = post_upload(client, upload_body(), origin="http://testserver")
        assert response.status_code == 200


class TestUploadRejections:
    """Test local validation failures and their effect on the quota."""

    def test_cross_origin_forbidden(self, client, limiter):
        response = post_upload(client, upload_body(), origin="https://evil.example")

        assert response.status_code == 403
        assert response.text == "Forbidden"
        assert limiter.count_for("testclient") == 0

    def test_non_multipart_refunded(self, client, limiter):
        response = client.post("/api/upload", json={"file": "nope"})

        assert response.status_code == 400
        assert response.text == "Expected multipart/form-data"
        assert limiter.count_for("testclient") == 0

    def test_missing_file_refunded(self, client, limiter):
        response = post_upload(client, build_multipart(fields={"language": "English"}))

        assert response.status_code == 400
        assert response.text == "No file uploaded"
        assert limiter.count_for("testclient") == 0

    def test_too_large(self, mock_settings, client, limiter, upload_dir):
        """Declared size above the ceiling: 413, no charge kept, nothing on disk."""
        app.dependency_overrides[get_app_settings] = lambda: mock_settings.model_copy(
            update={"max_upload_size": 100}
        )

        response = post_upload(client, upload_body())

        assert response.status_code == 413
        assert response.text == "File too large"
        assert limiter.count_for("testclient") == 0
        assert list(upload_dir.iterdir()) == []

    def test_sixth_upload_rate_limited(self, client):
        for _ in range(5):
            assert post_upload(client, upload_body()).status_code == 200

        response = post_upload(client, upload_body())

        assert response.status_code == 429
        assert response.text == (
            "This free service supports up to 5 requests per user per day. "
            "Please try again tomorrow."
        )


class TestQuotaProbe:
    """Test GET /api/upload."""

    def test_remaining(self, client):
        assert client.get("/api/upload").json() == {"remaining": 5}
        post_upload(client, upload_body())
        assert client.get("/api/upload").json() == {"remaining": 4}

    def test_exhausted(self, client, limiter):
        for _ in range(5):
            post_upload(client, upload_body())

        response = client.get("/api/upload")

        assert response.status_code == 429
        assert response.content == b""


class TestUploadWithProvider:
    """Test the upload endpoint against a fake Gemini provider."""

    @pytest.fixture(autouse=True)
    def _provider(self, client, test_settings, fake_provider, sleep_recorder):
        self.provider = fake_provider
        service = TranscriptionService(fake_provider, test_settings, sleep=sleep_recorder)
        app.dependency_overrides[get_app_settings] = lambda: test_settings
        app.dependency_overrides[get_transcription_service] = lambda: service

    def test_fallback_model_recorded(self, client):
        self.provider.generation = {
            "model-a": ProviderError("429 Too Many Requests", status_code=429),
            "model-b": ['[{"timestamp":"00:00",', '"speaker":"S","text":"fallback"}]'],
        }

        response = post_upload(client, upload_body())

        assert response.status_code == 200
        assert json.loads(response.text)[0]["text"] == "fallback"
        assert self.provider.attempted_models == ["model-a", "model-b"]
        assert self.provider.deleted == ["files/abc"]

        report = client.get("/api/usage/report").json()
        assert report["models"][0]["model_used"] == "model-b"

    def test_provider_failure_not_refunded(self, client, limiter, upload_dir):
        self.provider.poll_results = ["FAILED"]

        response = post_upload(client, upload_body())

        assert response.status_code == 500
        assert "couldn't be processed" in response.text
        assert limiter.count_for("testclient") == 1
        assert list(upload_dir.iterdir()) == []

    def test_long_media_refunded(self, client, limiter, test_settings, sleep_recorder):
        async def probe(path):
            return 3 * 60 * 60 * 1000

        service = TranscriptionService(self.provider, test_settings, probe=probe, sleep=sleep_recorder)
        app.dependency_overrides[get_transcription_service] = lambda: service

        response = post_upload(client, upload_body())

        assert response.status_code == 400
        assert response.text.startswith("File is too long (180 minutes).")
        assert self.provider.uploads == []
        assert limiter.count_for("testclient") == 0

    def test_ledger_crash_releases_stream(self):
        usage = AsyncMock()
        usage.record.side_effect = RuntimeError("ledger crashed")
        app.dependency_overrides[get_usage_service] = lambda: usage

        response = post_upload(TestClient(app, raise_server_exceptions=False), upload_body())

        assert response.status_code == 500
        assert self.provider.closed_streams == 1
        assert self.provider.deleted == ["files/abc"]

    def test_upload_failure(self, client):
        self.provider.upload_error = ProviderError("bad request", status_code=400)

        response = post_upload(client, upload_body())

        assert response.status_code == 500
        assert response.text == "Error uploading file"


class TestRating:
    """Test POST /api/rate."""

    def test_rate_usage(self, client, session_factory):
        usage_id = int(post_upload(client, upload_body()).headers["x-usage-id"])

        response = client.post("/api/rate", json={"usageId": usage_id, "rating": -1})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert client.get("/api/usage/report").json()["ratings"]["thumbs_down"] == 1

    def test_invalid_rating_rejected(self, client):
        usage_id = int(post_upload(client, upload_body()).headers["x-usage-id"])

        response = client.post("/api/rate", json={"usageId": usage_id, "rating": 2})

        assert response.status_code == 400
        assert response.json() == {"success": False}
        assert client.get("/api/usage/report").json()["ratings"]["unrated"] == 1

    @pytest.mark.parametrize(
        "payload",
        [
            {"usageId": 999, "rating": 1},
            {"usageId": 2**63, "rating": 1},
            {"rating": 1},
            {"usageId": 1, "rating": True},
        ],
    )
    def test_bad_requests(self, client, payload):
        response = client.post("/api/rate", json=payload)

        assert response.status_code == 400
        assert response.json() == {"success": False}

    def test_malformed_json(self, client):
        response = client.post(
            "/api/rate", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400


class TestStatsAndHealth:
    def test_monthly_stats(self, client):
        post_upload(client, upload_body())

        assert client.get("/api/stats").json() == {"monthlyUploadCount": 1}

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert set(body["services"]) == {"ffprobe", "database"}
        assert body["status"] in ("healthy", "unhealthy")


class TestTranscriptTransforms:
    """Test POST /api/export and POST /api/repair."""

    SEGMENTS = [
        {"timestamp": "00:00", "speaker": "A", "text": "one"},
        {"timestamp": "00:04", "speaker": "B", "text": "two"},
    ]

    def test_export_txt(self, client):
        response = client.post("/api/export", json={"segments": self.SEGMENTS, "timestamps": False})

        assert response.status_code == 200
        assert response.text == "A: one\nB: two\n"
        assert response.headers["content-disposition"] == 'attachment; filename="transcript.txt"'

    def test_export_srt(self, client):
        response = client.post("/api/export", json={"segments": self.SEGMENTS, "format": "srt"})

        assert response.status_code == 200
        assert response.text.startswith("1\n00:00:00,000 --> 00:00:04,000\nA: one\n")
        assert response.headers["content-disposition"].endswith('transcript.srt"')

    def test_export_unknown_format(self, client):
        response = client.post("/api/export", json={"segments": [], "format": "pdf"})
        assert response.status_code == 422

    def test_repair_passthrough(self, client):
        response = client.post("/api/repair", json={"text": json.dumps(self.SEGMENTS)})

        assert response.status_code == 200
        assert response.json() == self.SEGMENTS

    def test_repair_uses_model(self, client):
        gemini = AsyncMock()
        gemini.generate_json.return_value = json.dumps(self.SEGMENTS[:1])
        app.dependency_overrides[get_repairer] = lambda: GeminiTranscriptRepairer(gemini, "repair-model")

        response = client.post("/api/repair", json={"text": '[{"timestamp":"00:00","speaker":"A","text":"one"'})

        assert response.status_code == 200
        assert response.json() == self.SEGMENTS[:1]

    def test_repair_failure(self, client):
        gemini = AsyncMock()
        gemini.generate_json.side_effect = ProviderError("503 overloaded", status_code=503)
        app.dependency_overrides[get_repairer] = lambda: GeminiTranscriptRepairer(gemini, "repair-model")

        response = client.post("/api/repair", json={"text": "[{"})

        assert response.status_code == 502
