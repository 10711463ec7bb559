"""
Unit tests for streaming multipart ingestion.

Tests artifact creation, field capture, size limits and temp file cleanup.
"""

import pytest

from conftest import build_multipart, chunked, multipart_content_type
from transcribe_api.exceptions import IngestionFailure, PayloadTooLarge, ValidationFailure
from transcribe_api.services.upload_ingestor import UploadIngestor

MEDIA = b"\x00\x01fake-audio-bytes\r\n--not-a-boundary\r\n" * 50


class TestIngest:
    """Test the happy paths."""

    @pytest.fixture(autouse=True)
    def _ingestor(self, upload_dir):
        self.upload_dir = upload_dir
        self.ingestor = UploadIngestor(max_upload_size=1024 * 1024, temp_dir=str(upload_dir))

    async def test_file_written_to_temp(self):
        body = build_multipart(files=[("file", "talk.mp3", MEDIA, "audio/mpeg")])

        result = await self.ingestor.ingest(chunked(body), multipart_content_type(), str(len(body)))

        artifact = result.artifact
        assert artifact is not None
        assert artifact.path.read_bytes() == MEDIA
        assert artifact.path.parent == self.upload_dir
        assert artifact.path.suffix == ".mp3"
        assert artifact.mime_type == "audio/mpeg"
        assert artifact.filename == "talk.mp3"
        assert artifact.size == len(MEDIA)
        assert result.body_size == len(body)

        artifact.cleanup()
        assert not artifact.path.exists()
        artifact.cleanup()

    async def test_language_field_captured(self):
        body = build_multipart(
            files=[("file", "a.wav", b"RIFF", "audio/wav")],
            fields={"language": "French"},
        )

        result = await self.ingestor.ingest(chunked(body), multipart_content_type())

        assert result.fields == {"language": "French"}
        result.artifact.cleanup()

    async def test_extra_file_parts_discarded(self):
        """Only the first part on the file field is written to disk."""
        body = build_multipart(
            files=[
                ("other", "x.bin", b"other-part", "application/octet-stream"),
                ("file", "a.mp4", b"first", "video/mp4"),
                ("file", "b.mp4", b"second", "video/mp4"),
            ]
        )

        result = await self.ingestor.ingest(chunked(body, size=3), multipart_content_type())

        assert result.artifact.path.read_bytes() == b"first"
        assert len(list(self.upload_dir.iterdir())) == 1
        result.artifact.cleanup()

    async def test_no_file_part(self):
        body = build_multipart(fields={"language": "German"})

        result = await self.ingestor.ingest(chunked(body), multipart_content_type())

        assert result.artifact is None
        assert list(self.upload_dir.iterdir()) == []

    async def test_empty_filename_is_no_file(self):
        body = build_multipart(files=[("file", "", b"", "application/octet-stream")])

        result = await self.ingestor.ingest(chunked(body), multipart_content_type())

        assert result.artifact is None


class TestIngestRejections:
    """Test validation failures and cleanup on error paths."""

    @pytest.fixture(autouse=True)
    def _ingestor(self, upload_dir):
        self.upload_dir = upload_dir
        self.ingestor = UploadIngestor(max_upload_size=1000, max_field_size=16, temp_dir=str(upload_dir))

    def test_non_multipart_rejected(self):
        with pytest.raises(ValidationFailure) as exc_info:
            self.ingestor.validate_headers("application/json", "10")
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Expected multipart/form-data"

    def test_declared_length_too_large(self):
        with pytest.raises(PayloadTooLarge) as exc_info:
            self.ingestor.validate_headers(multipart_content_type(), "1001")
        assert exc_info.value.status_code == 413

    def test_missing_boundary(self):
        with pytest.raises(ValidationFailure):
            self.ingestor.validate_headers("multipart/form-data", None)

    async def test_body_larger_than_ceiling(self):
        """A body that lies about its length is cut off while streaming."""
        body = build_multipart(files=[("file", "a.mp3", b"x" * 2000, "audio/mpeg")])

        with pytest.raises(PayloadTooLarge):
            await self.ingestor.ingest(chunked(body, size=64), multipart_content_type(), "100")

        assert list(self.upload_dir.iterdir()) == []

    async def test_truncated_body_removes_temp_file(self):
        body = build_multipart(files=[("file", "a.mp3", b"y" * 300, "audio/mpeg")])

        with pytest.raises(IngestionFailure):
            await self.ingestor.ingest(chunked(body[:200]), multipart_content_type())

        assert list(self.upload_dir.iterdir()) == []

    async def test_client_disconnect_removes_temp_file(self):
        body = build_multipart(files=[("file", "a.mp3", b"z" * 300, "audio/mpeg")])

        async def disconnecting():
            yield body[:150]
            raise ConnectionResetError("client went away")

        with pytest.raises(IngestionFailure):
            await self.ingestor.ingest(disconnecting(), multipart_content_type())

        assert list(self.upload_dir.iterdir()) == []

    async def test_oversized_field(self):
        body = build_multipart(fields={"language": "L" * 100})

        with pytest.raises(ValidationFailure):
            await self.ingestor.ingest(chunked(body), multipart_content_type())
