"""
Streaming multipart ingestion

The request body is consumed in a single forward pass. The part bound to the
expected file field is written straight to a temporary file; any other file
part is drained without touching the disk. Plain fields are captured in
memory up to a small per-field limit.
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
from loguru import logger
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from transcribe_api.exceptions import (
    IngestionFailure,
    PayloadTooLarge,
    ValidationFailure,
)


@dataclass
class UploadArtifact:
    """Temporary on-disk copy of the uploaded media, owned by one request"""

    path: Path
    mime_type: str
    filename: str
    size: int = 0

    def cleanup(self) -> None:
        """Remove the file. Safe to call more than once."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to remove temp artifact {self.path}: {e}")


@dataclass
class IngestResult:
    artifact: Optional[UploadArtifact]
    fields: dict[str, str] = field(default_factory=dict)
    body_size: int = 0


class _PartKind:
    FIELD = "field"
    FILE = "file"
    DISCARD = "discard"


class UploadIngestor:
    """Parses a multipart/form-data body into one artifact plus text fields"""

    def __init__(
        self,
        max_upload_size: int,
        file_field: str = "file",
        max_field_size: int = 64 * 1024,
        temp_dir: Optional[str] = None,
    ):
        self.max_upload_size = max_upload_size
        self.file_field = file_field
        self.max_field_size = max_field_size
        self.temp_dir = temp_dir

    def validate_headers(self, content_type: Optional[str], content_length: Optional[str]) -> bytes:
        """
        Check the request headers before any byte of the body is read

        Returns:
            The multipart boundary

        Raises:
            ValidationFailure: wrong content type or bad Content-Length
            PayloadTooLarge: declared length above the ceiling
        """
        if not content_type or not content_type.lower().startswith("multipart/form-data"):
            raise ValidationFailure("Expected multipart/form-data")

        if content_length:
            try:
                declared = int(content_length)
            except ValueError:
                raise ValidationFailure("Invalid Content-Length header")
            if declared > self.max_upload_size:
                raise PayloadTooLarge()

        _, options = parse_options_header(content_type)
        boundary = options.get(b"boundary")
        if not boundary:
            raise ValidationFailure("Missing multipart boundary")
        return boundary

    async def ingest(
        self,
        body: AsyncIterator[bytes],
        content_type: Optional[str],
        content_length: Optional[str] = None,
    ) -> IngestResult:
        """
        Consume the whole body and return once the artifact is fully written

        The temporary file is removed before any exception leaves this method,
        including cancellation.
        """
        boundary = self.validate_headers(content_type, content_length)
        session = _IngestSession(self)
        try:
            await session.run(boundary, body)
        except BaseException:
            await session.abort()
            raise
        return session.result()


class _IngestSession:
    """Parser state for one request body"""

    def __init__(self, ingestor: UploadIngestor):
        self.ingestor = ingestor
        self.fields: dict[str, str] = {}
        self.body_size = 0
        self.artifact: Optional[UploadArtifact] = None
        self.completed = False

        # Events emitted by the synchronous parser callbacks, replayed
        # asynchronously after every write() so file IO stays off the parser.
        self._events: list[tuple] = []
        self._file = None
        self._file_open = False
        self._file_claimed = False

        self._header_field = b""
        self._header_value = b""
        self._headers: dict[bytes, bytes] = {}
        self._kind = _PartKind.DISCARD
        self._field_name = ""
        self._field_buffer = bytearray()

    # ---- parser callbacks ----

    def _on_part_begin(self) -> None:
        self._headers = {}
        self._header_field = b""
        self._header_value = b""
        self._kind = _PartKind.DISCARD

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        _, options = parse_options_header(self._headers.get(b"content-disposition", b""))
        name = options.get(b"name", b"").decode("utf-8", errors="replace")
        filename = options.get(b"filename")

        if filename is None:
            self._kind = _PartKind.FIELD
            self._field_name = name
            self._field_buffer = bytearray()
        elif name == self.ingestor.file_field and filename and not self._file_claimed:
            self._kind = _PartKind.FILE
            self._file_claimed = True
            mime_type = self._headers.get(b"content-type", b"application/octet-stream").decode(
                "latin-1"
            ).strip()
            self._events.append(("open", filename.decode("utf-8", errors="replace"), mime_type))
        else:
            self._kind = _PartKind.DISCARD
            logger.debug(f"Discarding extra file part: field={name}")

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._kind == _PartKind.FILE:
            self._events.append(("write", data[start:end]))
        elif self._kind == _PartKind.FIELD:
            self._field_buffer += data[start:end]
            if len(self._field_buffer) > self.ingestor.max_field_size:
                raise ValidationFailure(f"Form field '{self._field_name}' is too large")

    def _on_part_end(self) -> None:
        if self._kind == _PartKind.FILE:
            self._events.append(("close",))
        elif self._kind == _PartKind.FIELD:
            self.fields[self._field_name] = self._field_buffer.decode("utf-8", errors="replace")
        self._kind = _PartKind.DISCARD

    def _on_end(self) -> None:
        self.completed = True

    # ---- driver ----

    async def run(self, boundary: bytes, body: AsyncIterator[bytes]) -> None:
        parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": self._on_part_begin,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_end": self._on_end,
            },
        )

        try:
            async for chunk in body:
                if not chunk:
                    continue
                self.body_size += len(chunk)
                if self.body_size > self.ingestor.max_upload_size:
                    raise PayloadTooLarge()
                parser.write(chunk)
                await self._flush_events()
            parser.finalize()
            await self._flush_events()
        except (ValidationFailure, IngestionFailure):
            raise
        except MultipartParseError as e:
            logger.warning(f"Malformed multipart body: {e}")
            raise IngestionFailure() from e
        except OSError as e:
            logger.error(f"Failed to write upload to disk: {e}")
            raise IngestionFailure() from e
        except Exception as e:
            # Client disconnects surface here from the request stream
            logger.error(f"Error parsing multipart body: {e}")
            raise IngestionFailure() from e

        if not self.completed or self._file_open:
            logger.warning(f"Multipart body ended early after {self.body_size} bytes")
            raise IngestionFailure()

    async def _flush_events(self) -> None:
        events, self._events = self._events, []
        for event in events:
            kind = event[0]
            if kind == "open":
                await self._open_artifact(filename=event[1], mime_type=event[2])
            elif kind == "write":
                await self._file.write(event[1])
                self.artifact.size += len(event[1])
            elif kind == "close":
                await self._file.close()
                self._file_open = False

    async def _open_artifact(self, filename: str, mime_type: str) -> None:
        suffix = Path(filename).suffix
        fd, path = tempfile.mkstemp(prefix="upload_", suffix=suffix, dir=self.ingestor.temp_dir)
        os.close(fd)
        self.artifact = UploadArtifact(path=Path(path), mime_type=mime_type, filename=filename)
        self._file = await aiofiles.open(path, "wb")
        self._file_open = True
        logger.info(f"Receiving upload: filename={filename}, mime={mime_type}, path={path}")

    async def abort(self) -> None:
        try:
            if self._file_open:
                self._file_open = False
                await self._file.close()
        except OSError as e:
            logger.warning(f"Failed to close partial upload: {e}")
        finally:
            if self.artifact is not None:
                self.artifact.cleanup()
                self.artifact = None

    def result(self) -> IngestResult:
        return IngestResult(artifact=self.artifact, fields=self.fields, body_size=self.body_size)
