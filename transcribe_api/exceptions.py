"""Custom exceptions for the transcription service."""


class TranscribeServiceError(Exception):
    """Base exception for errors surfaced to the client."""

    status_code = 500
    default_message = "Something went wrong. Please try again later."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AdmissionDenied(TranscribeServiceError):
    """Raised when a client has used up its request quota."""

    status_code = 429
    default_message = (
        "This free service supports up to 5 requests per user per day. "
        "Please try again tomorrow."
    )


class ValidationFailure(TranscribeServiceError):
    """Raised when a request fails local validation. Admission is refunded."""

    status_code = 400
    default_message = "Invalid request"


class PayloadTooLarge(ValidationFailure):
    """Raised when the request body exceeds the upload ceiling."""

    status_code = 413
    default_message = "File too large"


class CrossOriginRejected(TranscribeServiceError):
    """Raised when the Origin header does not match the serving host."""

    status_code = 403
    default_message = "Forbidden"


class IngestionFailure(TranscribeServiceError):
    """Raised when the multipart body cannot be parsed or written to disk."""

    status_code = 500
    default_message = "Error uploading file"


class UploadFailure(TranscribeServiceError):
    """Raised when the artifact cannot be handed to the provider."""

    status_code = 500
    default_message = "Error uploading file"


class ProviderError(Exception):
    """Raised by the provider adapter for any failed provider call."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_server_error(self) -> bool:
        if self.status_code is not None:
            return self.status_code >= 500
        return "500 internal server error" in self.message.lower()


class ProviderExhausted(TranscribeServiceError):
    """Raised when a provider retry budget runs out."""

    status_code = 500
    default_message = "Transcription API is currently unavailable. Please try again later."


class ProviderFatal(TranscribeServiceError):
    """Raised for terminal provider outcomes that are never retried."""

    status_code = 500
    default_message = (
        "Sorry, something went wrong generating the transcript. Please try again later."
    )


class DownstreamRepairFailure(TranscribeServiceError):
    """Raised when the malformed-JSON repair transform itself fails."""

    status_code = 502
    default_message = "Could not repair the transcript"


class LedgerFailure(Exception):
    """Raised when the usage store cannot be written."""
