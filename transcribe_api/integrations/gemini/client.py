"""
Google Gemini client wrapper
File upload, processing-state lookup and streamed transcript generation
"""

from dataclasses import dataclass
from typing import AsyncIterator, Optional

from google import genai
from google.genai import errors, types
from loguru import logger

from transcribe_api.config import settings
from transcribe_api.exceptions import ProviderError


class FileState:
    """Provider-side processing state of an uploaded file"""

    PROCESSING = "PROCESSING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"
    UNSPECIFIED = "STATE_UNSPECIFIED"


@dataclass
class ProviderFile:
    """Handle to a file stored on the provider"""

    name: str
    state: str
    uri: Optional[str] = None
    mime_type: Optional[str] = None


TRANSCRIPT_PROMPT = (
    "Generate a transcript in {language} for this file. Always use the format mm:ss "
    "for the time. Group similar text together rather than timestamping every line. "
    "Respond with the transcript in the form of this JSON schema:\n"
    ' [{{"timestamp": "00:00", "speaker": "Speaker 1", "text": "Today I will be talking '
    'about the importance of AI in the modern world."}},{{"timestamp": "01:00", '
    '"speaker": "Speaker 1", "text": "Has AI has revolutionized the way we live and work?"}}]'
)

SAFETY_SETTINGS = [
    types.SafetySetting(category=category, threshold=types.HarmBlockThreshold.BLOCK_NONE)
    for category in (
        types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
    )
]


def _wrap_error(e: Exception) -> ProviderError:
    if isinstance(e, errors.APIError):
        return ProviderError(str(e), status_code=e.code)
    return ProviderError(str(e))


def _to_provider_file(file: types.File) -> ProviderFile:
    state = file.state
    state_name = getattr(state, "value", state) or FileState.UNSPECIFIED
    return ProviderFile(
        name=file.name or "",
        state=str(state_name),
        uri=file.uri,
        mime_type=file.mime_type,
    )


class GeminiClient:
    """Gemini client"""

    def __init__(self, api_key: Optional[str] = None):
        """
        Initialize the Gemini client

        Args:
            api_key: Google API key, defaults to GOOGLE_API_KEY
        """
        self.api_key = api_key or settings.google_api_key
        if not self.api_key:
            raise ValueError("GOOGLE_API_KEY is required")

        self.client = genai.Client(api_key=self.api_key)
        logger.info("Gemini client initialized")

    async def upload_file(self, path: str, mime_type: str) -> ProviderFile:
        """
        Upload a local file to the Gemini Files API

        Raises:
            ProviderError: upload failed
        """
        logger.info(f"Uploading to Gemini: path={path}, mime={mime_type}")
        try:
            file = await self.client.aio.files.upload(
                file=path, config=types.UploadFileConfig(mime_type=mime_type)
            )
        except Exception as e:
            raise _wrap_error(e) from e

        uploaded = _to_provider_file(file)
        logger.info(f"Uploaded to Gemini: name={uploaded.name}, state={uploaded.state}")
        return uploaded

    async def get_file(self, name: str) -> ProviderFile:
        try:
            file = await self.client.aio.files.get(name=name)
        except Exception as e:
            raise _wrap_error(e) from e
        return _to_provider_file(file)

    async def delete_file(self, name: str) -> None:
        try:
            await self.client.aio.files.delete(name=name)
        except Exception as e:
            raise _wrap_error(e) from e
        logger.info(f"Deleted Gemini file: name={name}")

    async def stream_transcript(
        self,
        model: str,
        file_uri: str,
        mime_type: str,
        language: str,
    ) -> AsyncIterator[str]:
        """
        Start a streamed transcript generation

        Returns:
            Async iterator of text deltas (possibly empty strings)

        Raises:
            ProviderError: the request was rejected
        """
        try:
            response = await self.client.aio.models.generate_content_stream(
                model=model,
                contents=[
                    types.Content(
                        role="user",
                        parts=[
                            types.Part.from_uri(file_uri=file_uri, mime_type=mime_type),
                            types.Part.from_text(text=TRANSCRIPT_PROMPT.format(language=language)),
                        ],
                    )
                ],
                config=types.GenerateContentConfig(
                    safety_settings=SAFETY_SETTINGS,
                    response_mime_type="application/json",
                ),
            )
        except Exception as e:
            raise _wrap_error(e) from e

        return self._iter_text(response)

    async def _iter_text(self, response: AsyncIterator[types.GenerateContentResponse]) -> AsyncIterator[str]:
        try:
            async for chunk in response:
                yield chunk.text or ""
        except Exception as e:
            raise _wrap_error(e) from e
        finally:
            aclose = getattr(response, "aclose", None)
            if aclose is not None:
                await aclose()

    async def generate_json(self, model: str, prompt: str) -> str:
        """Single-shot JSON generation, used for transcript repair."""
        try:
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=prompt,
                config=types.GenerateContentConfig(response_mime_type="application/json"),
            )
        except Exception as e:
            raise _wrap_error(e) from e
        return response.text or ""


_gemini_client: Optional[GeminiClient] = None


def get_gemini_client() -> GeminiClient:
    """Gemini client singleton"""
    global _gemini_client
    if _gemini_client is None:
        _gemini_client = GeminiClient()
    return _gemini_client
