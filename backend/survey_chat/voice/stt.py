"""Hosted speech-to-text via REST API with API key authentication.

Uploads one recorded utterance as multipart form data and asks for a plain
text response, so no SDK or streaming session is needed.
"""

import logging

import httpx

from survey_chat.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

TRANSCRIPTIONS_PATH = "/audio/transcriptions"


class SpeechToText:
    """Speech-to-Text using the hosted transcription endpoint."""

    def __init__(
        self,
        config: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = config or default_settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def initialize(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._settings.openai_base_url,
            headers={"Authorization": f"Bearer {self._settings.openai_api_key}"},
            timeout=self._settings.http_timeout_seconds,
            transport=self._transport,
        )
        logger.info("SpeechToText initialized (model=%s)", self._settings.transcription_model)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("SpeechToText closed")

    async def transcribe(
        self,
        audio_bytes: bytes,
        *,
        filename: str = "recording.webm",
        content_type: str = "audio/webm",
    ) -> str:
        """Transcribe a complete recording to text.

        Returns:
            The best-effort transcript; empty when nothing was understood.
        """
        if not self._client:
            raise RuntimeError("SpeechToText not initialized. Call initialize() first.")

        if not audio_bytes:
            return ""

        try:
            response = await self._client.post(
                TRANSCRIPTIONS_PATH,
                data={
                    "model": self._settings.transcription_model,
                    "response_format": "text",
                },
                files={"file": (filename, audio_bytes, content_type)},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "STT API error %d: %s", e.response.status_code, e.response.text[:200]
            )
            raise
        except httpx.HTTPError as e:
            logger.error("STT transcription failed: %s", e)
            raise

        transcript = response.text.strip()
        logger.info("STT transcribed %d bytes: '%s'", len(audio_bytes), transcript[:80])
        return transcript
