"""Dependency injection providers for FastAPI."""

from fastapi import Depends

from survey_chat.assistant.client import AssistantClient
from survey_chat.config import settings
from survey_chat.transcripts.store import BlobStore, MongoBlobStore
from survey_chat.transcripts.writer import TranscriptWriter
from survey_chat.voice.stt import SpeechToText

# Global singleton instances (safe for a single event loop)
_assistant_client: AssistantClient | None = None
_blob_store: BlobStore | None = None
_speech_to_text: SpeechToText | None = None


def get_assistant_client() -> AssistantClient:
    """Return singleton AssistantClient instance."""
    global _assistant_client
    if _assistant_client is None:
        _assistant_client = AssistantClient()
    return _assistant_client


def get_blob_store() -> BlobStore:
    """Return singleton blob store instance."""
    global _blob_store
    if _blob_store is None:
        _blob_store = MongoBlobStore()
    return _blob_store


def get_transcript_writer(store: BlobStore = Depends(get_blob_store)) -> TranscriptWriter:
    """Transcript writer bound to the current blob store."""
    return TranscriptWriter(store, settings)


def get_speech_to_text() -> SpeechToText:
    """Return singleton SpeechToText instance."""
    global _speech_to_text
    if _speech_to_text is None:
        _speech_to_text = SpeechToText()
    return _speech_to_text
