"""Voice module - hosted speech-to-text via REST API with API key auth."""

from .stt import SpeechToText

__all__ = ["SpeechToText"]
