"""Single-flight admission of chat turns."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from survey_chat.utils.text import clean_text_block

logger = logging.getLogger(__name__)


class TurnSubmissionGuard:
    """Admits at most one turn at a time and none while audio is transcribing."""

    def __init__(self) -> None:
        self.in_flight = False
        self.transcribing = False

    def admit(self, text: str) -> str | None:
        """Return the normalised text and mark the turn in flight, or ``None``."""
        cleaned = clean_text_block(text)
        if not cleaned:
            return None
        if self.in_flight or self.transcribing:
            logger.debug(
                "Submission rejected (in_flight=%s, transcribing=%s)",
                self.in_flight,
                self.transcribing,
            )
            return None
        self.in_flight = True
        return cleaned

    def release(self) -> None:
        self.in_flight = False

    @contextmanager
    def transcription(self) -> Iterator[bool]:
        """Hold the transcription flag; yields False if a turn is already busy."""
        if self.in_flight or self.transcribing:
            yield False
            return
        self.transcribing = True
        try:
            yield True
        finally:
            self.transcribing = False
