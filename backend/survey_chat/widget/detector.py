"""Detects the end-of-session sentinel in assistant replies."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from survey_chat.models.session import CompletionSummary
from survey_chat.widget.state import SessionState

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EndOfSessionDetector:
    """``active -> completed`` exactly once per session.

    The latch lives on :class:`SessionState`, so a late duplicate reply that
    also carries the sentinel produces no second summary.
    """

    def __init__(
        self,
        state: SessionState,
        *,
        sentinel: str = "END_INTERVIEW",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._state = state
        self._sentinel = sentinel
        self._clock = clock

    def inspect(self, reply: str) -> CompletionSummary | None:
        """Return the completion summary if this reply ends the session."""
        if not isinstance(reply, str) or self._sentinel not in reply:
            return None
        if not self._state.mark_completed():
            logger.debug("Sentinel seen again on completed session %s", self._state.session_id)
            return None

        now = self._clock()
        duration = None
        if self._state.started_at is not None:
            duration = round((now - self._state.started_at).total_seconds())

        summary = CompletionSummary(
            thread_id=self._state.thread_id,
            message_count=self._state.message_count,
            user_message_count=self._state.user_message_count,
            duration_seconds=duration,
            finished_reason=self._sentinel,
            completion_timestamp=now.isoformat(),
        )
        logger.info(
            "Session %s completed (messages=%d, duration=%s)",
            self._state.session_id,
            summary.message_count,
            duration,
        )
        return summary
