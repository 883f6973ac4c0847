"""Best-effort injection of authoritative survey context into a thread."""

from __future__ import annotations

import logging

from survey_chat.assistant.client import AssistantClient, AssistantServiceError
from survey_chat.assistant.prompts import render_context_message
from survey_chat.models.assistant import ThreadMessage

logger = logging.getLogger(__name__)

# Metadata tag separating injected context from participant speech.
CONTEXT_SOURCE = "survey_context"
PARTICIPANT_SOURCE = "participant"

# How far back to look for earlier injections on an existing thread.
_HISTORY_LIMIT = 100


def is_context_message(message: ThreadMessage) -> bool:
    return message.meta("source") == CONTEXT_SOURCE


class ContextInjector:
    """Places each distinct context value on a thread at most once.

    The thread itself is the record of what was injected: earlier injections
    are found again through their metadata, so no per-process state is kept.
    """

    def __init__(self, assistant: AssistantClient) -> None:
        self._assistant = assistant

    async def inject(
        self, thread_id: str, values: dict[str, str], *, new_thread: bool
    ) -> list[str]:
        """Inject the supplied context values; return the keys actually written.

        Never raises for assistant failures; they are logged and the turn
        proceeds without the context.
        """
        if not values:
            return []

        previous: dict[str, str] | None = {}
        if not new_thread:
            previous = await self._previous_values(thread_id)

        injected: list[str] = []
        for key, value in values.items():
            if previous is not None and previous.get(key) == value:
                continue
            # Unknown history (lookup failed) is treated like a change.
            update = previous is None or key in previous
            try:
                await self._assistant.create_message(
                    thread_id,
                    render_context_message(key, value, update=update),
                    metadata={
                        "source": CONTEXT_SOURCE,
                        "context_key": key,
                        "context_value": value,
                        "variant": "update" if update else "initial",
                    },
                )
            except AssistantServiceError as exc:
                logger.warning("Context injection of %s on %s failed: %s", key, thread_id, exc)
                continue
            injected.append(key)
            logger.info(
                "Injected %s context on %s (%s)",
                key,
                thread_id,
                "update" if update else "initial",
            )
        return injected

    async def _previous_values(self, thread_id: str) -> dict[str, str] | None:
        """Latest injected value per context key, or ``None`` if unknown."""
        try:
            messages = await self._assistant.list_messages(thread_id, limit=_HISTORY_LIMIT)
        except AssistantServiceError as exc:
            logger.warning("Could not read context history for %s: %s", thread_id, exc)
            return None

        latest: dict[str, str] = {}
        # Newest first, so the first hit per key wins.
        for message in messages:
            if not is_context_message(message):
                continue
            key = message.meta("context_key")
            if key and key not in latest:
                latest[key] = message.meta("context_value") or ""
        return latest
