"""Transcript persistence: header creation, line appends and finalization.

The stored object is line-oriented text::

    Chat transcript started
    TranscriptId: 1760000000000-9f2c...
    StartedAt: 2026-02-08T10:30:00.000Z
    ParticipantID: P-123

    [2026-02-08T10:30:05.000Z] user: Hello
    [2026-02-08T10:30:07.000Z] assistant: Hi there!

Finalize replaces the whole object with a rebuilt header (plus an optional
``Metadata:`` JSON line) followed by the client's ``Role: text`` blocks.
"""

from __future__ import annotations

import json
import logging
import re
import secrets
import time
from typing import Any

from pydantic import BaseModel

from survey_chat.config import Settings, settings as default_settings
from survey_chat.models.session import Role
from survey_chat.transcripts.store import BlobStore
from survey_chat.utils.text import clean_text_block, now_iso, safe_id, safe_line

logger = logging.getLogger(__name__)

_PARTICIPANT_KEYS = ("participantId", "ParticipantID", "participantID", "ParticipantId")
_THREAD_KEYS = ("threadId", "ThreadId")
_PARTICIPANT_LINE = re.compile(r"^\s*ParticipantID:\s*(.+?)\s*$", re.MULTILINE)
_STARTED_AT_LINE = re.compile(r"^StartedAt:\s*(.+?)\s*$", re.MULTILINE)


def make_transcript_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}"


def format_line(ts: str, role: Role, text: str) -> str:
    """One append-mode line; empty when the text has no content."""
    cleaned = clean_text_block(text)
    if not cleaned:
        return ""
    return f"[{ts}] {role.value}: {cleaned}\n"


class WriteResult(BaseModel):
    written: bool
    participant_id: str = ""
    metadata_included: bool = False

    @property
    def skipped(self) -> bool:
        return not self.written


class TranscriptWriter:
    """Reads and writes transcript objects in a :class:`BlobStore`."""

    def __init__(self, store: BlobStore, config: Settings | None = None) -> None:
        self._store = store
        self._settings = config or default_settings

    def path_for(self, transcript_id: str) -> str:
        return f"{self._settings.transcript_prefix}/{self._id(transcript_id)}.txt"

    def _field(self, value: Any) -> str:
        return safe_line(value, self._settings.header_field_max_length)

    def _id(self, value: Any) -> str:
        return safe_id(value, self._settings.header_field_max_length) or ""

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    async def start(
        self,
        *,
        started_at: str | None = None,
        participant_id: str | None = None,
        prolific_id: str | None = None,
        thread_id: str | None = None,
    ) -> tuple[str, str, str]:
        """Create a new transcript object; returns ``(id, started_at, path)``."""
        transcript_id = make_transcript_id()
        started_at = started_at or now_iso()
        path = self.path_for(transcript_id)

        lines = [
            "Chat transcript started",
            f"TranscriptId: {transcript_id}",
            f"StartedAt: {started_at}",
        ]
        for label, value in (
            ("ParticipantID", participant_id),
            ("ProlificId", prolific_id),
            ("ThreadId", thread_id),
        ):
            field = self._field(value)
            if field:
                lines.append(f"{label}: {field}")

        await self._store.put_text(path, "\n".join(lines) + "\n\n", allow_overwrite=False)
        logger.info("Transcript %s started at %s", transcript_id, started_at)
        return transcript_id, started_at, path

    # ------------------------------------------------------------------
    # Append (read-modify-write, single writer per transcript assumed)
    # ------------------------------------------------------------------

    async def append_turn(
        self,
        transcript_id: str,
        role: Role,
        text: str,
        *,
        ts: str | None = None,
        participant_id: str | None = None,
    ) -> WriteResult:
        return await self.append_line(
            transcript_id,
            format_line(ts or now_iso(), role, text),
            participant_id=participant_id,
        )

    async def append_line(
        self, transcript_id: str, line: str, *, participant_id: str | None = None
    ) -> WriteResult:
        """Append one preformatted line, synthesising a header if needed."""
        participant = self._field(participant_id)
        cleaned = clean_text_block(line)
        if not cleaned:
            return WriteResult(written=False, participant_id=participant)

        path = self.path_for(transcript_id)
        current = await self._store.get_text(path) or ""
        if not current:
            header = ["Chat transcript started", f"TranscriptId: {self._id(transcript_id)}"]
            if participant:
                header.append(f"ParticipantID: {participant}")
            header.append(f"StartedAt: {now_iso()}")
            current = "\n".join(header) + "\n\n"

        await self._store.put_text(path, current + cleaned + "\n", allow_overwrite=True)
        return WriteResult(written=True, participant_id=participant)

    # ------------------------------------------------------------------
    # Finalize (full overwrite)
    # ------------------------------------------------------------------

    async def finalize(
        self,
        transcript_id: str,
        full_text: str,
        *,
        participant_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        started_at: str | None = None,
    ) -> WriteResult:
        """Overwrite the transcript with header + cleaned ``full_text``.

        An empty body after cleaning is not an error: nothing is written and
        the result reports a skip.
        """
        participant = self.extract_participant_id(participant_id, metadata, full_text)
        body = clean_text_block(full_text)
        if not body:
            logger.info(
                "TRANSCRIPT FINALIZE transcript=%s wrote=False reason=empty after cleaning "
                "(raw_len=%d)",
                transcript_id,
                len(full_text or ""),
            )
            return WriteResult(written=False, participant_id=participant)

        path = self.path_for(transcript_id)
        final_metadata = None
        if metadata is not None:
            final_metadata = {
                **metadata,
                "ParticipantID": self._field(metadata.get("ParticipantID"))
                or self._field(metadata.get("participantId"))
                or participant,
            }

        if not started_at:
            started_at = await self._stored_started_at(path) or now_iso()

        header = self._final_header(
            transcript_id,
            started_at=started_at,
            participant_id=participant,
            thread_id=self._first_field(metadata, _THREAD_KEYS),
            metadata=final_metadata,
        )
        final_text = header + body + "\n"
        await self._store.put_text(path, final_text, allow_overwrite=True)

        logger.info(
            "TRANSCRIPT FINALIZE transcript=%s wrote=True body_len=%d final_len=%d "
            "participant=%s metadata_keys=%s",
            transcript_id,
            len(body),
            len(final_text),
            bool(participant),
            sorted(final_metadata) if final_metadata else None,
        )
        return WriteResult(
            written=True,
            participant_id=participant,
            metadata_included=final_metadata is not None,
        )

    def extract_participant_id(
        self,
        direct: str | None,
        metadata: dict[str, Any] | None,
        full_text: str | None,
    ) -> str:
        """Participant id from the body, then metadata, then the transcript text."""
        participant = self._field(direct)
        if participant:
            return participant
        participant = self._first_field(metadata, _PARTICIPANT_KEYS)
        if participant:
            return participant
        if full_text:
            match = _PARTICIPANT_LINE.search(full_text)
            if match:
                return self._field(match.group(1))
        return ""

    def _first_field(self, source: dict[str, Any] | None, keys: tuple[str, ...]) -> str:
        if not source:
            return ""
        for key in keys:
            value = self._field(source.get(key))
            if value:
                return value
        return ""

    async def _stored_started_at(self, path: str) -> str | None:
        existing = await self._store.get_text(path)
        if not existing:
            return None
        match = _STARTED_AT_LINE.search(existing)
        return self._field(match.group(1)) if match else None

    def _final_header(
        self,
        transcript_id: str,
        *,
        started_at: str,
        participant_id: str,
        thread_id: str,
        metadata: dict[str, Any] | None,
    ) -> str:
        lines = [
            "Chat transcript",
            f"TranscriptId: {self._id(transcript_id)}",
            f"StartedAt: {self._field(started_at)}",
        ]
        if participant_id:
            lines.append(f"ParticipantID: {participant_id}")
        if thread_id:
            lines.append(f"ThreadId: {thread_id}")
        header = "\n".join(lines) + "\n\n"

        if metadata is not None:
            try:
                json_line = json.dumps(metadata, ensure_ascii=False, default=str)
            except (TypeError, ValueError):
                json_line = '{"metadata": "unserializable"}'
            header += f"Metadata:\n{json_line}\n\n"
        return header
