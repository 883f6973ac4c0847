"""Session-side orchestration of one embedded chat.

``ChatWidgetSession`` owns the session state and drives the turn chain::

    submit -> guard -> /api/chat -> record reply -> detector
                                              \\-> summary + finalize (once)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

import httpx

from survey_chat.config import Settings, settings as default_settings
from survey_chat.models.session import CompletionSummary, InputMode, Role, Turn
from survey_chat.utils.text import clean_text_block
from survey_chat.widget.detector import EndOfSessionDetector
from survey_chat.widget.guard import TurnSubmissionGuard
from survey_chat.widget.state import SessionState, Transcript
from survey_chat.widget.summary import LoggingSummarySink, ParentWebhookSink, SummarySink

logger = logging.getLogger(__name__)

SERVER_ERROR_TEXT = "Something went wrong calling the server."
NETWORK_ERROR_TEXT = "Network error."
NO_REPLY_TEXT = "No reply received."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def open_api_client(config: Settings | None = None) -> httpx.AsyncClient:
    """HTTP client pointed at the chat API."""
    config = config or default_settings
    return httpx.AsyncClient(
        base_url=config.widget_api_base_url,
        timeout=config.run_timeout_seconds + config.run_gate_timeout_seconds,
    )


class ChatWidgetSession:
    """One participant's chat, from first message to finalized transcript."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        participant_id: str | None = None,
        top_benefit: str | None = None,
        top_risk: str | None = None,
        sentinel: str | None = None,
        summary_sink: SummarySink | None = None,
        clock: Callable[[], datetime] = _utcnow,
        config: Settings | None = None,
    ) -> None:
        self._settings = config or default_settings
        self._http = http
        self._clock = clock
        self._top_benefit = top_benefit
        self._top_risk = top_risk

        self.state = SessionState(participant_id=participant_id)
        self.transcript = Transcript()
        self.guard = TurnSubmissionGuard()
        self.detector = EndOfSessionDetector(
            self.state,
            sentinel=sentinel or self._settings.end_sentinel,
            clock=clock,
        )
        self._summary_sink = summary_sink or self._default_sink()
        self._background: set[asyncio.Task[Any]] = set()

    def _default_sink(self) -> SummarySink:
        if self._settings.parent_webhook_url:
            return ParentWebhookSink(self._settings.parent_webhook_url, self._http)
        return LoggingSummarySink()

    @property
    def turns(self) -> list[Turn]:
        return self.state.turns

    # ------------------------------------------------------------------
    # Turn submission
    # ------------------------------------------------------------------

    async def submit(self, text: str, input_mode: InputMode = InputMode.TEXT) -> Turn | None:
        """Send one participant turn.

        Returns the assistant turn (or an error bubble), or ``None`` when the
        submission was not admitted.
        """
        cleaned = self.guard.admit(text)
        if cleaned is None:
            return None
        try:
            return await self._exchange(cleaned, input_mode)
        finally:
            self.guard.release()

    async def submit_audio(
        self,
        audio: bytes,
        *,
        filename: str = "recording.webm",
        content_type: str = "audio/webm",
    ) -> Turn | None:
        """Transcribe a recording, then submit it as an audio-mode turn."""
        with self.guard.transcription() as admitted:
            if not admitted:
                return None
            transcript = await self._transcribe(audio, filename, content_type)
        if not transcript:
            return None
        return await self.submit(transcript, InputMode.AUDIO)

    async def _exchange(self, text: str, input_mode: InputMode) -> Turn:
        now = self._clock()
        self.state.mark_started(now)
        self._record(Turn(role=Role.USER, text=text, input_mode=input_mode, timestamp=now))

        try:
            transcript_id = await self.ensure_transcript()
            response = await self._http.post(
                "/api/chat", json=self._chat_payload(text, input_mode, transcript_id)
            )
            data = self._json(response)
        except httpx.HTTPError as exc:
            logger.warning("Chat request failed: %s", exc)
            return self._error_turn(str(exc) or NETWORK_ERROR_TEXT)

        if not response.is_success:
            return self._error_turn(data.get("error") or SERVER_ERROR_TEXT)

        if self.state.pin_thread(data.get("threadId")) and self.state.thread_generation:
            logger.info(
                "Session %s moved to thread %s (generation %d)",
                self.state.session_id,
                self.state.thread_id,
                self.state.thread_generation,
            )

        reply = clean_text_block(data.get("reply")) or NO_REPLY_TEXT
        turn = Turn(role=Role.ASSISTANT, text=reply, timestamp=self._clock())
        self._record(turn)

        summary = self.detector.inspect(reply)
        if summary is not None:
            await self._report(summary)
            self._spawn(self.finalize_transcript())
        return turn

    def _chat_payload(
        self, text: str, input_mode: InputMode, transcript_id: str | None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": text, "inputMode": input_mode.value}
        optional = {
            "threadId": self.state.thread_id,
            "transcriptId": transcript_id,
            "participantId": self.state.participant_id,
            "topBenefit": self._top_benefit,
            "topRisk": self._top_risk,
        }
        payload.update({key: value for key, value in optional.items() if value})
        return payload

    def _record(self, turn: Turn) -> None:
        self.state.record(turn)
        self.transcript.add(turn)

    def _error_turn(self, text: str) -> Turn:
        turn = Turn(role=Role.ASSISTANT, text=text, timestamp=self._clock(), is_error=True)
        self._record(turn)
        return turn

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------
    # Voice
    # ------------------------------------------------------------------

    async def _transcribe(self, audio: bytes, filename: str, content_type: str) -> str:
        if not audio:
            return ""
        try:
            response = await self._http.post(
                "/api/transcribe", files={"audio": (filename, audio, content_type)}
            )
        except httpx.HTTPError as exc:
            logger.warning("Transcription request failed: %s", exc)
            return ""
        data = self._json(response)
        if not response.is_success:
            logger.warning("Transcription failed: %s", data.get("error"))
            return ""
        transcript = data.get("transcript")
        return transcript.strip() if isinstance(transcript, str) else ""

    # ------------------------------------------------------------------
    # Transcript lifecycle
    # ------------------------------------------------------------------

    async def ensure_transcript(self) -> str | None:
        """Start the server-side transcript on first need; best effort."""
        if self.transcript.transcript_id is not None:
            return self.transcript.transcript_id

        body = {
            "participantId": self.state.participant_id,
            "threadId": self.state.thread_id,
            "startedAt": self.state.started_at.isoformat() if self.state.started_at else None,
        }
        try:
            response = await self._http.post(
                "/api/transcript/start",
                json={key: value for key, value in body.items() if value},
            )
        except httpx.HTTPError as exc:
            logger.warning("Transcript start failed: %s", exc)
            return None

        data = self._json(response)
        transcript_id = data.get("transcriptId")
        if not response.is_success or not isinstance(transcript_id, str):
            logger.warning("Transcript start rejected: %s", data.get("error"))
            return None

        self.transcript.assign(transcript_id, data.get("startedAt"))
        return transcript_id

    async def finalize_transcript(self, reason: str | None = None) -> bool:
        """Overwrite the stored transcript with the full session, at most once."""
        if not self.transcript.claim_finalize():
            logger.debug("Finalize skipped for session %s", self.state.session_id)
            return False

        payload = {
            "transcriptId": self.transcript.transcript_id,
            "mode": "finalize",
            "fullText": self.transcript.render(),
            "participantId": self.state.participant_id,
            "startedAt": self.transcript.started_at,
            "metadata": {
                "sessionId": self.state.session_id,
                "threadId": self.state.thread_id,
                "messageCount": self.state.message_count,
                "userMessageCount": self.state.user_message_count,
                "finishedReason": reason or self._settings.end_sentinel,
                "finalizedAt": self._clock().isoformat(),
            },
        }
        try:
            response = await self._http.post(
                "/api/transcript/append",
                json={key: value for key, value in payload.items() if value is not None},
            )
        except httpx.HTTPError as exc:
            logger.warning("Transcript finalize failed: %s", exc)
            return False

        data = self._json(response)
        if not response.is_success:
            logger.warning("Transcript finalize rejected: %s", data.get("error"))
            return False
        logger.info(
            "Transcript %s finalized (skipped=%s)",
            self.transcript.transcript_id,
            bool(data.get("skipped")),
        )
        return True

    # ------------------------------------------------------------------
    # Completion side effects
    # ------------------------------------------------------------------

    async def _report(self, summary: CompletionSummary) -> None:
        try:
            await self._summary_sink(summary)
        except Exception:
            logger.exception("Failed to post chat completion summary")

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for background work (transcript finalization) to settle."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
