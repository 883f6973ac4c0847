"""Tests for the session-side turn orchestration."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from survey_chat.models.session import CompletionSummary, InputMode, Role, Turn
from survey_chat.widget.capture import capture_utterance
from survey_chat.widget.detector import EndOfSessionDetector
from survey_chat.widget.guard import TurnSubmissionGuard
from survey_chat.widget.session import ChatWidgetSession
from survey_chat.widget.state import SessionState, Transcript


class FakeApi:
    """Scripted chat API behind an ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, dict]] = []
        self.replies: list[str] = []
        self.chat_status = 200
        self.chat_error = "Something broke"
        self.gate: asyncio.Event | None = None
        self.chat_arrived = asyncio.Event()

    def calls(self, path: str) -> list[dict]:
        return [body for p, body in self.requests if p == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/transcribe":
            self.requests.append((path, {}))
            return httpx.Response(200, json={"transcript": " spoken answer "})

        body = json.loads(request.content) if request.content else {}
        self.requests.append((path, body))

        if path == "/api/transcript/start":
            return httpx.Response(200, json={"ok": True, "transcriptId": "t-42", "startedAt": "S"})
        if path == "/api/transcript/append":
            return httpx.Response(200, json={"ok": True, "mode": "finalize"})
        if path == "/api/chat":
            self.chat_arrived.set()
            if self.gate is not None:
                await self.gate.wait()
            if self.chat_status != 200:
                return httpx.Response(self.chat_status, json={"error": self.chat_error})
            reply = self.replies.pop(0) if self.replies else "Tell me more."
            return httpx.Response(
                200,
                json={
                    "reply": reply,
                    "threadId": "thread_abc",
                    "transcriptId": body.get("transcriptId"),
                    "participantId": body.get("participantId"),
                },
            )
        return httpx.Response(404, json={"error": "not found"})


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 2, 8, 10, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=10)
        return self.now


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def summaries() -> list[CompletionSummary]:
    return []


@pytest.fixture
def session(api: FakeApi, summaries: list[CompletionSummary]) -> ChatWidgetSession:
    async def sink(summary: CompletionSummary) -> None:
        summaries.append(summary)

    http = httpx.AsyncClient(transport=httpx.MockTransport(api.handler), base_url="http://test")
    return ChatWidgetSession(
        http,
        participant_id="P-1",
        top_benefit="Better accessibility",
        summary_sink=sink,
        clock=Clock(),
    )


@pytest.mark.asyncio
async def test_single_submission_sends_one_request(session: ChatWidgetSession, api: FakeApi) -> None:
    turn = await session.submit("  Hello  ")

    assert turn.role is Role.ASSISTANT
    assert turn.text == "Tell me more."
    (chat,) = api.calls("/api/chat")
    assert chat == {
        "message": "Hello",
        "inputMode": "text",
        "transcriptId": "t-42",
        "participantId": "P-1",
        "topBenefit": "Better accessibility",
    }
    assert [t.role for t in session.turns] == [Role.USER, Role.ASSISTANT]
    assert session.state.thread_id == "thread_abc"
    assert session.guard.in_flight is False


@pytest.mark.asyncio
async def test_pinned_thread_is_sent_on_later_turns(session: ChatWidgetSession, api: FakeApi) -> None:
    await session.submit("one")
    await session.submit("two")

    assert api.calls("/api/chat")[1]["threadId"] == "thread_abc"
    assert len(api.calls("/api/transcript/start")) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
async def test_blank_submission_is_ignored(session: ChatWidgetSession, api: FakeApi, text: str) -> None:
    assert await session.submit(text) is None
    assert api.requests == []
    assert session.turns == []


@pytest.mark.asyncio
async def test_submission_while_in_flight_is_rejected(session: ChatWidgetSession, api: FakeApi) -> None:
    api.gate = asyncio.Event()
    first = asyncio.create_task(session.submit("first"))
    await api.chat_arrived.wait()

    assert await session.submit("second") is None

    api.gate.set()
    await first
    assert len(api.calls("/api/chat")) == 1
    assert [t.text for t in session.turns if t.role is Role.USER] == ["first"]


@pytest.mark.asyncio
async def test_server_error_becomes_error_bubble(session: ChatWidgetSession, api: FakeApi) -> None:
    api.chat_status = 409
    api.chat_error = "The assistant is still answering your previous message."

    turn = await session.submit("hi")

    assert turn.is_error
    assert turn.text == "The assistant is still answering your previous message."
    assert session.guard.in_flight is False
    assert session.state.completed is False


@pytest.mark.asyncio
async def test_network_failure_becomes_error_bubble() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    session = ChatWidgetSession(http, clock=Clock())

    turn = await session.submit("hi")

    assert turn.is_error
    assert "connection refused" in turn.text
    assert session.guard.in_flight is False
    # The session stays usable.
    assert session.guard.admit("again") == "again"


@pytest.mark.asyncio
async def test_sentinel_completes_session_once(
    session: ChatWidgetSession, api: FakeApi, summaries: list[CompletionSummary]
) -> None:
    api.replies = ["Q1?", "Thank you! END_INTERVIEW", "late duplicate END_INTERVIEW"]

    await session.submit("hello")
    await session.submit("answer")
    await session.submit("anything else?")
    await session.drain()

    assert session.state.completed is True
    (summary,) = summaries
    payload = summary.to_payload()
    assert payload["type"] == "chat_complete"
    assert payload["threadId"] == "thread_abc"
    assert payload["messageCount"] == 4
    assert payload["userMessageCount"] == 2
    assert payload["finishedReason"] == "END_INTERVIEW"
    # First user turn at t+10s, sentinel inspected at t+50s.
    assert payload["durationSeconds"] == 40
    assert len(api.calls("/api/transcript/append")) == 1


@pytest.mark.asyncio
async def test_finalize_sends_rebuilt_transcript(session: ChatWidgetSession, api: FakeApi) -> None:
    api.replies = ["Bye END_INTERVIEW"]

    await session.submit("hello\r\nthere")
    await session.drain()

    (finalize,) = api.calls("/api/transcript/append")
    assert finalize["mode"] == "finalize"
    assert finalize["transcriptId"] == "t-42"
    assert finalize["fullText"] == "User: hello\nthere\n\nAssistant: Bye END_INTERVIEW"
    assert finalize["participantId"] == "P-1"
    assert finalize["metadata"]["threadId"] == "thread_abc"


@pytest.mark.asyncio
async def test_turn_text_is_newline_normalised_and_trimmed(
    session: ChatWidgetSession, api: FakeApi
) -> None:
    api.replies = ["  Sure\r\nthing  \r"]

    await session.submit("hello\r\nthere ")

    assert [turn.text for turn in session.turns] == ["hello\nthere", "Sure\nthing"]
    (chat,) = api.calls("/api/chat")
    assert chat["message"] == "hello\nthere"


@pytest.mark.asyncio
async def test_clock_stepping_backwards_does_not_break_a_turn(api: FakeApi) -> None:
    start = datetime(2026, 2, 8, 10, 0, 0, tzinfo=timezone.utc)
    readings = iter([start, start - timedelta(seconds=1)])
    http = httpx.AsyncClient(transport=httpx.MockTransport(api.handler), base_url="http://test")
    session = ChatWidgetSession(http, clock=lambda: next(readings, start))

    turn = await session.submit("hi")

    assert turn.is_error is False
    assert [t.role for t in session.turns] == [Role.USER, Role.ASSISTANT]

@pytest.mark.asyncio
async def test_finalize_twice_is_noop_the_second_time(session: ChatWidgetSession, api: FakeApi) -> None:
    await session.submit("hello")

    assert await session.finalize_transcript() is True
    assert await session.finalize_transcript() is False
    assert len(api.calls("/api/transcript/append")) == 1
    assert session.transcript.finalized is True


@pytest.mark.asyncio
async def test_audio_submission_is_tagged(session: ChatWidgetSession, api: FakeApi) -> None:
    turn = await session.submit_audio(b"\x00\x01")

    assert turn.text == "Tell me more."
    (chat,) = api.calls("/api/chat")
    assert chat["message"] == "spoken answer"
    assert chat["inputMode"] == "audio"
    assert session.turns[0].input_mode is InputMode.AUDIO


def test_guard_blocks_while_transcribing() -> None:
    guard = TurnSubmissionGuard()

    with guard.transcription() as admitted:
        assert admitted is True
        assert guard.admit("typed") is None
        with guard.transcription() as nested:
            assert nested is False

    assert guard.admit("typed") == "typed"
    with guard.transcription() as admitted:
        assert admitted is False


def test_detector_without_start_time_reports_null_duration() -> None:
    state = SessionState(thread_id="thread_1")
    detector = EndOfSessionDetector(state)

    summary = detector.inspect("done END_INTERVIEW")

    assert summary.duration_seconds is None
    assert detector.inspect("again END_INTERVIEW") is None
    assert detector.inspect("no marker") is None


def test_thread_pinning_tracks_generations() -> None:
    state = SessionState()

    assert state.pin_thread("thread_1") is True
    assert state.pin_thread("thread_1") is False
    assert state.pin_thread("bogus") is False
    assert state.pin_thread("thread_2") is True
    assert state.thread_id == "thread_2"
    assert state.thread_generation == 1


def test_transcript_latch_requires_an_id() -> None:
    transcript = Transcript()
    assert transcript.claim_finalize() is False

    transcript.assign("t-1")
    transcript.add(Turn(role=Role.USER, text="hi"))
    transcript.add(Turn(role=Role.ASSISTANT, text="oops", is_error=True))

    assert transcript.render() == "User: hi"
    assert transcript.claim_finalize() is True
    assert transcript.claim_finalize() is False
    with pytest.raises(RuntimeError):
        transcript.assign("t-2")


class FakeRecorder:
    def __init__(self) -> None:
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> bytes:
        self.stopped = True
        return b"audio"


@pytest.mark.asyncio
async def test_capture_is_force_stopped_at_max_duration() -> None:
    recorder = FakeRecorder()

    audio = await capture_utterance(recorder, asyncio.Event(), max_seconds=0.01)

    assert audio == b"audio"
    assert recorder.stopped


@pytest.mark.asyncio
async def test_capture_stops_on_request() -> None:
    recorder = FakeRecorder()
    stop = asyncio.Event()
    stop.set()

    assert await capture_utterance(recorder, stop, max_seconds=60) == b"audio"
