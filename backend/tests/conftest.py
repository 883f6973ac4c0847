"""Shared test fixtures for the survey chat backend."""

import itertools
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from survey_chat.assistant.client import AssistantServiceError
from survey_chat.config import Settings, get_settings
from survey_chat.dependencies import get_assistant_client, get_blob_store
from survey_chat.main import app
from survey_chat.models.assistant import Run, Thread, ThreadMessage
from survey_chat.transcripts.store import InMemoryBlobStore


class FakeAssistant:
    """In-memory stand-in for the hosted assistant's thread/run API."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.threads: dict[str, list[ThreadMessage]] = {}
        self.runs: dict[str, list[Run]] = {}
        self.reply_text = "Thanks for sharing."
        self.run_status = "completed"
        self.run_error: str | None = None
        self.list_runs_error: AssistantServiceError | None = None
        self.list_messages_error: AssistantServiceError | None = None
        self.cancelled: list[str] = []
        self.run_calls: list[dict[str, Any]] = []
        self.list_runs_calls = 0

    def _next(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def create_thread(self) -> Thread:
        thread_id = self._next("thread")
        self.threads[thread_id] = []
        self.runs[thread_id] = []
        return Thread(id=thread_id)

    async def retrieve_thread(self, thread_id: str) -> Thread:
        if thread_id not in self.threads:
            raise AssistantServiceError(f"No thread found with id '{thread_id}'.", 404)
        return Thread(id=thread_id)

    async def create_message(
        self,
        thread_id: str,
        content: str,
        *,
        role: str = "user",
        metadata: dict[str, str] | None = None,
        run_id: str | None = None,
    ) -> ThreadMessage:
        message = ThreadMessage(
            id=self._next("msg"),
            role=role,
            content=[{"type": "text", "text": {"value": content}}],
            run_id=run_id,
            metadata=metadata or {},
        )
        self.threads[thread_id].append(message)
        return message

    async def list_messages(
        self, thread_id: str, *, limit: int = 20, order: str = "desc"
    ) -> list[ThreadMessage]:
        if self.list_messages_error is not None:
            raise self.list_messages_error
        messages = list(reversed(self.threads[thread_id]))
        return messages[:limit]

    async def list_runs(self, thread_id: str, *, limit: int = 10) -> list[Run]:
        self.list_runs_calls += 1
        if self.list_runs_error is not None:
            raise self.list_runs_error
        return list(reversed(self.runs.get(thread_id, [])))[:limit]

    async def create_and_poll(
        self,
        thread_id: str,
        assistant_id: str,
        *,
        additional_instructions: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> Run:
        self.run_calls.append(
            {
                "thread_id": thread_id,
                "assistant_id": assistant_id,
                "additional_instructions": additional_instructions,
                "metadata": metadata,
            }
        )
        run_id = self._next("run")
        last_error = {"message": self.run_error} if self.run_error else None
        run = Run(id=run_id, thread_id=thread_id, status=self.run_status, last_error=last_error)
        self.runs[thread_id].append(run)
        if self.run_status == "completed":
            await self.create_message(
                thread_id, self.reply_text, role="assistant", run_id=run_id
            )
        return run

    async def cancel_quietly(self, thread_id: str, run_id: str) -> None:
        self.cancelled.append(run_id)

    def add_active_run(self, thread_id: str, status: str = "in_progress") -> Run:
        run = Run(id=self._next("run"), thread_id=thread_id, status=status)
        self.runs.setdefault(thread_id, []).append(run)
        return run

    def context_messages(self, thread_id: str) -> list[ThreadMessage]:
        return [m for m in self.threads[thread_id] if m.meta("source") == "survey_context"]


@pytest.fixture
def fake_assistant() -> FakeAssistant:
    return FakeAssistant()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        openai_api_key="sk-test",
        openai_assistant_id="asst_test",
        run_gate_poll_interval_seconds=0.01,
        run_gate_timeout_seconds=0.05,
        parent_webhook_url="",
    )


@pytest_asyncio.fixture
async def client(
    fake_assistant: FakeAssistant,
    blob_store: InMemoryBlobStore,
    test_settings: Settings,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""
    app.dependency_overrides[get_assistant_client] = lambda: fake_assistant
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_settings] = lambda: test_settings
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
