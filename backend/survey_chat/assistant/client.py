"""Hosted assistant (Assistants v2) via REST API with API key authentication.

Uses the REST endpoints directly through httpx rather than a vendor SDK, so
threads, messages and runs are plain JSON mapped onto small pydantic models.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from survey_chat.config import Settings, settings as default_settings
from survey_chat.models.assistant import Run, Thread, ThreadMessage

logger = logging.getLogger(__name__)


class AssistantServiceError(Exception):
    """The assistant REST API answered with an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AssistantRunTimeout(AssistantServiceError):
    """A run did not reach a polling stop state within the configured budget."""


def _error_message(response: httpx.Response) -> str:
    try:
        detail = response.json().get("error") or {}
    except ValueError:
        detail = {}
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    return f"Assistant API error {response.status_code}"


class AssistantClient:
    """Thin async client for the thread / message / run endpoints.

    Lifecycle:
        client = AssistantClient()
        await client.initialize()
        ...
        await client.close()
    """

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
            headers={
                "Authorization": f"Bearer {self._settings.openai_api_key}",
                "OpenAI-Beta": "assistants=v2",
            },
            timeout=self._settings.http_timeout_seconds,
            transport=self._transport,
        )
        logger.info("AssistantClient initialized (base_url=%s)", self._settings.openai_base_url)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("AssistantClient closed")

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    async def create_thread(self) -> Thread:
        return Thread.model_validate(await self._request("POST", "/threads", json={}))

    async def retrieve_thread(self, thread_id: str) -> Thread:
        return Thread.model_validate(await self._request("GET", f"/threads/{thread_id}"))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def create_message(
        self,
        thread_id: str,
        content: str,
        *,
        role: str = "user",
        metadata: dict[str, str] | None = None,
    ) -> ThreadMessage:
        body: dict[str, Any] = {"role": role, "content": content}
        if metadata:
            body["metadata"] = metadata
        data = await self._request("POST", f"/threads/{thread_id}/messages", json=body)
        return ThreadMessage.model_validate(data)

    async def list_messages(
        self, thread_id: str, *, limit: int = 20, order: str = "desc"
    ) -> list[ThreadMessage]:
        """List thread messages, newest first by default."""
        data = await self._request(
            "GET",
            f"/threads/{thread_id}/messages",
            params={"limit": limit, "order": order},
        )
        return [ThreadMessage.model_validate(m) for m in data.get("data", [])]

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def list_runs(self, thread_id: str, *, limit: int = 10) -> list[Run]:
        data = await self._request(
            "GET", f"/threads/{thread_id}/runs", params={"limit": limit, "order": "desc"}
        )
        return [Run.model_validate(r) for r in data.get("data", [])]

    async def create_run(
        self,
        thread_id: str,
        assistant_id: str,
        *,
        additional_instructions: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> Run:
        body: dict[str, Any] = {"assistant_id": assistant_id}
        if additional_instructions:
            body["additional_instructions"] = additional_instructions
        if metadata:
            body["metadata"] = metadata
        return Run.model_validate(
            await self._request("POST", f"/threads/{thread_id}/runs", json=body)
        )

    async def retrieve_run(self, thread_id: str, run_id: str) -> Run:
        return Run.model_validate(
            await self._request("GET", f"/threads/{thread_id}/runs/{run_id}")
        )

    async def cancel_run(self, thread_id: str, run_id: str) -> Run:
        return Run.model_validate(
            await self._request("POST", f"/threads/{thread_id}/runs/{run_id}/cancel")
        )

    async def cancel_quietly(self, thread_id: str, run_id: str) -> None:
        """Best-effort cancel so an abandoned run does not keep the thread busy."""
        try:
            await self.cancel_run(thread_id, run_id)
        except AssistantServiceError as e:
            logger.warning("Could not cancel run %s on %s: %s", run_id, thread_id, e.message)
        else:
            logger.info("Cancelled run %s on %s", run_id, thread_id)

    async def create_and_poll(
        self,
        thread_id: str,
        assistant_id: str,
        *,
        additional_instructions: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> Run:
        """Start a run and poll it until it stops making progress on its own.

        Raises:
            AssistantRunTimeout: if the run is still active after
                ``run_timeout_seconds``.
        """
        run = await self.create_run(
            thread_id,
            assistant_id,
            additional_instructions=additional_instructions,
            metadata=metadata,
        )
        deadline = time.monotonic() + self._settings.run_timeout_seconds

        while not run.stops_polling:
            if time.monotonic() >= deadline:
                await self.cancel_quietly(thread_id, run.id)
                raise AssistantRunTimeout(
                    f"Run {run.id} still {run.status} after "
                    f"{self._settings.run_timeout_seconds:.0f}s"
                )
            await asyncio.sleep(self._settings.run_poll_interval_seconds)
            run = await self.retrieve_run(thread_id, run.id)

        logger.info("Run %s on %s finished with status=%s", run.id, thread_id, run.status)
        return run

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        if not self._client:
            raise RuntimeError("AssistantClient not initialized. Call initialize() first.")

        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Assistant API request %s %s failed: %s", method, path, e)
            raise AssistantServiceError(f"Assistant API unreachable: {e}") from e

        if response.is_error:
            message = _error_message(response)
            logger.error(
                "Assistant API error %d on %s %s: %s",
                response.status_code,
                method,
                path,
                message[:200],
            )
            raise AssistantServiceError(message, status_code=response.status_code)

        return response.json()
