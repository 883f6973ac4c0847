"""Poll-based serialization of runs on a shared conversation thread.

Requests may land on different, non-communicating processes, so there is no
in-process lock to take. The gate instead asks the assistant service for the
thread's runs and waits while any of them is still active. Two requests that
both observe a clear thread inside the same poll window can still race; the
assistant service then rejects the second message or run, and that error
surfaces to the caller like any other upstream failure.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable

from survey_chat.assistant.client import AssistantClient, AssistantServiceError

logger = logging.getLogger(__name__)


class GateResult(str, Enum):
    CLEAR = "clear"
    BLOCKED = "blocked"


class RunSerializationGate:
    """Waits, with a bounded budget, until a thread has no active run."""

    def __init__(
        self,
        assistant: AssistantClient,
        *,
        poll_interval: float = 0.5,
        timeout: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._assistant = assistant
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._clock = clock
        self._sleep = sleep

    async def wait_until_clear(self, thread_id: str) -> GateResult:
        """Return ``CLEAR`` once no run is active, ``BLOCKED`` after the budget.

        A failing poll opens the gate: a transient service error must not
        wedge the session.
        """
        deadline = self._clock() + self._timeout
        polls = 0

        while True:
            polls += 1
            try:
                runs = await self._assistant.list_runs(thread_id)
            except AssistantServiceError as exc:
                logger.warning(
                    "Run poll failed for %s, letting the turn through: %s",
                    thread_id,
                    exc,
                )
                return GateResult.CLEAR

            active = [run for run in runs if run.is_active]
            if not active:
                if polls > 1:
                    logger.info("Thread %s cleared after %d polls", thread_id, polls)
                return GateResult.CLEAR

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning(
                    "Thread %s still busy after %.1fs (active runs: %s)",
                    thread_id,
                    self._timeout,
                    ", ".join(f"{run.id}={run.status}" for run in active),
                )
                return GateResult.BLOCKED

            await self._sleep(min(self._poll_interval, remaining))
