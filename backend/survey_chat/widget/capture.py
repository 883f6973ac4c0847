"""Voice capture with a hard maximum recording duration."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class AudioRecorder(Protocol):
    """Microphone source; codec and device handling live behind it."""

    async def start(self) -> None: ...

    async def stop(self) -> bytes: ...


async def capture_utterance(
    recorder: AudioRecorder, stop_requested: asyncio.Event, max_seconds: float
) -> bytes:
    """Record until ``stop_requested`` is set or ``max_seconds`` elapse.

    The recorder is always stopped, including when the wait is cancelled.
    """
    await recorder.start()
    try:
        await asyncio.wait_for(stop_requested.wait(), timeout=max_seconds)
    except asyncio.TimeoutError:
        logger.info("Recording reached %.0fs limit, stopping", max_seconds)
    finally:
        audio = await recorder.stop()
    return audio
