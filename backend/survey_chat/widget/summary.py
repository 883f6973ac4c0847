"""Delivery of the ``chat_complete`` summary to the embedding page."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

import httpx

from survey_chat.models.session import CompletionSummary

logger = logging.getLogger(__name__)

SummarySink = Callable[[CompletionSummary], Awaitable[None]]


class LoggingSummarySink:
    """Default sink when no parent endpoint is configured."""

    async def __call__(self, summary: CompletionSummary) -> None:
        logger.info("chat_complete summary: %s", summary.to_payload())


class ParentWebhookSink:
    """POSTs the summary payload to the embedding page's collector URL."""

    def __init__(self, url: str, client: httpx.AsyncClient) -> None:
        self._url = url
        self._client = client

    async def __call__(self, summary: CompletionSummary) -> None:
        response = await self._client.post(self._url, json=summary.to_payload())
        response.raise_for_status()
        logger.info("Posted chat_complete summary to %s", self._url)
